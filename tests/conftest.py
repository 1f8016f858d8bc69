import pytest

from lifecycle_handler import LifecycleHandler
from pairing_coordinator import PairingCoordinator
from relay_dispatcher import RelayDispatcher
from server_data import Connection, ServerData


@pytest.fixture
def config(tmp_path):
    return {
        "server": {"host": "127.0.0.1", "port": 0, "trusted_proxies": []},
        "limits": {
            "max_connections_per_ip": 5,
            "max_messages_per_minute": 60,
            "max_signals_per_minute": 600,
            "cleanup_interval": 300,
        },
        "event_log": {
            "enabled": True,
            "directory": str(tmp_path / "logs"),
            "retention_days": 30,
            "queue_size": 100,
        },
    }


@pytest.fixture
def data():
    return ServerData()


@pytest.fixture
def coordinator(data):
    return PairingCoordinator(data)


@pytest.fixture
def dispatcher(data):
    return RelayDispatcher(data)


@pytest.fixture
def lifecycle(data, coordinator):
    return LifecycleHandler(data, coordinator)


@pytest.fixture
def drain():
    """Pops every queued outbound packet, optionally keeping only one event name."""
    def _drain(connection: Connection, event: str = None) -> list[dict]:
        packets = []
        while not connection.outbox.empty():
            packets.append(connection.outbox.get_nowait())
        if event is not None:
            packets = [packet for packet in packets if packet["event"] == event]
        return packets
    return _drain


@pytest.fixture
def check_invariants():
    def _check(data: ServerData):
        for a, b in data.pairs.pairs():
            assert data.pairs.partner_of(a) == b
            assert data.pairs.partner_of(b) == a
            assert a in data.registry and b in data.registry
        occupant = data.waiting.occupant
        if occupant is not None:
            assert occupant not in data.pairs
    return _check
