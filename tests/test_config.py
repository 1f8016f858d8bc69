import pytest

from config import Config, ConfigurationLoadError

MINIMAL = """
[server]
host = "127.0.0.1"
port = 3000
"""


async def load(tmp_path, text):
    path = tmp_path / "config.toml"
    path.write_text(text, encoding="utf-8")
    config = Config(path)
    await config.initialize()
    return config


@pytest.mark.asyncio
async def test_minimal_config_gets_defaults(tmp_path):
    config = await load(tmp_path, MINIMAL)
    assert config.config_opened
    assert config.config["server"] == {"host": "127.0.0.1", "port": 3000, "trusted_proxies": []}
    assert config.config["limits"] == {
        "max_connections_per_ip": 5,
        "max_messages_per_minute": 60,
        "max_signals_per_minute": 600,
        "cleanup_interval": 300,
    }
    assert config.config["event_log"] == {
        "enabled": True,
        "directory": "./logs",
        "retention_days": 30,
        "queue_size": 10_000,
    }


@pytest.mark.asyncio
async def test_overrides(tmp_path):
    config = await load(tmp_path, MINIMAL + """
trusted_proxies = ["10.0.0.1"]

[limits]
max_signals_per_minute = 1200

[event_log]
enabled = false
""")
    assert config.config["server"]["trusted_proxies"] == ["10.0.0.1"]
    assert config.config["limits"]["max_signals_per_minute"] == 1200
    assert config.config["limits"]["max_messages_per_minute"] == 60
    assert config.config["event_log"]["enabled"] is False


@pytest.mark.asyncio
async def test_example_config_is_valid():
    from pathlib import Path
    config = Config(Path(__file__).parent.parent / ".example" / "config.toml")
    await config.initialize()
    assert config.config["server"]["port"] == 3000


@pytest.mark.asyncio
async def test_missing_file(tmp_path):
    with pytest.raises(ConfigurationLoadError):
        await Config(tmp_path / "nope.toml").initialize()


@pytest.mark.asyncio
async def test_toml_syntax_error(tmp_path):
    with pytest.raises(ConfigurationLoadError):
        await load(tmp_path, "[server\nport = ")


@pytest.mark.asyncio
@pytest.mark.parametrize("text", [
    "[limits]\nmax_connections_per_ip = 5\n",
    '[server]\nhost = "0.0.0.0"\nport = 70000\n',
    MINIMAL + "\n[limits]\nmax_connections_per_ip = 0\n",
    MINIMAL + "\n[unknown]\nkey = 1\n",
])
async def test_schema_mismatch(tmp_path, text):
    with pytest.raises(ConfigurationLoadError):
        await load(tmp_path, text)
