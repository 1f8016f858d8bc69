import threading


def identify(data, coordinator, cid, username):
    connection = data.registry.register(cid)
    coordinator.identify(cid, username)
    return connection


def test_first_connection_waits(data, coordinator, drain):
    alice = identify(data, coordinator, "a", "alice")
    assert drain(alice) == [{"event": "waiting"}]
    assert data.waiting.occupant == "a"
    assert "a" not in data.pairs


def test_second_connection_matches_waiter(data, coordinator, drain, check_invariants):
    alice = identify(data, coordinator, "a", "alice")
    drain(alice)
    bob = data.registry.register("b")
    assert coordinator.identify("b", "bob") == "a"

    assert drain(alice) == [{"event": "paired", "data": {"partnerUsername": "bob"}}]
    assert drain(bob) == [{"event": "paired", "data": {"partnerUsername": "alice"}}]
    assert data.pairs.partner_of("a") == "b"
    assert data.waiting.occupant is None
    check_invariants(data)


def test_third_connection_becomes_new_waiter(data, coordinator, drain, check_invariants):
    identify(data, coordinator, "a", "alice")
    identify(data, coordinator, "b", "bob")
    carol = identify(data, coordinator, "c", "carol")

    assert drain(carol) == [{"event": "waiting"}]
    assert data.waiting.occupant == "c"
    assert "c" not in data.pairs
    assert data.pairs.partner_of("a") == "b"
    check_invariants(data)


def test_no_self_pairing(data, coordinator, drain, check_invariants):
    alice = identify(data, coordinator, "a", "alice")
    assert coordinator.identify("a", "alice") is None
    assert drain(alice) == [{"event": "waiting"}, {"event": "waiting"}]
    assert data.waiting.occupant == "a"
    assert "a" not in data.pairs
    check_invariants(data)


def test_stale_occupant_is_replaced(data, coordinator, drain, check_invariants):
    identify(data, coordinator, "a", "alice")
    # gone without the waiting slot being cleared
    data.registry.unregister("a")

    bob = identify(data, coordinator, "b", "bob")
    assert drain(bob) == [{"event": "waiting"}]
    assert data.waiting.occupant == "b"
    assert len(data.pairs) == 0
    check_invariants(data)


def test_reidentify_while_paired_keeps_pairing(data, coordinator, drain, check_invariants):
    alice = identify(data, coordinator, "a", "alice")
    identify(data, coordinator, "b", "bob")
    identify(data, coordinator, "c", "carol")
    drain(alice)

    assert coordinator.identify("a", "alicia") == "b"
    assert data.registry.lookup("a") == "alicia"
    assert data.pairs.partner_of("a") == "b"
    assert data.waiting.occupant == "c"
    assert drain(alice) == []
    check_invariants(data)


def test_unidentified_connection_is_not_matched(data, coordinator, drain):
    connection = data.registry.register("a")
    assert coordinator.match_or_wait("a") is None
    assert data.waiting.occupant is None
    assert drain(connection) == []


def test_identify_from_unknown_connection(data, coordinator):
    assert coordinator.identify("ghost", "casper") is None
    assert data.waiting.occupant is None


def test_many_arrivals_pair_in_order(data, coordinator, check_invariants):
    for index in range(7):
        identify(data, coordinator, f"c{index}", f"user{index}")
        check_invariants(data)

    assert data.pairs.partner_of("c0") == "c1"
    assert data.pairs.partner_of("c2") == "c3"
    assert data.pairs.partner_of("c4") == "c5"
    assert data.waiting.occupant == "c6"


def test_concurrent_identify_keeps_invariants(check_invariants):
    from pairing_coordinator import PairingCoordinator
    from server_data import ServerData

    for _ in range(50):
        data = ServerData()
        coordinator = PairingCoordinator(data)
        cids = [f"c{index}" for index in range(9)]
        for cid in cids:
            data.registry.register(cid)

        barrier = threading.Barrier(len(cids))

        def worker(cid):
            barrier.wait()
            coordinator.identify(cid, f"user-{cid}")

        threads = [threading.Thread(target=worker, args=(cid,)) for cid in cids]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=5)

        check_invariants(data)
        assert 2 * len(data.pairs) + (data.waiting.occupant is not None) == data.registry.live_count
        assert len(data.pairs) == 4
