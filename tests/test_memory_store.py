import threading

from app.infrastructure.kv.memory_store import InMemoryStore


def test_values_expire(store, clock):
    store.set("k", "v", 10)
    assert store.get("k") == "v"
    assert store.ttl("k") == 10
    clock.advance(10)
    assert store.get("k") is None
    assert store.ttl("k") is None


def test_set_if_absent(store, clock):
    assert store.set_if_absent("lock", "1", 5) is True
    assert store.set_if_absent("lock", "2", 5) is False
    assert store.get("lock") == "1"
    clock.advance(5)
    assert store.set_if_absent("lock", "3", 5) is True


def test_set_many_only_if_absent_is_all_or_nothing(store):
    store.set("b", "taken", 60)
    assert store.set_many({"a": "1", "b": "2"}, 60, only_if_absent=True) is False
    assert store.get("a") is None
    assert store.get("b") == "taken"

    assert store.set_many({"a": "1", "c": "3"}, 60, only_if_absent=True) is True
    assert store.get("a") == "1" and store.get("c") == "3"


def test_get_and_delete(store):
    store.set("k", "v", 60)
    assert store.get_and_delete("k") == "v"
    assert store.get_and_delete("k") is None


def test_compare_and_set_keeps_ttl_and_deletes_extra_keys(store, clock):
    store.set("session", "old", 100)
    store.set("index", "x", 100)
    clock.advance(40)

    assert store.compare_and_set("session", "other", "new") is False
    assert store.compare_and_set("session", "old", "new", delete_keys=["index"]) is True
    assert store.get("session") == "new"
    assert store.get("index") is None
    assert store.ttl("session") == 60


def test_compare_and_delete(store):
    store.set("k", "v", 60)
    assert store.compare_and_delete("k", "nope") is False
    assert store.compare_and_delete("k", "v") is True
    assert store.get("k") is None


def test_incr_sets_ttl_only_on_creation(store, clock):
    assert store.incr("n", 30) == 1
    clock.advance(20)
    assert store.incr("n", 30) == 2
    assert store.ttl("n") == 10
    clock.advance(10)
    assert store.incr("n", 30) == 1


def test_delete_counts_live_keys(store):
    store.set("a", "1", 60)
    store.set("b", "2", 60)
    assert store.delete("a", "b", "missing") == 2


def test_hash_fields_share_key_ttl(store, clock):
    store.hset("h", "d1", "one", 50)
    store.hset("h", "d2", "two", 50)
    assert store.hget("h", "d1") == "one"
    assert store.hgetall("h") == {"d1": "one", "d2": "two"}
    clock.advance(50)
    assert store.hgetall("h") == {}
    assert store.hget("h", "d1") is None


def test_concurrent_compare_and_delete_has_one_winner():
    store = InMemoryStore()
    store.set("otp", "123456", 60)
    wins = []

    def take():
        if store.compare_and_delete("otp", "123456"):
            wins.append(1)

    threads = [threading.Thread(target=take) for _ in range(20)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert len(wins) == 1
