import threading

import pytest

import jwks_verification as m


def test_read_returns_initial_snapshot(make_key_set):
    key_set = make_key_set("A")
    cache = m.KeyCache(key_set)

    assert cache.read() is key_set
    assert cache.generation == 0


def test_replace_swaps_whole_set(make_key_set):
    old, new = make_key_set("A"), make_key_set("B", refresh_after=60)
    cache = m.KeyCache(old)

    cache.replace(new)

    assert cache.read() is new
    assert cache.read().kids == {"B"}
    assert cache.generation == 1


def test_replace_rejects_non_keyset_and_keeps_current(make_key_set):
    key_set = make_key_set("A")
    cache = m.KeyCache(key_set)

    with pytest.raises(TypeError):
        cache.replace(None)  # type: ignore[arg-type]

    assert cache.read() is key_set
    assert cache.generation == 0


def test_empty_keyset_cannot_exist():
    with pytest.raises(ValueError):
        m.KeySet(keys=(), refresh_after=60)


def test_keyset_from_keys_keeps_first_duplicate(make_key_set):
    a = make_key_set("A").get("A")
    b = make_key_set("B").get("B")
    clash = m.SigningKey(kid="A", n=b.n, e=b.e, alg="RS256", kty="RSA")

    key_set = m.KeySet.from_keys([a, clash], refresh_after=10)

    assert len(key_set) == 1
    assert key_set.get("A") is a


def test_concurrent_readers_see_complete_sets(make_key_set):
    """Readers racing a writer only ever see {A} or {A, B}, never a mix."""
    first = make_key_set("A")
    second = make_key_set("A", "B")
    cache = m.KeyCache(first)
    valid = {first.kids, second.kids}

    stop = threading.Event()
    bad: list[frozenset[str]] = []

    def reader() -> None:
        while not stop.is_set():
            snapshot = cache.read()
            if snapshot.kids not in valid or len(snapshot.keys) != len(snapshot.kids):
                bad.append(snapshot.kids)

    readers = [threading.Thread(target=reader) for _ in range(4)]
    for t in readers:
        t.start()
    for i in range(2000):
        cache.replace(second if i % 2 == 0 else first)
    stop.set()
    for t in readers:
        t.join()

    assert bad == []
    assert cache.generation == 2000
