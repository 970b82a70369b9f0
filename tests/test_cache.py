from core.cache import ResultCache


def _cache() -> ResultCache:
    ticks = iter(range(100))
    return ResultCache(clock=lambda: float(next(ticks)))


def test_miss_then_hit() -> None:
    cache = _cache()
    assert cache.get("fp") is None

    entry = cache.put("fp", {"v": 1}, "digest-a")

    assert cache.get("fp") is entry
    assert entry.result == {"v": 1}
    assert entry.lockfile_digest == "digest-a"
    assert entry.created_at == 0.0
    assert "fp" in cache and len(cache) == 1


def test_last_write_wins() -> None:
    cache = _cache()
    cache.put("fp", "first", "d")
    cache.put("fp", "second", "d")
    assert cache.get("fp").result == "second"
    assert len(cache) == 1


def test_activate_first_digest_prunes_nothing_it_shares() -> None:
    cache = _cache()
    cache.put("a", 1, "d1")
    assert cache.activate("d1") == 0
    assert cache.active_digest == "d1"
    assert cache.activate("d1") == 0


def test_activate_new_digest_drops_old_entries() -> None:
    cache = _cache()
    cache.activate("d1")
    cache.put("a", 1, "d1")
    cache.put("b", 2, "d1")

    assert cache.activate("d2") == 2
    assert len(cache) == 0
    assert cache.active_digest == "d2"


def test_prune_keeps_matching_digest() -> None:
    cache = _cache()
    cache.put("a", 1, "old")
    cache.put("b", 2, "new")
    assert cache.prune(keep_digest="new") == 1
    assert "b" in cache and "a" not in cache


def test_clear_resets_everything() -> None:
    cache = _cache()
    cache.activate("d")
    cache.put("a", 1, "d")
    cache.clear()
    assert len(cache) == 0
    assert cache.active_digest is None
