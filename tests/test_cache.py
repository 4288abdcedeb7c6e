"""Tests for the directory size cache."""

import threading

from diskdive.cache import SizeCache, cache_key


class TestSizeCache:
    def test_miss(self):
        cache = SizeCache()
        assert cache.get("/data") == (0, False)

    def test_put_and_get(self):
        cache = SizeCache()
        cache.put("/data/a", 100)
        assert cache.get("/data/a") == (100, True)
        assert "/data/a" in cache

    def test_keys_are_normalized(self):
        cache = SizeCache()
        cache.put("/data/a/", 100)
        assert cache.get("/data/./a") == (100, True)
        assert cache_key("/data//a/") == "/data/a"

    def test_put_is_idempotent(self):
        cache = SizeCache()
        cache.put("/data/a", 100)
        first = cache.entry("/data/a").computed_at
        cache.put("/data/a", 100)
        assert cache.get("/data/a") == (100, True)
        assert cache.entry("/data/a").computed_at >= first
        assert len(cache) == 1

    def test_invalidate_drops_ancestors(self):
        cache = SizeCache()
        cache.put("/data", 300)
        cache.put("/data/a", 200)
        cache.put("/data/a/b", 100)
        cache.put("/data/other", 100)

        cache.invalidate("/data/a/b")

        assert "/data/a/b" not in cache
        assert "/data/a" not in cache
        assert "/data" not in cache
        assert cache.get("/data/other") == (100, True)

    def test_invalidate_subtree(self):
        cache = SizeCache()
        cache.put("/data/a", 200)
        cache.put("/data/a/b", 100)
        cache.put("/data/a/b/c", 50)
        cache.put("/data/ab", 10)

        cache.invalidate_subtree("/data/a")

        assert "/data/a" not in cache
        assert "/data/a/b" not in cache
        assert "/data/a/b/c" not in cache
        assert "/data/ab" in cache

    def test_clear(self):
        cache = SizeCache()
        cache.put("/data/a", 1)
        cache.clear()
        assert len(cache) == 0

    def test_concurrent_writers(self):
        cache = SizeCache()

        def fill(offset):
            for i in range(200):
                cache.put(f"/data/{offset}/{i}", i)

        threads = [threading.Thread(target=fill, args=(n,)) for n in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(cache) == 800
        assert cache.get("/data/3/199") == (199, True)
