"""Tests for translation caches."""

from __future__ import annotations

import pathlib

import pytest

from tessera.cache import FileCache, MemoryCache, make_cache_key


class TestCacheKey:
    def test_key_depends_on_every_part(self) -> None:
        base = make_cache_key("text", "en", "fr", "m")

        assert base == make_cache_key("text", "en", "fr", "m")
        assert base != make_cache_key("text!", "en", "fr", "m")
        assert base != make_cache_key("text", None, "fr", "m")
        assert base != make_cache_key("text", "en", "de", "m")
        assert base != make_cache_key("text", "en", "fr", None)


class TestMemoryCache:
    def test_hits_and_misses(self) -> None:
        cache = MemoryCache()

        assert cache.get("k") is None
        cache.set("k", "v")
        assert cache.get("k") == "v"

        stats = cache.stats()
        assert (stats.hits, stats.misses, stats.size) == (1, 1, 1)
        assert stats.hit_ratio == pytest.approx(0.5)

    def test_expired_entries_are_dropped(self, monkeypatch: pytest.MonkeyPatch) -> None:
        now = [100.0]
        monkeypatch.setattr("tessera.cache.time.monotonic", lambda: now[0])
        cache = MemoryCache(ttl_seconds=10)
        cache.set("k", "v")

        now[0] = 105.0
        assert cache.get("k") == "v"
        now[0] = 111.0
        assert cache.get("k") is None
        assert cache.stats().size == 0

    def test_clear(self) -> None:
        cache = MemoryCache()
        cache.set("k", "v")

        cache.clear()

        assert cache.get("k") is None


class TestFileCache:
    def test_values_persist_across_instances(self, tmp_path: pathlib.Path) -> None:
        FileCache(tmp_path).set("abc", "Bonjour")

        cache = FileCache(tmp_path)

        assert cache.get("abc") == "Bonjour"
        assert cache.stats().size == 1
        assert list(tmp_path.glob("*.tmp")) == []

    def test_corrupt_entry_is_a_miss(self, tmp_path: pathlib.Path) -> None:
        (tmp_path / "bad.json").write_text("{not json", encoding="utf-8")
        cache = FileCache(tmp_path)

        assert cache.get("bad") is None
        assert cache.stats().misses == 1
