#
# DirectCall - Invoker Cache Tests
#

# Standard library -----------------------------------------------------------------------------------------------------
import logging
import threading

# Third-party ----------------------------------------------------------------------------------------------------------
import pytest

# Local ----------------------------------------------------------------------------------------------------------------
from directcall import cache as cache_module
from directcall.cache import CacheStats, InvokerCache, default_cache
from directcall.descriptor import describe
from directcall.errors import ArgumentTypeMismatch, UnsupportedMethodShape
from directcall.marshal import MarshalPolicy
from directcall.sentinels import NOT_FOUND
from directcall.signature import SignatureKey, normalize

INT_ADD = SignatureKey((int, int), int)
STR_LEN = SignatureKey((str,), int)


def increment(n: int) -> int:
    return n + 1


# Tests ----------------------------------------------------------------------------------------------------------------

class TestGetOrCompile:
    def test_compiles_once(self, cache, compiled_keys):
        """Repeated lookups of one key return the stored invoker without compiling again."""
        first = cache.get_or_compile(INT_ADD)
        for _ in range(1000):
            assert cache.get_or_compile(INT_ADD) is first
        assert compiled_keys == [INT_ADD]
        assert cache.stats == CacheStats(hits=1000, misses=1, compiled=1, discarded=0)

    def test_distinct_keys(self, cache, compiled_keys):
        assert cache.get_or_compile(INT_ADD) is not cache.get_or_compile(STR_LEN)
        assert len(cache) == 2
        assert set(cache.keys()) == {INT_ADD, STR_LEN}
        assert compiled_keys == [INT_ADD, STR_LEN]

    def test_keys_is_a_snapshot(self, cache):
        cache.get_or_compile(INT_ADD)
        keys = cache.keys()
        cache.get_or_compile(STR_LEN)
        assert list(keys) == [INT_ADD]

    def test_keys_taken_under_lock(self, cache):
        acquired = []

        class RecordingLock:
            def __enter__(self):
                acquired.append(True)
                return self

            def __exit__(self, *exc_info):
                return False

        cache.get_or_compile(INT_ADD)
        cache._lock = RecordingLock()
        assert list(cache.keys()) == [INT_ADD]
        assert acquired == [True]

    def test_equal_keys_share_entry(self, cache):
        assert cache.get_or_compile(SignatureKey((int, int), int)) is cache.get_or_compile(INT_ADD)

    def test_get_never_compiles(self, cache):
        assert cache.get(INT_ADD) is NOT_FOUND
        assert cache.get(INT_ADD, None) is None
        assert INT_ADD not in cache
        invoker = cache.get_or_compile(INT_ADD)
        assert cache.get(INT_ADD) is invoker
        assert INT_ADD in cache

    def test_failed_compile_stores_nothing(self, cache, compiled_keys):
        with pytest.raises(UnsupportedMethodShape):
            cache.get_or_compile(SignatureKey(("int",), int))
        assert len(cache) == 0
        assert compiled_keys == []
        assert cache.stats.compiled == 0

    def test_policy_used_for_compilation(self):
        relaxed = InvokerCache(policy=MarshalPolicy(strict_bool=False))
        d = describe(increment)
        assert relaxed.get_or_compile(normalize(d)).marshal(d, (True,)) == [True]
        with pytest.raises(ArgumentTypeMismatch):
            InvokerCache().get_or_compile(normalize(d)).marshal(d, (True,))

    def test_logs_stored_invoker(self, cache, caplog):
        with caplog.at_level(logging.DEBUG, logger="directcall.cache"):
            cache.get_or_compile(INT_ADD)
        assert "stored invoker for (int : int : int)" in caplog.text


class TestConcurrency:
    def test_concurrent_first_use_single_stored_invoker(self, compiled_keys):
        """Threads racing on an empty cache all get the one stored invoker."""
        cache = InvokerCache(on_compile=lambda key, invoker: compiled_keys.append(key))
        threads_count = 16
        barrier = threading.Barrier(threads_count)
        results = [None] * threads_count
        errors = []

        def worker(index):
            try:
                barrier.wait()
                results[index] = cache.get_or_compile(INT_ADD)
            except Exception as exc:
                errors.append(exc)

        threads = [threading.Thread(target=worker, args=(i,)) for i in range(threads_count)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert errors == []
        stored = cache.get(INT_ADD)
        assert all(r is stored for r in results)
        assert compiled_keys == [INT_ADD]

        stats = cache.stats
        assert stats.stored == 1
        assert stats.hits + stats.misses == threads_count
        assert stats.discarded == stats.compiled - 1


class TestDefaultCache:
    def test_process_wide_singleton(self):
        assert default_cache() is default_cache()

    def test_created_lazily(self, monkeypatch):
        monkeypatch.setattr(cache_module, "_default_cache", None)
        created = default_cache()
        assert isinstance(created, InvokerCache)
        assert default_cache() is created
