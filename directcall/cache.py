"""
Process-wide cache of compiled invokers, keyed by signature.

The cache only grows: the number of distinct call shapes is bounded by the
methods of the loaded program, and evicting an entry would only bring back
the compilation cost.

Thread safety:
    Lookups read the dict without locking. Compilation runs outside the lock.
    Insertion takes a short lock and keeps the first stored invoker, so every
    later lookup for the key returns the same object. An invoker compiled by a
    thread that lost the race is dropped and counted as discarded. No lock is
    ever held while a target method runs.
"""

# Standard library -----------------------------------------------------------------------------------------------------
import logging
import threading

from dataclasses import dataclass
from typing import Any, Callable, Iterator

# Local ----------------------------------------------------------------------------------------------------------------
from directcall.invoker import CompiledInvoker, compile_invoker
from directcall.marshal import DEFAULT_POLICY, MarshalPolicy
from directcall.sentinels import NOT_FOUND
from directcall.signature import SignatureKey

# Public API -----------------------------------------------------------------------------------------------------------
__all__ = ["CacheStats", "InvokerCache", "default_cache"]

logger = logging.getLogger(__name__)

CompileHook = Callable[[SignatureKey, CompiledInvoker], Any]


# Classes --------------------------------------------------------------------------------------------------------------

@dataclass(frozen=True)
class CacheStats:
    """
    Snapshot of cache counters.

    Attributes:
        hits: Lookups answered by a stored invoker.
        misses: Lookups that had to compile.
        compiled: Invokers compiled, including discarded ones.
        discarded: Invokers compiled by a thread that lost an insertion race.
    """
    hits: int = 0
    misses: int = 0
    compiled: int = 0
    discarded: int = 0

    @property
    def stored(self) -> int:
        return self.compiled - self.discarded


class InvokerCache:
    """
    Mapping from SignatureKey to CompiledInvoker, populated lazily.

    Construct one per test when isolation is needed; the engine's module-level
    functions share default_cache().

    Args:
        policy: Marshalling options used for every invoker compiled into this cache.
        on_compile: Called as ``on_compile(key, invoker)`` once per key, after the
            invoker has been stored. Not called for discarded invokers.

    Examples:
        >>> cache = InvokerCache()
        >>> invoker = cache.get_or_compile(normalize(describe(Calc, "add")))
        >>> len(cache), cache.stats.compiled
        (1, 1)
    """

    def __init__(self, *, policy: MarshalPolicy | None = None, on_compile: CompileHook | None = None):
        self.policy = policy if policy is not None else DEFAULT_POLICY
        self.on_compile = on_compile
        self._entries: dict[SignatureKey, CompiledInvoker] = {}
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0
        self._compiled = 0
        self._discarded = 0

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: SignatureKey) -> bool:
        return key in self._entries

    def __repr__(self) -> str:
        return f"<InvokerCache entries={len(self)} policy={self.policy}>"

    def keys(self) -> Iterator[SignatureKey]:
        """Iterate over a snapshot of the stored keys."""
        with self._lock:
            snapshot = list(self._entries)
        return iter(snapshot)

    @property
    def stats(self) -> CacheStats:
        with self._lock:
            return CacheStats(
                hits=self._hits,
                misses=self._misses,
                compiled=self._compiled,
                discarded=self._discarded,
            )

    def get(self, key: SignatureKey, default: Any = NOT_FOUND) -> Any:
        """Return the stored invoker for key, or default. Never compiles."""
        return self._entries.get(key, default)

    def get_or_compile(self, key: SignatureKey) -> CompiledInvoker:
        """
        Return the invoker for key, compiling and storing it on first use.

        Raises:
            UnsupportedMethodShape: If the key holds an annotation without a run-time
                converter. Nothing is stored in that case.
        """
        invoker = self._entries.get(key, NOT_FOUND)
        if invoker is not NOT_FOUND:
            with self._lock:
                self._hits += 1
            return invoker

        candidate = compile_invoker(key, self.policy)

        with self._lock:
            self._misses += 1
            self._compiled += 1
            invoker = self._entries.setdefault(key, candidate)
            if invoker is not candidate:
                self._discarded += 1

        if invoker is candidate:
            logger.debug("stored invoker for (%s), %d shapes cached", key, len(self._entries))
            if self.on_compile is not None:
                self.on_compile(key, invoker)
        else:
            logger.debug("discarded duplicate invoker for (%s)", key)

        return invoker


# Methods --------------------------------------------------------------------------------------------------------------

_default_cache: InvokerCache | None = None
_default_lock = threading.Lock()


def default_cache() -> InvokerCache:
    """Return the process-wide cache, creating it on first use."""
    global _default_cache
    if _default_cache is None:
        with _default_lock:
            if _default_cache is None:
                _default_cache = InvokerCache()
    return _default_cache
