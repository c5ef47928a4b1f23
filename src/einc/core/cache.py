from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass
from threading import RLock
from typing import TYPE_CHECKING, Callable, Dict, List, Optional, Tuple

if TYPE_CHECKING:
    from .codegen import GeneratedKernel

logger = logging.getLogger(__name__)


def compute_source_hash(src: str) -> str:
    hasher = hashlib.sha256()
    hasher.update(src.encode("utf-8"))
    return hasher.hexdigest()


@dataclass(frozen=True)
class CacheStats:
    entries: int
    hits: int
    misses: int


class PatternCache:
    """Kernels generated so far in one compilation, keyed by operation kind, kernel name and canonical signature.

    Entries are never invalidated; :meth:`clear` drops everything when a new
    compilation starts. Lookups and inserts hold a lock so expressions may be
    compiled from several threads.
    """

    def __init__(self) -> None:
        self._entries: Dict[str, "GeneratedKernel"] = {}
        self._lock = RLock()
        self.hits = 0
        self.misses = 0

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return key in self._entries

    def get(self, key: str) -> Optional["GeneratedKernel"]:
        with self._lock:
            return self._entries.get(key)

    def get_or_create(
        self, key: str, factory: Callable[[], "GeneratedKernel"]
    ) -> Tuple["GeneratedKernel", bool]:
        """Return ``(kernel, hit)``, building and inserting the kernel on a miss."""
        with self._lock:
            kernel = self._entries.get(key)
            if kernel is not None:
                self.hits += 1
                logger.debug("Pattern cache hit for %s", key)
                return kernel, True
            kernel = factory()
            self._entries[key] = kernel
            self.misses += 1
            logger.debug("Pattern cache miss for %s; emitted %s", key, kernel.name)
            return kernel, False

    def kernels(self) -> List["GeneratedKernel"]:
        with self._lock:
            return list(self._entries.values())

    def stats(self) -> CacheStats:
        with self._lock:
            return CacheStats(entries=len(self._entries), hits=self.hits, misses=self.misses)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self.hits = 0
            self.misses = 0
