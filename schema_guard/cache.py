"""Compiled schema cache.

Compiling per-table structural contracts is repeated work when the same
schema is validated many times in a long-running service. Compiled contracts
are cached by a deterministic fingerprint of the schema document, so two
callers validating different schema versions never see each other's entries.
"""

import hashlib
import threading
from collections import OrderedDict
from typing import Any, Callable, Optional, TypeVar

import orjson

from schema_guard.loader import dumps_json
from schema_guard.logging_config import get_logger
from schema_guard.metrics import record_cache_hit, record_cache_miss

logger = get_logger(__name__)

T = TypeVar("T")


def schema_fingerprint(document: Any, prefix: str = "schema") -> str:
    """Create a deterministic fingerprint from a JSON-compatible document."""
    payload = dumps_json(
        document,
        option=orjson.OPT_SORT_KEYS | orjson.OPT_NON_STR_KEYS,
        tag_big_ints=True,
    )
    digest = hashlib.sha256(payload).hexdigest()[:32]
    return f"{prefix}:{digest}"


class CompiledSchemaCache:
    """Thread-safe LRU cache of compiled schema contracts."""

    def __init__(self, max_size: int = 32, enabled: bool = True):
        self.max_size = max_size
        self.enabled = enabled and max_size > 0
        self._entries: OrderedDict[str, Any] = OrderedDict()
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0

    def get(self, fingerprint: str) -> Optional[Any]:
        """Get a compiled entry, refreshing its recency."""
        with self._lock:
            if fingerprint not in self._entries:
                return None
            self._entries.move_to_end(fingerprint)
            return self._entries[fingerprint]

    def set(self, fingerprint: str, value: Any) -> None:
        """Store a compiled entry, evicting the least recently used one."""
        if not self.enabled:
            return
        with self._lock:
            self._entries[fingerprint] = value
            self._entries.move_to_end(fingerprint)
            while len(self._entries) > self.max_size:
                evicted, _ = self._entries.popitem(last=False)
                logger.debug("Schema cache eviction", fingerprint=evicted)

    def get_or_compile(self, fingerprint: str, factory: Callable[[], T]) -> T:
        """Return the cached entry for a fingerprint, compiling it on a miss."""
        if not self.enabled:
            return factory()

        cached = self.get(fingerprint)
        if cached is not None:
            with self._lock:
                self._hits += 1
            record_cache_hit()
            logger.debug("Schema cache hit", fingerprint=fingerprint)
            return cached

        compiled = factory()
        self.set(fingerprint, compiled)
        with self._lock:
            self._misses += 1
        record_cache_miss()
        logger.debug("Schema cache set", fingerprint=fingerprint)
        return compiled

    def clear(self) -> int:
        """Drop all entries. Returns count removed."""
        with self._lock:
            count = len(self._entries)
            self._entries.clear()
            return count

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def stats(self) -> dict[str, Any]:
        """Get cache statistics."""
        with self._lock:
            return {
                "enabled": self.enabled,
                "entries": len(self._entries),
                "max_size": self.max_size,
                "hits": self._hits,
                "misses": self._misses,
            }
