"""
Copyright (c) 2025 Eric C. Mumford (@heymumford)
This file is part of TMSYNC, licensed under the MIT License.
See LICENSE file for details.
"""

"""
Identity cache for canonical entities.

Maps ``(kind, natural key)`` to the canonical entity already present in the
store so that translators can be handed resolved dependencies without a store
round trip per record. One cache is owned by one synchronization run and shared
by its worker threads.

Lookups are single-flight: when several threads resolve the same key at once,
one of them loads it and the others wait for that result. Different keys load
concurrently. Negative results are cached too, and nothing is ever evicted;
callers that create an entity after a negative lookup record it with ``put``.
"""

import threading
from collections.abc import Callable
from concurrent.futures import Future
from typing import Any

from tmsync.core.db_manager import CanonicalStore
from tmsync.core.logging import get_logger
from tmsync.domain.models import (
    CanonicalModel,
    EntityKind,
    Found,
    NotFound,
    Resolution,
    kind_of,
    natural_key,
)

logger = get_logger(__name__)

Loader = Callable[[EntityKind, Any], Resolution | CanonicalModel]

# Kinds that come into existence the first time they are referenced.
CREATE_ON_MISS = frozenset(
    {EntityKind.PROJECT, EntityKind.VERSION, EntityKind.USER, EntityKind.EXECUTION_STATUS}
)


class IdentityCache:
    """Thread-safe, single-flight cache of canonical identities."""

    def __init__(self, store: CanonicalStore | None = None):
        self.store = store
        self._entries: dict[tuple[EntityKind, Any], Resolution] = {}
        self._inflight: dict[tuple[EntityKind, Any], Future] = {}
        self._lock = threading.Lock()
        self._hits = 0
        self._loads = 0

    def resolve(self, kind: EntityKind, key: Any, loader: Loader | None = None) -> Resolution:
        """
        Resolve an entity by natural key.

        Args:
            kind: Entity kind
            key: Natural key of the entity
            loader: Called on a miss instead of the store; may return a
                Resolution or a bare entity

        Returns:
            Found with the entity, or NotFound
        """
        cache_key = (kind, key)
        with self._lock:
            cached = self._entries.get(cache_key)
            if cached is not None:
                self._hits += 1
                return cached
            future = self._inflight.get(cache_key)
            owner = future is None
            if owner:
                future = Future()
                self._inflight[cache_key] = future

        if not owner:
            return future.result()

        try:
            result = self._load(kind, key, loader)
        except Exception as e:
            with self._lock:
                self._inflight.pop(cache_key, None)
            future.set_exception(e)
            raise

        with self._lock:
            self._entries[cache_key] = result
            self._inflight.pop(cache_key, None)
            self._loads += 1
        if isinstance(result, NotFound):
            logger.debug(f"Cached miss for {kind.value} {key!r} ({result.reason})")
        future.set_result(result)
        return result

    def _load(self, kind: EntityKind, key: Any, loader: Loader | None) -> Resolution:
        if loader is not None:
            result = loader(kind, key)
        elif self.store is None:
            raise RuntimeError(f"No store or loader available to resolve {kind.value} {key!r}")
        elif kind in CREATE_ON_MISS:
            result = self.store.find_or_create(kind, key)
        else:
            result = self.store.find(kind, key)

        if isinstance(result, (Found, NotFound)):
            return result
        if result is None:
            return NotFound(key=key)
        return Found(result)

    def put(self, entity: CanonicalModel) -> None:
        """Record an entity that was just merged into the store."""
        with self._lock:
            self._entries[(kind_of(entity), natural_key(entity))] = Found(entity)

    def invalidate(self, kind: EntityKind, key: Any) -> None:
        """Forget an entry so the next resolution reads the store again."""
        with self._lock:
            self._entries.pop((kind, key), None)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def stats(self) -> dict[str, int]:
        with self._lock:
            return {"entries": len(self._entries), "hits": self._hits, "loads": self._loads}
