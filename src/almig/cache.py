"""In-memory object info cache keyed by ``(type, name)``.

Shadows the working files for name-based lookups (hover, "which page
extends Customer"). It is never the source of truth: entries expire after
``ttl_s`` seconds and the next lookup rescans. Each entry keeps a content
fingerprint so a rescan only re-parses files that changed.
"""

from __future__ import annotations

import hashlib
import logging
import os
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable

from almig.config import DEFAULT_BATCH_SIZE, DEFAULT_CACHE_TTL_S, DEFAULT_SOURCE_EXTENSION
from almig.index.discovery import discover_files, read_source
from almig.index.identity import ObjectIdentity, extends_target, identify
from almig.index.store import normalize_path

log = logging.getLogger(__name__)


def fingerprint(content: str) -> str:
    return hashlib.sha1(content.encode("utf-8", errors="replace")).hexdigest()


def cache_key(object_type: str, name: str) -> tuple[str, str]:
    return object_type.lower(), name.lower()


@dataclass(frozen=True)
class CachedObject:
    identity: ObjectIdentity
    path: str
    fingerprint: str
    extends: str | None = None

    @property
    def is_extension(self) -> bool:
        return self.identity.object_type.endswith("extension")

    @property
    def base_type(self) -> str:
        return self.identity.object_type.replace("extension", "")


class ObjectInfoCache:
    """Explicit, owned replacement for a module-level object cache."""

    def __init__(
        self,
        base_path: str | Path,
        ttl_s: float = DEFAULT_CACHE_TTL_S,
        extension: str = DEFAULT_SOURCE_EXTENSION,
        batch_size: int = DEFAULT_BATCH_SIZE,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.base_path = Path(base_path)
        self.ttl_s = ttl_s
        self.extension = extension
        self.batch_size = max(1, batch_size)
        self._clock = clock
        self._entries: dict[tuple[str, str], CachedObject] = {}
        self._by_path: dict[str, CachedObject] = {}
        self._loaded_at: float | None = None
        self._initializing = False

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def initialized(self) -> bool:
        return self._loaded_at is not None

    @property
    def initializing(self) -> bool:
        return self._initializing

    def is_stale(self) -> bool:
        if self._loaded_at is None:
            return True
        return self._clock() - self._loaded_at >= self.ttl_s

    def invalidate(self) -> None:
        """Mark the cache stale; the next lookup rescans."""
        self._loaded_at = None

    def refresh(self, force: bool = False) -> int:
        """Rescan the working files. Returns the number of cached objects.

        No-op while fresh unless *force*; a refresh requested during another
        refresh is ignored.
        """
        if self._initializing or (not force and not self.is_stale()):
            return len(self._entries)

        self._initializing = True
        try:
            previous = self._by_path
            self._entries = {}
            self._by_path = {}
            files = discover_files(self.base_path, self.extension)
            reparsed = 0
            for start in range(0, len(files), self.batch_size):
                for path in files[start : start + self.batch_size]:
                    reparsed += self._load(path, previous.get(normalize_path(path)))
            self._loaded_at = self._clock()
            log.debug("Object cache refreshed: %d objects, %d files re-parsed", len(self._entries), reparsed)
        finally:
            self._initializing = False
        return len(self._entries)

    def _load(self, path: str, prior: CachedObject | None) -> int:
        try:
            content = read_source(path)
        except OSError as exc:
            log.warning("Error caching object info for %s: %s", path, exc)
            return 0
        digest = fingerprint(content)
        if prior is not None and prior.fingerprint == digest:
            self._store(prior)
            return 0
        self._store_content(path, content, digest)
        return 1

    def _store_content(self, path: str, content: str, digest: str) -> None:
        identity = identify(content)
        if identity is None:
            return
        extends = extends_target(content) if identity.object_type.endswith("extension") else None
        self._store(CachedObject(identity=identity, path=os.fspath(path), fingerprint=digest, extends=extends))

    def _store(self, entry: CachedObject) -> None:
        self._entries[cache_key(entry.identity.object_type, entry.identity.object_name)] = entry
        self._by_path[normalize_path(entry.path)] = entry

    # -- per-file maintenance -------------------------------------------------

    def update_file(self, path: str | os.PathLike, content: str | None = None) -> CachedObject | None:
        """Re-read one file into the cache, replacing its previous entry."""
        self.remove_file(path)
        if content is None:
            try:
                content = read_source(path)
            except OSError as exc:
                log.warning("Error updating cache for file %s: %s", path, exc)
                return None
        self._store_content(os.fspath(path), content, fingerprint(content))
        return self._by_path.get(normalize_path(path))

    def remove_file(self, path: str | os.PathLike) -> bool:
        entry = self._by_path.pop(normalize_path(path), None)
        if entry is None:
            return False
        key = cache_key(entry.identity.object_type, entry.identity.object_name)
        if self._entries.get(key) is entry:
            del self._entries[key]
        return True

    # -- lookups --------------------------------------------------------------

    def get(self, object_type: str, name: str) -> CachedObject | None:
        if self.is_stale():
            self.refresh()
        return self._entries.get(cache_key(object_type, name))

    def extensions_of(self, object_type: str, name: str) -> list[CachedObject]:
        """Extension objects whose ``extends`` names this base object."""
        if self.is_stale():
            self.refresh()
        wanted = cache_key(object_type, name)
        found = [
            entry for entry in self._entries.values()
            if entry.is_extension and entry.extends and cache_key(entry.base_type, entry.extends) == wanted
        ]
        found.sort(key=lambda e: (e.identity.object_type, e.identity.object_id))
        return found

    def extended_object(self, object_type: str, name: str) -> CachedObject | None:
        """Base object extended by the extension ``(object_type, name)``."""
        entry = self.get(object_type, name)
        if entry is None or not entry.is_extension or not entry.extends:
            return None
        return self._entries.get(cache_key(entry.base_type, entry.extends))
