"""Rebuild the object index from the working files on disk."""

from __future__ import annotations

import logging
import time
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Callable

from almig.config import DEFAULT_BATCH_SIZE, DEFAULT_SOURCE_EXTENSION
from almig.index.discovery import discover_files, read_source
from almig.index.identity import ObjectIdentity, identify
from almig.index.reconcile import CREATED, FAILED, UPDATED, Reconciler
from almig.index.references import ReverseReferenceStore
from almig.index.store import IndexStore, normalize_path

log = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int], None]


@dataclass
class IndexSummary:
    files: int = 0
    indexed: int = 0
    created: int = 0
    updated: int = 0
    skipped: int = 0
    duplicates: int = 0
    failed: int = 0
    elapsed_s: float = 0.0

    def to_dict(self) -> dict:
        return asdict(self)


def _format_count(n: int) -> str:
    return f"{n:,}"


class Indexer:
    """Walks the base directory and indexes every identifiable object.

    Only the fresh-object path of the reconciler is used: existing records
    keep their migration references, and records of files that have since
    disappeared are left alone.

    When several files declare the same object, the file the record already
    points at is kept; otherwise the first file in sorted order wins. The
    others are counted as duplicates and left out of the index.
    """

    def __init__(
        self,
        base_path: str | Path,
        reconciler: Reconciler | None = None,
        extension: str = DEFAULT_SOURCE_EXTENSION,
        batch_size: int = DEFAULT_BATCH_SIZE,
    ):
        self.base_path = Path(base_path).resolve()
        if reconciler is None:
            reconciler = Reconciler(IndexStore(self.base_path), ReverseReferenceStore(self.base_path))
        self.reconciler = reconciler
        self.extension = extension
        self.batch_size = max(1, batch_size)
        self._running = False
        self.summary: IndexSummary | None = None

    @property
    def running(self) -> bool:
        return self._running

    def run(self, progress: ProgressCallback | None = None) -> IndexSummary:
        """Index every working file under the base path.

        A call made while a rebuild is already in progress returns an empty
        summary instead of starting a second walk.
        """
        if self._running:
            log.warning("Index rebuild already in progress, ignoring request")
            return IndexSummary()

        self._running = True
        try:
            self.summary = self._do_run(progress)
        finally:
            self._running = False
        return self.summary

    def _do_run(self, progress: ProgressCallback | None) -> IndexSummary:
        t0 = time.monotonic()
        self.reconciler.index.ensure()
        files = discover_files(self.base_path, self.extension)
        summary = IndexSummary(files=len(files))
        log.info("Indexing %s files under %s", _format_count(len(files)), self.base_path)

        # Pass 1: identify every file, in sorted order.
        found: dict[ObjectIdentity, list[str]] = {}
        for start in range(0, len(files), self.batch_size):
            batch = files[start : start + self.batch_size]
            for path in batch:
                identity = self._identify_one(path, summary)
                if identity is not None:
                    found.setdefault(identity, []).append(path)
            if progress is not None:
                progress(min(start + len(batch), len(files)), len(files))

        # Pass 2: one file per identity.
        for identity, paths in found.items():
            chosen = self._choose_path(identity, paths)
            if len(paths) > 1:
                others = [p for p in paths if p != chosen]
                summary.duplicates += len(others)
                log.warning("%s is declared by %d files; indexing %s", identity, len(paths), chosen)
                for other in others:
                    log.warning("  duplicate declaration in %s", other)
            self._index_one(chosen, identity, summary)

        summary.elapsed_s = round(time.monotonic() - t0, 3)
        log.info(
            "Indexed %s objects (%d new, %d updated, %d skipped, %d duplicates, %d failed)",
            _format_count(summary.indexed),
            summary.created,
            summary.updated,
            summary.skipped,
            summary.duplicates,
            summary.failed,
        )
        return summary

    def _identify_one(self, path: str, summary: IndexSummary) -> ObjectIdentity | None:
        try:
            content = read_source(path)
        except OSError as exc:
            log.error("Error processing file %s: %s", path, exc)
            summary.failed += 1
            return None

        identity = identify(content)
        if identity is None:
            log.debug("Could not determine object type and number for %s", path)
            summary.skipped += 1
        return identity

    def _choose_path(self, identity: ObjectIdentity, paths: list[str]) -> str:
        if len(paths) == 1:
            return paths[0]
        existing = self.reconciler.index.get(identity)
        if existing is not None and not existing.deleted and existing.original_path:
            current = normalize_path(existing.original_path)
            for path in paths:
                if normalize_path(path) == current:
                    return path
        return paths[0]

    def _index_one(self, path: str, identity: ObjectIdentity, summary: IndexSummary) -> None:
        result = self.reconciler.fresh(path, identity, touch=False)
        if result.outcome == FAILED:
            summary.failed += 1
            return
        summary.indexed += 1
        if result.outcome == CREATED:
            summary.created += 1
        elif result.outcome == UPDATED:
            summary.updated += 1


def rebuild_index(base_path: str | Path, extension: str = DEFAULT_SOURCE_EXTENSION) -> IndexSummary:
    """Convenience wrapper: rebuild the index under *base_path*."""
    return Indexer(base_path, extension=extension).run()
