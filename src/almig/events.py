"""File events and the service that applies them to the index.

Editor hosts (or the CLI) turn what happened to a working file into one of
the :data:`FileEvent` variants and hand it to :meth:`IndexService.dispatch`.
Each handler catches its own failures, so one bad file never stops the
events that follow it.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Union

from almig.cache import ObjectInfoCache
from almig.config import Settings, load_settings
from almig.index.discovery import read_source
from almig.index.identity import ObjectIdentity, is_no_origin, reference_key
from almig.index.indexer import Indexer, IndexSummary, ProgressCallback
from almig.index.jsonio import read_json_record
from almig.index.reconcile import FAILED, SKIPPED, ReconcileResult, Reconciler
from almig.index.references import ReverseReferenceRecord, ReverseReferenceStore
from almig.index.store import IndexRecord, IndexStore, RecordCorruptError, normalize_path
from almig.numbering import NumberAssignment, assign_available_number

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class Created:
    path: str
    content: str


@dataclass(frozen=True)
class Saved:
    path: str
    new_content: str
    previous_content: str | None = None


@dataclass(frozen=True)
class Deleted:
    path: str


@dataclass(frozen=True)
class Extracted:
    """A working file written from a legacy file (the splitter or the model)."""

    path: str
    content: str
    legacy_path: str


FileEvent = Union[Created, Saved, Deleted, Extracted]


def read_text(path: str | os.PathLike) -> str:
    """Current text of a working file, BOM stripped."""
    return read_source(path)


@dataclass(frozen=True)
class Problem:
    kind: str
    detail: str

    def to_dict(self) -> dict:
        return {"kind": self.kind, "detail": self.detail}


@dataclass
class CleanSummary:
    marked_deleted: int = 0
    objects_purged: int = 0
    reference_files: list[str] = field(default_factory=list)


class IndexService:
    """Composes the stores, reconciler, indexer and cache for one project.

    Without a configured base path the service is inert: every operation
    logs a single warning and does nothing.
    """

    def __init__(self, settings: Settings):
        self.settings = settings
        self._warned = False
        if settings.base_path is None:
            self.index = None
            self.references = None
            self.reconciler = None
            self.indexer = None
            self.cache = None
            return
        self.index = IndexStore(settings.base_path)
        self.references = ReverseReferenceStore(settings.base_path)
        self.reconciler = Reconciler(self.index, self.references)
        self.indexer = Indexer(
            settings.base_path,
            reconciler=self.reconciler,
            extension=settings.source_extension,
            batch_size=settings.batch_size,
        )
        self.cache = ObjectInfoCache(
            settings.base_path,
            ttl_s=settings.cache_ttl_s,
            extension=settings.source_extension,
            batch_size=settings.batch_size,
        )

    @classmethod
    def from_project(cls, project_root: str | Path | None = None) -> "IndexService":
        return cls(load_settings(Path(project_root) if project_root else None))

    @property
    def configured(self) -> bool:
        return self.reconciler is not None

    def _inert(self) -> bool:
        if self.configured:
            return False
        if not self._warned:
            log.warning("Base path not configured for upgraded objects; index operations are disabled")
            self._warned = True
        return True

    def _is_source(self, path: str) -> bool:
        return os.path.splitext(path)[1].lower() == self.settings.source_extension

    # -- events ---------------------------------------------------------------

    def dispatch(self, event: FileEvent) -> ReconcileResult:
        if self._inert():
            return ReconcileResult(SKIPPED)
        if not isinstance(event, (Saved, Created, Extracted, Deleted)):
            raise TypeError(f"Unknown file event: {event!r}")
        if not self._is_source(event.path):
            log.debug("Ignoring non-source file %s", event.path)
            return ReconcileResult(SKIPPED)
        try:
            if isinstance(event, Saved):
                result = self.reconciler.reconcile(event.path, event.previous_content, event.new_content)
                self._cache_update(event.path, event.new_content)
            elif isinstance(event, Created):
                result = self.reconciler.reconcile(event.path, None, event.content)
                self._cache_update(event.path, event.content)
            elif isinstance(event, Extracted):
                self.index.ensure()
                result = self.reconciler.link(event.path, event.content, event.legacy_path)
                self._cache_update(event.path, event.content)
            else:
                result = self.reconciler.forget(event.path)
                if self.cache.initialized:
                    self.cache.remove_file(event.path)
        except (OSError, ValueError) as exc:
            log.error("Error handling %s for %s: %s", type(event).__name__, event.path, exc)
            return ReconcileResult(FAILED, errors=[f"{event.path}: {exc}"])
        except Exception as exc:
            log.exception("Unexpected error handling %s for %s", type(event).__name__, event.path)
            return ReconcileResult(FAILED, errors=[f"{event.path}: {type(event).__name__} failed: {exc}"])

        for error in result.errors:
            log.error("%s", error)
        return result

    def _cache_update(self, path: str, content: str) -> None:
        if self.cache.initialized:
            self.cache.update_file(path, content)

    def on_file_saved(self, path: str, new_content: str, previous_content: str | None = None) -> ReconcileResult:
        return self.dispatch(Saved(os.fspath(path), new_content, previous_content))

    def on_file_created(self, path: str, content: str) -> ReconcileResult:
        return self.dispatch(Created(os.fspath(path), content))

    def on_file_deleted(self, path: str) -> ReconcileResult:
        return self.dispatch(Deleted(os.fspath(path)))

    def on_file_extracted(self, path: str, content: str, legacy_path: str) -> ReconcileResult:
        return self.dispatch(Extracted(os.fspath(path), content, legacy_path))

    # -- bulk -----------------------------------------------------------------

    def rebuild_index(self, progress: ProgressCallback | None = None) -> IndexSummary:
        if self._inert():
            return IndexSummary()
        summary = self.indexer.run(progress=progress)
        self.cache.invalidate()
        return summary

    def clean(self, prune_missing: bool = False) -> CleanSummary:
        """Remove soft-deleted objects from reverse references."""
        if self._inert():
            return CleanSummary()
        return CleanSummary(**self.reconciler.purge_deleted(prune_missing=prune_missing))

    def renumber(self, path: str | os.PathLike) -> tuple[NumberAssignment | None, ReconcileResult]:
        """Move the object in *path* to a free number and reindex it.

        The file is rewritten only when the number changes; the save then
        goes through the normal reconciliation so references follow.
        """
        if self._inert():
            return None, ReconcileResult(SKIPPED)
        path = os.fspath(path)
        content = read_source(path)
        assignment = assign_available_number(path, content, self.settings, index=self.index)
        if assignment is None:
            return None, ReconcileResult(SKIPPED)
        if not assignment.changed:
            return assignment, self.on_file_saved(path, content, content)
        with open(path, "w", encoding="utf-8", newline="") as handle:
            handle.write(assignment.content)
        return assignment, self.on_file_saved(path, assignment.content, content)

    # -- reads ----------------------------------------------------------------

    def lookup(self, object_type: str, object_id: int | str) -> IndexRecord | None:
        if self._inert():
            return None
        return self.index.get(ObjectIdentity.of(object_type, object_id))

    def references_for(self, legacy_file: str) -> ReverseReferenceRecord:
        if self._inert():
            return ReverseReferenceRecord(key=reference_key(legacy_file))
        return self.references.get(legacy_file)

    def legacy_files_for(self, object_type: str, object_id: int | str) -> list[str]:
        if self._inert():
            return []
        return self.references.legacy_files_for(ObjectIdentity.of(object_type, object_id), self.settings)

    # -- consistency ----------------------------------------------------------

    def verify(self) -> list[Problem]:
        """Check the index against its invariants.

        Reports unreadable records, records stored under the wrong key, two
        live records for one working file, and reverse references that do
        not mirror ``referencedMigrationFiles`` in either direction.
        """
        if self._inert():
            return []
        problems: list[Problem] = []
        live: dict[ObjectIdentity, IndexRecord] = {}
        by_path: dict[str, ObjectIdentity] = {}

        for identity, info in self.index.iter_keys():
            data = read_json_record(info)
            if data is None:
                problems.append(Problem("corrupt-record", str(info)))
                continue
            try:
                record = IndexRecord.from_json(data, identity)
            except RecordCorruptError as exc:
                problems.append(Problem("corrupt-record", f"{info}: {exc}"))
                continue
            if record.deleted:
                continue
            live[identity] = record
            declared = (str(data.get("objectType", "")).lower(), str(data.get("objectNumber", "")))
            if declared != (identity.object_type, identity.number):
                problems.append(Problem("misplaced-record", f"{info} declares {declared[0]} {declared[1]}"))
            if record.original_path:
                key = normalize_path(record.original_path)
                if key in by_path:
                    problems.append(
                        Problem("duplicate-path", f"{record.original_path} is indexed as {by_path[key]} and {identity}")
                    )
                else:
                    by_path[key] = identity

            for legacy_file in record.referenced_migration_files:
                if is_no_origin(legacy_file) or reference_key(legacy_file) is None:
                    continue
                if identity not in self.references.get(legacy_file):
                    problems.append(
                        Problem("missing-reverse-reference", f"{reference_key(legacy_file)} lacks {identity}")
                    )

        for ref in self.references.scan_all():
            for identity in ref.identities():
                record = live.get(identity)
                linked = record is not None and any(
                    reference_key(f) == ref.key for f in record.referenced_migration_files
                )
                if not linked:
                    problems.append(Problem("orphan-reverse-reference", f"{ref.key} lists {identity}"))
        return problems
