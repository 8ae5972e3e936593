"""Keep the object index and reverse references consistent across edits.

A save is compared against the content the file had before the edit. When
the declared identity is unchanged only the record's location fields move.
When it changed (renumbered or retyped) the record is relocated:

1. write the record at the new identity, merging in the references of any
   record already stored there,
2. rewrite every legacy file's reverse reference from old to new,
3. remove the record at the old identity.

Step 1 failing aborts the move and leaves the old record in place. A failure
in step 2 is recorded and the loop carries on with the next legacy file.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field

from almig.index.identity import ObjectIdentity, identify, is_no_origin
from almig.index.jsonio import utc_now_iso
from almig.index.references import ReverseReferenceStore
from almig.index.store import IndexRecord, IndexStore, normalize_path

log = logging.getLogger(__name__)

CREATED = "created"
UPDATED = "updated"
UNCHANGED = "unchanged"
MOVED = "moved"
DELETED = "deleted"
SKIPPED = "skipped"
FAILED = "failed"


@dataclass
class ReconcileResult:
    outcome: str
    identity: ObjectIdentity | None = None
    previous_identity: ObjectIdentity | None = None
    errors: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.outcome != FAILED and not self.errors

    @property
    def partial(self) -> bool:
        return self.outcome != FAILED and bool(self.errors)

    def to_dict(self) -> dict:
        return {
            "outcome": self.outcome,
            "identity": _identity_dict(self.identity),
            "previous_identity": _identity_dict(self.previous_identity),
            "errors": list(self.errors),
        }


def _identity_dict(identity: ObjectIdentity | None) -> dict | None:
    if identity is None:
        return None
    return {"type": identity.object_type, "number": identity.number, "name": identity.object_name}


class Reconciler:
    """Applies file events to an :class:`IndexStore` and its reverse references."""

    def __init__(self, index: IndexStore, references: ReverseReferenceStore):
        self.index = index
        self.references = references

    # -- fresh objects --------------------------------------------------------

    def fresh(self, file_path: str | os.PathLike, identity: ObjectIdentity, touch: bool = True) -> ReconcileResult:
        """Index *identity* as found in *file_path* without prior content.

        An existing record only has its location fields refreshed; its
        migration references are never touched. With ``touch=False`` an
        existing record that already points at *file_path* is left as is,
        which keeps repeated rebuilds byte-stable.
        """
        file_path = os.fspath(file_path)
        existing = self.index.get(identity)
        if existing is None:
            record = IndexRecord.new(identity, file_path)
            outcome = CREATED
        else:
            same_place = (
                not existing.deleted
                and existing.original_path
                and normalize_path(existing.original_path) == normalize_path(file_path)
                and existing.file_name == os.path.basename(file_path)
            )
            if same_place and not touch:
                return ReconcileResult(UNCHANGED, identity)
            record = existing
            self._relocate_in_place(record, file_path)
            outcome = UPDATED

        try:
            self.index.put(record)
        except OSError as exc:
            return ReconcileResult(FAILED, identity, errors=[f"{file_path}: {exc}"])
        if outcome == CREATED:
            log.info("Created new index entry for %s (%s)", file_path, identity)
        else:
            log.debug("Updated index info for %s (%s)", file_path, identity)
        return ReconcileResult(outcome, identity)

    @staticmethod
    def _relocate_in_place(record: IndexRecord, file_path: str) -> None:
        record.original_path = file_path
        record.file_name = os.path.basename(file_path)
        record.last_updated = utc_now_iso()
        record.deleted = False
        record.deleted_at = None

    # -- saves ----------------------------------------------------------------

    def reconcile(
        self,
        file_path: str | os.PathLike,
        previous_content: str | None,
        new_content: str,
    ) -> ReconcileResult:
        """Bring the index in line with a save of *file_path*."""
        file_path = os.fspath(file_path)
        new = identify(new_content)
        if new is None:
            log.debug("No object header in %s, skipping", file_path)
            return ReconcileResult(SKIPPED)

        if previous_content is None:
            return self.fresh(file_path, new)

        old = identify(previous_content)
        if old is None:
            log.debug("Could not extract previous object info from %s", file_path)
            return self.fresh(file_path, new)

        if old == new:
            return self.fresh(file_path, new)

        return self._move(file_path, old, new)

    def _move(self, file_path: str, old: ObjectIdentity, new: ObjectIdentity) -> ReconcileResult:
        previous = self.index.get(old)
        if previous is None:
            log.info("No index entry for %s, indexing %s as new", old, new)
            result = self.fresh(file_path, new)
            result.previous_identity = old
            return result

        occupant = self.index.get(new)
        if (
            occupant is not None
            and not occupant.deleted
            and occupant.original_path
            and normalize_path(occupant.original_path) != normalize_path(file_path)
        ):
            log.warning(
                "%s is already indexed for %s; %s replaces it and takes over its references",
                new,
                occupant.original_path,
                file_path,
            )

        moved = previous.relocated(new, file_path)
        if occupant is not None:
            # Legacy files that already list *new* keep pointing at a live record.
            for legacy_file in occupant.referenced_migration_files:
                if legacy_file not in moved.referenced_migration_files:
                    moved.referenced_migration_files.append(legacy_file)
        try:
            self.index.put(moved)
        except OSError as exc:
            return ReconcileResult(FAILED, new, old, errors=[f"{self.index.info_path(new)}: {exc}"])

        errors = []
        for legacy_file in moved.referenced_migration_files:
            if is_no_origin(legacy_file):
                continue
            try:
                self.references.replace_reference(legacy_file, old, new)
            except OSError as exc:
                errors.append(f"{legacy_file}: {exc}")

        self.index.remove(old)
        if self.index.get(old) is not None:
            errors.append(f"{self.index.info_path(old)}: old index entry could not be removed")

        log.info("Moved index entry %s -> %s for %s", old, new, file_path)
        return ReconcileResult(MOVED, new, old, errors=errors)

    # -- extraction and deletion ----------------------------------------------

    def link(self, file_path: str | os.PathLike, content: str, legacy_file: str) -> ReconcileResult:
        """Index a working file extracted from *legacy_file* and link the two."""
        file_path = os.fspath(file_path)
        identity = identify(content)
        if identity is None:
            log.warning("Could not determine object type and number for %s", file_path)
            return ReconcileResult(SKIPPED)

        result = self.fresh(file_path, identity)
        if result.outcome == FAILED or is_no_origin(legacy_file):
            return result

        record = self.index.get(identity)
        if record is None:
            result.outcome = FAILED
            result.errors.append(f"{file_path}: index entry vanished while linking")
            return result
        if legacy_file not in record.referenced_migration_files:
            record.referenced_migration_files.append(legacy_file)
            try:
                self.index.put(record)
            except OSError as exc:
                result.outcome = FAILED
                result.errors.append(f"{file_path}: {exc}")
                return result

        try:
            if self.references.path_for(legacy_file) is None:
                log.warning("Could not extract object type and number from migration filename: %s", legacy_file)
            else:
                self.references.add_reference(legacy_file, identity)
        except OSError as exc:
            result.errors.append(f"{legacy_file}: {exc}")
        return result

    def forget(self, file_path: str | os.PathLike) -> ReconcileResult:
        """Soft-delete the record of a deleted working file.

        Reverse references are left alone; ``purge_deleted`` cleans them up.
        """
        file_path = os.fspath(file_path)
        record = self.index.find_by_path(file_path)
        if record is None:
            log.debug("No index entry for deleted file %s", file_path)
            return ReconcileResult(SKIPPED)
        try:
            self.index.mark_deleted(record.identity)
        except OSError as exc:
            return ReconcileResult(FAILED, record.identity, errors=[f"{file_path}: {exc}"])
        log.info("Marked index entry for %s as deleted", file_path)
        return ReconcileResult(DELETED, record.identity)

    def purge_deleted(self, prune_missing: bool = False) -> dict:
        """Drop soft-deleted objects from every reverse-reference record.

        With *prune_missing*, records whose working file no longer exists are
        soft-deleted first. Returns counts of what changed.
        """
        marked = 0
        purged = 0
        touched: set[str] = set()
        for record in list(self.index.scan_all()):
            if not record.deleted and prune_missing and record.original_path:
                if not os.path.exists(record.original_path):
                    try:
                        self.index.mark_deleted(record.identity)
                    except OSError:
                        continue
                    record.deleted = True
                    marked += 1
            if not record.deleted:
                continue
            changed = self.references.purge(record.identity)
            if changed:
                purged += 1
                touched.update(changed)
        return {"marked_deleted": marked, "objects_purged": purged, "reference_files": sorted(touched)}
