"""Reverse references: which working objects each legacy file relates to.

One record per legacy file, stored beside the object folders::

    <base>/.index/<LegacyBaseName>.json
    {"referencedWorkingObjects": [{"type": "table", "number": "50100"}]}

This is the inverse of ``IndexRecord.referenced_migration_files`` and is
updated by the reconciler in the same operation as the index.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterator

from almig.config import INDEX_DIR_NAME, Settings
from almig.index.identity import ObjectIdentity, reference_key
from almig.index.jsonio import read_json_record, write_json_record

log = logging.getLogger(__name__)


@dataclass
class ReverseReferenceRecord:
    """Working objects known to derive from one legacy file."""

    key: str | None
    objects: list[tuple[str, str]] = field(default_factory=list)
    extra: dict[str, Any] = field(default_factory=dict)

    def __contains__(self, identity: ObjectIdentity) -> bool:
        return (identity.object_type, identity.number) in self.objects

    def __len__(self) -> int:
        return len(self.objects)

    def identities(self) -> list[ObjectIdentity]:
        return [ObjectIdentity(t, int(n)) for t, n in self.objects if n.isascii() and n.isdigit()]

    def add(self, identity: ObjectIdentity) -> bool:
        pair = (identity.object_type, identity.number)
        if pair in self.objects:
            return False
        self.objects.append(pair)
        return True

    def discard(self, identity: ObjectIdentity) -> bool:
        pair = (identity.object_type, identity.number)
        if pair not in self.objects:
            return False
        self.objects = [p for p in self.objects if p != pair]
        return True

    def to_json(self) -> dict[str, Any]:
        data = dict(self.extra)
        data["referencedWorkingObjects"] = [{"type": t, "number": n} for t, n in self.objects]
        return data

    @classmethod
    def from_json(cls, key: str, data: dict[str, Any]) -> "ReverseReferenceRecord":
        objects: list[tuple[str, str]] = []
        raw = data.get("referencedWorkingObjects")
        for item in raw if isinstance(raw, list) else []:
            if not isinstance(item, dict) or "type" not in item or "number" not in item:
                continue
            pair = (str(item["type"]).lower(), str(item["number"]))
            # Older writers could leave duplicates behind; collapse them.
            if pair not in objects:
                objects.append(pair)
        extra = {k: v for k, v in data.items() if k != "referencedWorkingObjects"}
        return cls(key=key, objects=objects, extra=extra)


class ReverseReferenceStore:
    """Per-legacy-file JSON records under ``<base>/.index``."""

    def __init__(self, base_path: str | os.PathLike):
        self.base_path = Path(base_path)
        self.root = self.base_path / INDEX_DIR_NAME

    def __repr__(self) -> str:
        return f"ReverseReferenceStore({str(self.root)!r})"

    def path_for(self, legacy_file: str) -> Path | None:
        key = reference_key(legacy_file)
        if key is None:
            return None
        return self.root / key

    def get(self, legacy_file: str) -> ReverseReferenceRecord:
        """Record for *legacy_file*; empty when absent, corrupt, or unkeyable."""
        key = reference_key(legacy_file)
        if key is None:
            return ReverseReferenceRecord(key=None)
        data = read_json_record(self.root / key)
        if data is None:
            return ReverseReferenceRecord(key=key)
        return ReverseReferenceRecord.from_json(key, data)

    def _write(self, record: ReverseReferenceRecord) -> None:
        path = self.root / record.key
        try:
            write_json_record(path, record.to_json())
        except OSError as exc:
            log.error("Error updating migration reference in %s: %s", path, exc)
            raise

    def add_reference(self, legacy_file: str, identity: ObjectIdentity) -> bool:
        """Add *identity* to the legacy file's record.

        Returns True when the record was written; False for a name outside
        the legacy convention or when the pair was already present.
        """
        record = self.get(legacy_file)
        if record.key is None:
            log.debug("Skipping reverse reference for %s: not a legacy file name", legacy_file)
            return False
        if not record.add(identity):
            return False
        self._write(record)
        log.info("Updated migration reference in %s for %s", record.key, identity)
        return True

    def remove_reference(self, legacy_file: str, identity: ObjectIdentity) -> bool:
        record = self.get(legacy_file)
        if record.key is None or not record.discard(identity):
            return False
        self._write(record)
        log.info("Removed %s from migration reference %s", identity, record.key)
        return True

    def replace_reference(self, legacy_file: str, old: ObjectIdentity, new: ObjectIdentity) -> bool:
        """Swap *old* for *new* in one write, so the record never holds neither."""
        record = self.get(legacy_file)
        if record.key is None:
            return False
        removed = record.discard(old)
        added = record.add(new)
        if not (removed or added):
            return False
        self._write(record)
        log.info("Updated migration reference in %s: changed %s to %s", record.key, old, new)
        return True

    # -- traversal ----------------------------------------------------------

    def scan_all(self) -> Iterator[ReverseReferenceRecord]:
        """Yield every readable record, sorted by key."""
        if not self.root.is_dir():
            return
        for path in sorted(self.root.glob("*.json")):
            if not path.is_file():
                continue
            data = read_json_record(path)
            if data is None:
                continue
            yield ReverseReferenceRecord.from_json(path.name, data)

    def legacy_files_for(self, identity: ObjectIdentity, settings: Settings | None = None) -> list[str]:
        """Legacy files whose records contain *identity*.

        With *settings*, each key is resolved to its file inside the legacy
        folder configured for the object type; otherwise the legacy file
        name is returned.
        """
        legacy_ext = settings.legacy_extension if settings else ".txt"
        folder = settings.legacy_folder(identity.object_type) if settings else None
        found = []
        for record in self.scan_all():
            if identity not in record:
                continue
            name = Path(record.key).stem + legacy_ext
            found.append(str(folder / name) if folder else name)
        return found

    def purge(self, identity: ObjectIdentity) -> list[str]:
        """Remove *identity* from every record. Returns the keys changed.

        A failed write is logged and skipped.
        """
        changed = []
        for record in self.scan_all():
            if not record.discard(identity):
                continue
            try:
                self._write(record)
            except OSError:
                continue
            changed.append(record.key)
        return changed
