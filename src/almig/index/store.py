"""On-disk object index: one ``info.json`` per ``(type, id)`` under ``.index``.

Layout::

    <base>/.index/<objectType>/<objectId>/info.json

The filesystem is the authority; nothing here caches records between calls.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Iterator

from almig.config import INDEX_DIR_NAME
from almig.index.identity import ObjectIdentity
from almig.index.jsonio import read_json_record, utc_now_iso, write_json_record

log = logging.getLogger(__name__)

INFO_FILE_NAME = "info.json"

# Keys owned by IndexRecord; anything else found on disk is carried in ``extra``.
_KNOWN_KEYS = frozenset({
    "originalPath",
    "fileName",
    "objectType",
    "objectNumber",
    "indexedAt",
    "lastUpdated",
    "deleted",
    "deletedAt",
    "referencedMigrationFiles",
})

_OPTIONAL_STR_KEYS = ("originalPath", "fileName", "indexedAt", "lastUpdated", "deletedAt")


class RecordCorruptError(ValueError):
    """An ``info.json`` parsed as JSON but its fields have the wrong types."""


def normalize_path(path: str | os.PathLike) -> str:
    """Absolute path with forward slashes, case-folded where the OS is."""
    return os.path.normcase(os.path.abspath(os.fspath(path))).replace("\\", "/")


@dataclass
class IndexRecord:
    """Metadata for one working object."""

    identity: ObjectIdentity
    original_path: str = ""
    file_name: str = ""
    indexed_at: str = field(default_factory=utc_now_iso)
    last_updated: str | None = None
    deleted: bool = False
    deleted_at: str | None = None
    referenced_migration_files: list[str] = field(default_factory=list)
    extra: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def new(cls, identity: ObjectIdentity, original_path: str | os.PathLike) -> "IndexRecord":
        path = os.fspath(original_path)
        return cls(identity=identity, original_path=path, file_name=os.path.basename(path))

    @property
    def object_type(self) -> str:
        return self.identity.object_type

    @property
    def object_number(self) -> str:
        return self.identity.number

    def relocated(self, identity: ObjectIdentity, original_path: str | os.PathLike) -> "IndexRecord":
        """Copy of this record moved to *identity*, history and references kept.

        The copy describes a live file, so any soft delete is cleared.
        """
        path = os.fspath(original_path)
        return replace(
            self,
            identity=identity,
            original_path=path,
            file_name=os.path.basename(path),
            last_updated=utc_now_iso(),
            deleted=False,
            deleted_at=None,
            referenced_migration_files=list(self.referenced_migration_files),
            extra=dict(self.extra),
        )

    def to_json(self) -> dict[str, Any]:
        data: dict[str, Any] = dict(self.extra)
        data.update({
            "originalPath": self.original_path,
            "fileName": self.file_name,
            "objectType": self.object_type,
            "objectNumber": self.object_number,
            "indexedAt": self.indexed_at,
        })
        if self.last_updated:
            data["lastUpdated"] = self.last_updated
        if self.deleted:
            data["deleted"] = True
        if self.deleted_at:
            data["deletedAt"] = self.deleted_at
        data["referencedMigrationFiles"] = list(self.referenced_migration_files)
        return data

    @classmethod
    def from_json(cls, data: dict[str, Any], identity: ObjectIdentity) -> "IndexRecord":
        """Build a record from ``info.json`` contents stored at *identity*'s key.

        The key wins over ``objectType``/``objectNumber`` inside the file.
        Raises RecordCorruptError when a known field has the wrong type.
        """
        for key in _OPTIONAL_STR_KEYS:
            value = data.get(key)
            if value is not None and not isinstance(value, str):
                raise RecordCorruptError(f"{key} must be a string, got {type(value).__name__}")
        deleted = data.get("deleted")
        if deleted is not None and not isinstance(deleted, bool):
            raise RecordCorruptError(f"deleted must be a boolean, got {type(deleted).__name__}")
        refs = data.get("referencedMigrationFiles")
        if refs is not None and not isinstance(refs, list):
            raise RecordCorruptError(f"referencedMigrationFiles must be a list, got {type(refs).__name__}")
        refs = refs or []
        original_path = data.get("originalPath") or ""
        return cls(
            identity=identity,
            original_path=original_path,
            file_name=data.get("fileName") or os.path.basename(original_path),
            indexed_at=data.get("indexedAt") or "",
            last_updated=data.get("lastUpdated"),
            deleted=bool(deleted),
            deleted_at=data.get("deletedAt"),
            referenced_migration_files=[str(r) for r in refs if isinstance(r, str)],
            extra={k: v for k, v in data.items() if k not in _KNOWN_KEYS},
        )


class IndexStore:
    """Hierarchical key-value store of :class:`IndexRecord` keyed by identity."""

    def __init__(self, base_path: str | os.PathLike):
        self.base_path = Path(base_path)
        self.root = self.base_path / INDEX_DIR_NAME

    def __repr__(self) -> str:
        return f"IndexStore({str(self.root)!r})"

    def exists(self) -> bool:
        return self.root.is_dir()

    def ensure(self) -> Path:
        """Create the ``.index`` directory if missing."""
        if not self.root.is_dir():
            self.root.mkdir(parents=True, exist_ok=True)
            log.info("Created index folder at %s", self.root)
        return self.root

    def info_path(self, identity: ObjectIdentity) -> Path:
        return self.root / identity.object_type / identity.number / INFO_FILE_NAME

    # -- basic operations ---------------------------------------------------

    def _load(self, identity: ObjectIdentity, info: Path) -> IndexRecord | None:
        data = read_json_record(info)
        if data is None:
            return None
        try:
            return IndexRecord.from_json(data, identity)
        except RecordCorruptError as exc:
            log.warning("Corrupt record %s: %s", info, exc)
            return None

    def get(self, identity: ObjectIdentity) -> IndexRecord | None:
        """Record at *identity*; missing and corrupt records are both None."""
        return self._load(identity, self.info_path(identity))

    def put(self, record: IndexRecord) -> None:
        """Write *record* at its identity's key, replacing any existing record.

        Raises OSError when the record could not be written.
        """
        path = self.info_path(record.identity)
        try:
            write_json_record(path, record.to_json())
        except OSError as exc:
            log.error("Error writing index record %s: %s", path, exc)
            raise
        log.debug("Wrote index record %s", path)

    def remove(self, identity: ObjectIdentity) -> bool:
        """Delete the record and prune empty parent directories.

        Returns False when nothing was removed; failures are logged.
        """
        info = self.info_path(identity)
        try:
            info.unlink()
        except FileNotFoundError:
            return False
        except OSError as exc:
            log.error("Error removing index record %s: %s", info, exc)
            return False
        for folder in (info.parent, info.parent.parent):
            try:
                if any(folder.iterdir()):
                    break
                folder.rmdir()
            except OSError as exc:
                log.warning("Error cleaning up old index folder %s: %s", folder, exc)
                break
        return True

    def mark_deleted(self, identity: ObjectIdentity) -> IndexRecord | None:
        """Soft-delete the record in place. Returns the updated record."""
        record = self.get(identity)
        if record is None:
            return None
        record.deleted = True
        record.deleted_at = utc_now_iso()
        self.put(record)
        return record

    # -- traversal ----------------------------------------------------------

    def iter_keys(self) -> Iterator[tuple[ObjectIdentity, Path]]:
        """Yield ``(identity, info.json path)`` for every key with an info file."""
        if not self.root.is_dir():
            return
        type_dirs = sorted((p for p in self.root.iterdir() if p.is_dir()), key=lambda p: p.name)
        for type_dir in type_dirs:
            id_dirs = sorted(
                (p for p in type_dir.iterdir() if p.is_dir() and p.name.isascii() and p.name.isdigit()),
                key=lambda p: int(p.name),
            )
            for id_dir in id_dirs:
                info = id_dir / INFO_FILE_NAME
                if info.is_file():
                    yield ObjectIdentity(type_dir.name, int(id_dir.name)), info

    def scan_all(self) -> Iterator[IndexRecord]:
        """Yield every readable record, ordered by type then numeric id."""
        for identity, info in self.iter_keys():
            record = self._load(identity, info)
            if record is not None:
                yield record

    def find_by_path(self, path: str | os.PathLike, include_deleted: bool = False) -> IndexRecord | None:
        """First record whose ``originalPath`` is *path*."""
        wanted = normalize_path(path)
        for record in self.scan_all():
            if record.deleted and not include_deleted:
                continue
            if record.original_path and normalize_path(record.original_path) == wanted:
                return record
        return None
