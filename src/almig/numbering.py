"""Assign a free object number from the app's declared id ranges."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass

from almig.config import DEFAULT_ID_RANGE, Settings, load_id_ranges
from almig.exit_codes import NoFreeNumberError
from almig.index.discovery import read_source
from almig.index.identity import ObjectIdentity, identify, replace_object_id
from almig.index.store import IndexStore, normalize_path

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class NumberAssignment:
    identity: ObjectIdentity
    new_id: int
    content: str

    @property
    def changed(self) -> bool:
        return self.new_id != self.identity.object_id


def in_ranges(number: int, ranges: list[tuple[int, int]]) -> bool:
    return any(low <= number <= high for low, high in ranges)


def used_numbers(
    object_type: str,
    settings: Settings,
    index: IndexStore | None = None,
    exclude_path: str | os.PathLike | None = None,
) -> set[int]:
    """Numbers taken by other objects of *object_type*.

    Looks at the files in the type's working folder and at live index
    records; the file at *exclude_path* does not count.
    """
    skip = normalize_path(exclude_path) if exclude_path else None
    used: set[int] = set()

    folder = settings.working_folder(object_type)
    if folder is not None and folder.is_dir():
        for entry in sorted(folder.iterdir()):
            if entry.suffix.lower() != settings.source_extension or not entry.is_file():
                continue
            if skip and normalize_path(entry) == skip:
                continue
            try:
                identity = identify(read_source(entry))
            except OSError as exc:
                log.error("Error reading file %s: %s", entry, exc)
                continue
            if identity is not None and identity.object_type == object_type:
                used.add(identity.object_id)
    elif folder is not None:
        log.warning("Target path for %s does not exist: %s", object_type, folder)

    if index is not None:
        for record in index.scan_all():
            if record.deleted or record.object_type != object_type:
                continue
            if skip and record.original_path and normalize_path(record.original_path) == skip:
                continue
            used.add(record.identity.object_id)
    return used


def next_free_number(used: set[int], ranges: list[tuple[int, int]]) -> int | None:
    for low, high in sorted(ranges):
        for n in range(low, high + 1):
            if n not in used:
                return n
    return None


def assign_available_number(
    file_path: str | os.PathLike,
    content: str,
    settings: Settings,
    index: IndexStore | None = None,
) -> NumberAssignment | None:
    """Pick a number for the object declared in *content*.

    The current number is kept when it lies inside the app's id ranges and
    no other object of the same type uses it. Returns None when *content*
    has no object header; raises :class:`NoFreeNumberError` when the ranges
    are exhausted.
    """
    identity = identify(content)
    if identity is None:
        return None

    ranges = load_id_ranges(settings.project_root)
    if not ranges:
        log.info("No ID ranges found in app.json, using default range (%d-%d)", *DEFAULT_ID_RANGE)
        ranges = [DEFAULT_ID_RANGE]

    used = used_numbers(identity.object_type, settings, index=index, exclude_path=file_path)
    if in_ranges(identity.object_id, ranges) and identity.object_id not in used:
        log.info("Object number %d is already valid and available", identity.object_id)
        return NumberAssignment(identity, identity.object_id, content)

    new_id = next_free_number(used, ranges)
    if new_id is None:
        raise NoFreeNumberError(identity.object_type, min(r[0] for r in ranges), max(r[1] for r in ranges))
    log.info("Assigning %s number %d (was %d)", identity.object_type, new_id, identity.object_id)
    return NumberAssignment(identity, new_id, replace_object_id(content, new_id))
