"""JSON record I/O shared by the index and reverse-reference stores."""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

log = logging.getLogger(__name__)


def utc_now_iso() -> str:
    """Current UTC time as ``2024-05-01T12:00:00.000Z``."""
    return datetime.now(tz=timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def read_json_record(path: Path) -> dict[str, Any] | None:
    """Read a JSON object from *path*.

    Missing files return None silently. Unreadable or unparsable files
    (and JSON that is not an object) are logged and also return None; the
    caller treats them as absent.
    """
    try:
        text = path.read_text(encoding="utf-8-sig")
    except FileNotFoundError:
        return None
    except OSError as exc:
        log.warning("Cannot read %s: %s", path, exc)
        return None
    try:
        data = json.loads(text)
    except ValueError as exc:
        log.warning("Corrupt record %s: %s", path, exc)
        return None
    if not isinstance(data, dict):
        log.warning("Corrupt record %s: expected a JSON object", path)
        return None
    return data


def write_json_record(path: Path, payload: dict[str, Any]) -> None:
    """Write *payload* as pretty-printed JSON via temp file + rename.

    Parent directories are created. Raises OSError on failure, leaving any
    previous file at *path* intact.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(path.suffix + ".tmp")
    try:
        with tmp.open("w", encoding="utf-8") as handle:
            json.dump(payload, handle, indent=2, ensure_ascii=False)
            handle.write("\n")
        tmp.replace(path)
    except OSError:
        tmp.unlink(missing_ok=True)
        raise
