"""Project configuration: discovery, loading, resolution of the index base path."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

log = logging.getLogger(__name__)

CONFIG_DIR = ".almig"
CONFIG_NAME = "config.json"
INDEX_DIR_NAME = ".index"

ENV_BASE_PATH = "ALMIG_BASE_PATH"
ENV_LOG_LEVEL = "ALMIG_LOG_LEVEL"

DEFAULT_SOURCE_EXTENSION = ".al"
DEFAULT_LEGACY_EXTENSION = ".txt"
DEFAULT_CACHE_TTL_S = 300
DEFAULT_BATCH_SIZE = 20

# Log levels as named in the editor settings
LOG_LEVELS: dict[str, int] = {
    "verbose": logging.DEBUG,
    "normal": logging.INFO,
    "minimal": logging.WARNING,
}
DEFAULT_LOG_LEVEL = "minimal"

# Default object number range when app.json declares none
DEFAULT_ID_RANGE = (50000, 99999)

_APP_JSON_LOCATIONS = ("app.json", "src/app.json", "app/app.json", "AL/app.json")


@dataclass(frozen=True)
class Settings:
    """Resolved configuration for one project."""

    project_root: Path
    base_path: Path | None = None
    upgraded_object_folders: dict[str, str] = field(default_factory=dict)
    working_object_folders: dict[str, str] = field(default_factory=dict)
    log_level: str = DEFAULT_LOG_LEVEL
    source_extension: str = DEFAULT_SOURCE_EXTENSION
    legacy_extension: str = DEFAULT_LEGACY_EXTENSION
    cache_ttl_s: int = DEFAULT_CACHE_TTL_S
    batch_size: int = DEFAULT_BATCH_SIZE

    @property
    def configured(self) -> bool:
        return self.base_path is not None

    @property
    def index_path(self) -> Path | None:
        if self.base_path is None:
            return None
        return self.base_path / INDEX_DIR_NAME

    def working_folder(self, object_type: str) -> Path | None:
        """Absolute working folder for *object_type*, or None if unset."""
        folder = self.working_object_folders.get(object_type)
        if not folder:
            return None
        return _absolute(folder, self.project_root)

    def legacy_folder(self, object_type: str) -> Path | None:
        """Folder holding legacy files of *object_type*.

        Extension types share the folder of their base type, so
        ``tableextension`` resolves through the ``table`` entry.
        """
        if self.base_path is None:
            return None
        base_type = object_type.replace("extension", "")
        folder = self.upgraded_object_folders.get(base_type) or self.upgraded_object_folders.get("default")
        if not folder:
            return None
        return _absolute(folder, self.base_path)


def _absolute(folder: str, anchor: Path) -> Path:
    p = Path(folder)
    if not p.is_absolute():
        p = anchor / p
    return p.resolve()


def find_project_root(start: str | Path = ".") -> Path:
    """Walk up from *start* looking for a .almig or .git directory.

    Falls back to *start* itself when neither is found.
    """
    current = Path(start).resolve()
    while current != current.parent:
        if (current / CONFIG_DIR).is_dir() or (current / ".git").exists():
            return current
        current = current.parent
    return Path(start).resolve()


def get_config_path(project_root: Path) -> Path:
    return project_root / CONFIG_DIR / CONFIG_NAME


def load_project_config(project_root: Path) -> dict[str, Any]:
    """Load .almig/config.json if it exists.

    Returns an empty dict if the file is missing or malformed.
    """
    config_path = get_config_path(project_root)
    if not config_path.exists():
        return {}
    try:
        cfg = json.loads(config_path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        log.warning("Ignoring unreadable config %s: %s", config_path, exc)
        return {}
    if not isinstance(cfg, dict):
        log.warning("Ignoring config %s: not a JSON object", config_path)
        return {}
    return cfg


def write_project_config(config: dict[str, Any], project_root: Path | None = None) -> Path:
    """Write (or update) .almig/config.json.

    Merges *config* into the existing config so existing keys are preserved.
    Returns the path of the written file.
    """
    if project_root is None:
        project_root = find_project_root()
    config_dir = project_root / CONFIG_DIR
    config_dir.mkdir(exist_ok=True)
    config_path = config_dir / CONFIG_NAME
    existing = load_project_config(project_root)
    existing.update(config)
    config_path.write_text(json.dumps(existing, indent=2, ensure_ascii=False) + "\n", encoding="utf-8")
    return config_path


def load_settings(project_root: Path | None = None) -> Settings:
    """Resolve settings for *project_root*.

    Resolution order (first match wins):

    1. ``ALMIG_BASE_PATH`` / ``ALMIG_LOG_LEVEL`` environment variables.
    2. ``.almig/config.json``: ``basePath``, falling back to
       ``upgradedObjectFolders.basePath``.
    3. Defaults (no base path: the index is inert).
    """
    if project_root is None:
        project_root = find_project_root()
    project_root = Path(project_root).resolve()
    cfg = load_project_config(project_root)

    upgraded = cfg.get("upgradedObjectFolders") or {}
    if not isinstance(upgraded, dict):
        log.warning("upgradedObjectFolders must be an object, ignoring")
        upgraded = {}
    working = cfg.get("workingObjectFolders") or {}
    if not isinstance(working, dict):
        log.warning("workingObjectFolders must be an object, ignoring")
        working = {}

    raw_base = os.environ.get(ENV_BASE_PATH) or cfg.get("basePath") or upgraded.get("basePath")
    base_path = _absolute(raw_base, project_root) if raw_base else None

    level = (os.environ.get(ENV_LOG_LEVEL) or cfg.get("logLevel") or DEFAULT_LOG_LEVEL).lower()
    if level not in LOG_LEVELS:
        log.warning("Invalid log level: %s", level)
        level = DEFAULT_LOG_LEVEL

    return Settings(
        project_root=project_root,
        base_path=base_path,
        upgraded_object_folders={k: v for k, v in upgraded.items() if k != "basePath" and v},
        working_object_folders={k: v for k, v in working.items() if v},
        log_level=level,
        source_extension=_extension(cfg.get("sourceExtension"), DEFAULT_SOURCE_EXTENSION),
        legacy_extension=_extension(cfg.get("legacyExtension"), DEFAULT_LEGACY_EXTENSION),
        cache_ttl_s=_positive_int(cfg.get("cacheTtlSeconds"), DEFAULT_CACHE_TTL_S),
        batch_size=_positive_int(cfg.get("batchSize"), DEFAULT_BATCH_SIZE),
    )


def _extension(value: Any, default: str) -> str:
    if not value or not isinstance(value, str):
        return default
    value = value.lower()
    return value if value.startswith(".") else "." + value


def _positive_int(value: Any, default: int) -> int:
    try:
        n = int(value)
    except (TypeError, ValueError):
        return default
    return n if n > 0 else default


# ---------------------------------------------------------------------------
# app.json id ranges
# ---------------------------------------------------------------------------


def find_app_json(project_root: Path) -> Path | None:
    for rel in _APP_JSON_LOCATIONS:
        candidate = project_root / rel
        if candidate.is_file():
            return candidate
    return None


def load_id_ranges(project_root: Path) -> list[tuple[int, int]]:
    """Read ``idRanges`` from the project's app.json.

    Invalid entries (non-numeric, from > to) are dropped. Returns an empty
    list when there is no app.json or it declares no ranges.
    """
    app_json = find_app_json(project_root)
    if app_json is None:
        log.info("No app.json found under %s", project_root)
        return []
    try:
        data = json.loads(app_json.read_text(encoding="utf-8-sig"))
    except (OSError, ValueError) as exc:
        log.warning("Error reading ID ranges from %s: %s", app_json, exc)
        return []
    if not isinstance(data, dict):
        log.warning("Ignoring ID ranges in %s: not a JSON object", app_json)
        return []

    declared = data.get("idRanges") or []
    if not isinstance(declared, list):
        log.warning("Ignoring idRanges in %s: not a list", app_json)
        return []
    ranges = []
    for entry in declared:
        try:
            low, high = int(entry["from"]), int(entry["to"])
        except (KeyError, TypeError, ValueError):
            continue
        if low <= high:
            ranges.append((low, high))
    return ranges
