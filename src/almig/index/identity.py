"""Object identification from AL source text and legacy file names (regex-only)."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import PurePath

# Closed set of object keywords. Longest first so alternation never stops at
# a prefix ("table" vs "tableextension").
OBJECT_TYPES = (
    "tableextension",
    "pageextension",
    "reportextension",
    "enumextension",
    "codeunit",
    "interface",
    "profile",
    "xmlport",
    "report",
    "query",
    "table",
    "page",
    "enum",
)

DISPLAY_NAMES = {
    "table": "Table",
    "tableextension": "TableExtension",
    "page": "Page",
    "pageextension": "PageExtension",
    "report": "Report",
    "reportextension": "ReportExtension",
    "codeunit": "Codeunit",
    "query": "Query",
    "xmlport": "XmlPort",
    "enum": "Enum",
    "enumextension": "EnumExtension",
    "profile": "Profile",
    "interface": "Interface",
}

# Written by the original extension when a file has no known legacy origin.
NO_ORIGIN_SENTINEL = "orginFilePath"

_HEADER_RE = re.compile(
    r"^[ \t]*(?P<type>" + "|".join(OBJECT_TYPES) + r")\b[ \t]+(?P<id>[0-9]+)[ \t]+"
    r"(?:\"(?P<dq>[^\"\r\n]+)\"|'(?P<sq>[^'\r\n]+)')",
    re.IGNORECASE | re.MULTILINE,
)

# Page5_Currencies.txt, Table27_Item.txt
_LEGACY_NAME_RE = re.compile(r"^(?P<type>[A-Za-z]+)(?P<number>[0-9]+)_(?P<name>.+)\.(?P<ext>[A-Za-z0-9]+)$")

_EXTENDS_RE = re.compile(
    r"\bextends[ \t]+(?:\"(?P<dq>[^\"\r\n]+)\"|'(?P<sq>[^'\r\n]+)'|(?P<bare>[A-Za-z_][\w]*))",
    re.IGNORECASE,
)

_INVALID_FILE_CHARS = re.compile(r'[<>:"/\\|?*]')


@dataclass(frozen=True)
class ObjectIdentity:
    """A working object's ``(type, id)``; the name rides along but is not identity."""

    object_type: str
    object_id: int
    object_name: str = field(default="", compare=False, hash=False)

    @classmethod
    def of(cls, object_type: str, object_id: int | str, object_name: str = "") -> "ObjectIdentity":
        return cls(object_type.lower(), int(object_id), object_name)

    @property
    def number(self) -> str:
        """The id as the string stored on disk."""
        return str(self.object_id)

    def __str__(self) -> str:
        return f"{self.object_type} {self.object_id}"


def identify(text: str) -> ObjectIdentity | None:
    """Return the identity declared by the first header line in *text*.

    None means no line matched; callers treat that as "skip this file".
    """
    if not text:
        return None
    m = _HEADER_RE.search(text)
    if m is None:
        return None
    return ObjectIdentity(
        object_type=m.group("type").lower(),
        object_id=int(m.group("id")),
        object_name=m.group("dq") if m.group("dq") is not None else m.group("sq"),
    )


def replace_object_id(text: str, new_id: int) -> str:
    """Rewrite the id on the first header line of *text* and nowhere else."""
    m = _HEADER_RE.search(text)
    if m is None:
        return text
    start, end = m.span("id")
    return text[:start] + str(new_id) + text[end:]


def extends_target(text: str) -> str | None:
    """Name of the object an extension object extends, if declared."""
    m = _EXTENDS_RE.search(text or "")
    if m is None:
        return None
    return m.group("dq") or m.group("sq") or m.group("bare")


# ---------------------------------------------------------------------------
# Legacy (migration) file names
# ---------------------------------------------------------------------------


def parse_legacy_file_name(name: str) -> tuple[str, int, str] | None:
    """Split ``Table18_Item.txt`` into ``("table", 18, "Item")``.

    Returns None for names that do not follow ``<Type><Number>_<Name>.<ext>``.
    """
    m = _LEGACY_NAME_RE.match(PurePath(name).name)
    if m is None:
        return None
    return m.group("type").lower(), int(m.group("number")), m.group("name")


def is_no_origin(legacy_path: str | None) -> bool:
    return not legacy_path or legacy_path == NO_ORIGIN_SENTINEL


def reference_key(legacy_path: str) -> str | None:
    """File name of the reverse-reference record for *legacy_path*.

    Accepts a full path, a basename, or an existing ``.json`` key. Returns
    None when the name does not follow the legacy naming convention, since
    migration linkage cannot be derived for it.
    """
    if is_no_origin(legacy_path):
        return None
    name = PurePath(legacy_path.replace("\\", "/")).name
    if parse_legacy_file_name(name) is None:
        return None
    return PurePath(name).stem + ".json"


# ---------------------------------------------------------------------------
# Working file names
# ---------------------------------------------------------------------------


def sanitize_file_name(name: str) -> str:
    if not name:
        return "Unnamed"
    cleaned = _INVALID_FILE_CHARS.sub("_", name.strip())
    return re.sub(r"\s+", "_", cleaned)


def suggest_file_name(identity: ObjectIdentity, extension: str = ".al") -> str:
    """Canonical working file name, e.g. ``Table50100_Item.al``."""
    prefix = DISPLAY_NAMES.get(identity.object_type, identity.object_type.capitalize())
    return f"{prefix}{identity.object_id}_{sanitize_file_name(identity.object_name)}{extension}"
