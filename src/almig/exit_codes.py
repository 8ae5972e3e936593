"""Standardized CLI exit codes and error classes for almig.

Exit code scheme:

    0  SUCCESS         -- command completed
    1  GENERAL_ERROR   -- unexpected failure, crash, unhandled exception
    2  USAGE_ERROR     -- invalid arguments, bad flags, unknown command (Click default)
    3  CONFIG_MISSING  -- no base path configured, run `almig init` first
    4  NOT_RECOGNIZED  -- file has no recognizable object header
    5  NOT_FOUND       -- no index record for the requested object
    6  PARTIAL         -- command completed but some files or references failed

Scripts driving almig from editor hooks can tell "nothing to do" (4) from
"the index is now partially inconsistent" (6).
"""

from __future__ import annotations

import click

# ---------------------------------------------------------------------------
# Exit code constants
# ---------------------------------------------------------------------------

EXIT_SUCCESS: int = 0
EXIT_ERROR: int = 1
EXIT_USAGE: int = 2
EXIT_CONFIG_MISSING: int = 3
EXIT_NOT_RECOGNIZED: int = 4
EXIT_NOT_FOUND: int = 5
EXIT_PARTIAL: int = 6

DESCRIPTIONS: dict[int, str] = {
    EXIT_SUCCESS: "success",
    EXIT_ERROR: "unexpected error",
    EXIT_USAGE: "invalid usage (bad arguments or flags)",
    EXIT_CONFIG_MISSING: "no base path configured -- run `almig init`",
    EXIT_NOT_RECOGNIZED: "object header not recognized",
    EXIT_NOT_FOUND: "object not found in the index",
    EXIT_PARTIAL: "partial results (completed with errors)",
}

# ---------------------------------------------------------------------------
# Custom exceptions (caught by the click error handler)
# ---------------------------------------------------------------------------


class AlmigError(click.ClickException):
    """Base class for almig errors with exit codes."""

    def __init__(self, message: str, exit_code: int = EXIT_ERROR):
        super().__init__(message)
        self.exit_code = exit_code

    def format_message(self) -> str:
        return self.message


class ConfigMissingError(AlmigError):
    """Raised when no base path is configured for the index."""

    def __init__(self, message: str = "No base path configured. Run `almig init --base-path <dir>` first."):
        super().__init__(message, EXIT_CONFIG_MISSING)


class HeaderNotRecognizedError(AlmigError):
    """Raised when a file the user asked about has no object header."""

    def __init__(self, path: str):
        super().__init__(f"Object header not recognized in {path}", EXIT_NOT_RECOGNIZED)
        self.path = path


class ObjectNotFoundError(AlmigError):
    """Raised when the index has no record for a requested object."""

    def __init__(self, object_type: str, object_id: int | str):
        super().__init__(
            f"Could not find original file for {object_type} {object_id}",
            EXIT_NOT_FOUND,
        )
        self.object_type = object_type
        self.object_id = object_id


class PartialFailureError(AlmigError):
    """Raised when a command finished but some steps failed."""

    def __init__(self, message: str = "Completed with errors."):
        super().__init__(message, EXIT_PARTIAL)


class NoFreeNumberError(AlmigError):
    """Raised when every object number in the configured ranges is taken."""

    def __init__(self, object_type: str, low: int, high: int):
        super().__init__(
            f"No available {object_type} numbers in range {low}-{high}",
            EXIT_PARTIAL,
        )
        self.object_type = object_type
        self.low = low
        self.high = high
