"""Tests for standardized CLI exit codes.

Validates that:
- Exit code constants have correct values
- Custom exceptions carry the right exit codes and messages
"""

from __future__ import annotations

import click
import pytest

from almig.exit_codes import (
    DESCRIPTIONS,
    EXIT_CONFIG_MISSING,
    EXIT_ERROR,
    EXIT_NOT_FOUND,
    EXIT_NOT_RECOGNIZED,
    EXIT_PARTIAL,
    EXIT_SUCCESS,
    EXIT_USAGE,
    AlmigError,
    ConfigMissingError,
    HeaderNotRecognizedError,
    NoFreeNumberError,
    ObjectNotFoundError,
    PartialFailureError,
)


class TestExitCodeConstants:
    def test_values(self):
        assert (EXIT_SUCCESS, EXIT_ERROR, EXIT_USAGE) == (0, 1, 2)
        assert (EXIT_CONFIG_MISSING, EXIT_NOT_RECOGNIZED, EXIT_NOT_FOUND, EXIT_PARTIAL) == (3, 4, 5, 6)

    def test_every_code_is_described(self):
        assert sorted(DESCRIPTIONS) == list(range(7))


class TestExceptions:
    @pytest.mark.parametrize(
        "error, code",
        [
            (ConfigMissingError(), EXIT_CONFIG_MISSING),
            (HeaderNotRecognizedError("/w/x.al"), EXIT_NOT_RECOGNIZED),
            (ObjectNotFoundError("Table", 42), EXIT_NOT_FOUND),
            (PartialFailureError(), EXIT_PARTIAL),
            (NoFreeNumberError("table", 1, 2), EXIT_PARTIAL),
            (AlmigError("boom"), EXIT_ERROR),
        ],
    )
    def test_exit_codes(self, error, code):
        assert isinstance(error, click.ClickException)
        assert error.exit_code == code

    def test_messages(self):
        assert ObjectNotFoundError("Table", 42).format_message() == "Could not find original file for Table 42"
        assert "/w/x.al" in HeaderNotRecognizedError("/w/x.al").format_message()
        assert NoFreeNumberError("page", 10, 20).format_message() == "No available page numbers in range 10-20"
