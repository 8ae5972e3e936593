"""Shared helpers for commands: service construction and result reporting."""

from __future__ import annotations

import click

from almig.config import load_settings
from almig.events import IndexService
from almig.exit_codes import AlmigError, ConfigMissingError, PartialFailureError
from almig.index.reconcile import FAILED, ReconcileResult


def require_service(ctx) -> IndexService:
    """IndexService for the current project, or ConfigMissingError (exit 3)."""
    settings = (ctx.obj or {}).get("settings") or load_settings()
    if not settings.configured:
        raise ConfigMissingError()
    return IndexService(settings)


def describe_result(result: ReconcileResult) -> str:
    if result.identity is None:
        return result.outcome
    if result.previous_identity is not None and result.previous_identity != result.identity:
        return f"{result.outcome}: {result.previous_identity} -> {result.identity}"
    return f"{result.outcome}: {result.identity}"


def raise_for_result(result: ReconcileResult) -> None:
    """Map a failed or partial result to its exit code."""
    if result.outcome == FAILED:
        raise AlmigError("; ".join(result.errors) or "Index update failed.")
    if result.partial:
        raise PartialFailureError(f"Completed with {len(result.errors)} error(s).")


def echo_errors(errors: list[str]) -> None:
    for error in errors:
        click.echo(f"  ! {error}")
