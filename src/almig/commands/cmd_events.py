"""Feed file events into the index: created, saved, deleted, link."""

from __future__ import annotations

import os

import click

from almig.commands.resolve import describe_result, echo_errors, raise_for_result, require_service
from almig.events import Created, Deleted, Extracted, FileEvent, Saved, read_text
from almig.exit_codes import HeaderNotRecognizedError
from almig.index.reconcile import SKIPPED
from almig.output.formatter import json_envelope, to_json


def _apply(ctx, command: str, event: FileEvent, require_header: bool = True) -> None:
    json_mode = ctx.obj.get("json") if ctx.obj else False
    service = require_service(ctx)
    result = service.dispatch(event)

    if json_mode:
        click.echo(
            to_json(
                json_envelope(
                    command,
                    summary={"verdict": result.outcome, "errors": len(result.errors)},
                    path=event.path,
                    **result.to_dict(),
                )
            )
        )
    else:
        click.echo(describe_result(result))
        echo_errors(result.errors)

    if require_header and result.outcome == SKIPPED:
        raise HeaderNotRecognizedError(event.path)
    raise_for_result(result)


def _read(path: str) -> str:
    try:
        return read_text(path)
    except OSError as exc:
        raise click.FileError(path, hint=str(exc))


@click.command()
@click.argument("path", type=click.Path(exists=True, dir_okay=False))
@click.pass_context
def created(ctx, path):
    """Index a newly created working file."""
    path = os.path.abspath(path)
    _apply(ctx, "created", Created(path, _read(path)))


@click.command()
@click.argument("path", type=click.Path(exists=True, dir_okay=False))
@click.option(
    "--previous",
    "previous_file",
    type=click.Path(exists=True, dir_okay=False),
    default=None,
    help="File holding the content PATH had before the save.",
)
@click.pass_context
def saved(ctx, path, previous_file):
    """Reconcile the index after PATH was saved.

    Without ``--previous`` the save is treated like a fresh file: the record
    is created or its location refreshed. With it, a changed object type or
    number moves the record and rewrites every reverse reference.
    """
    path = os.path.abspath(path)
    previous = _read(previous_file) if previous_file else None
    _apply(ctx, "saved", Saved(path, _read(path), previous))


@click.command()
@click.argument("path", type=click.Path())
@click.pass_context
def deleted(ctx, path):
    """Mark the record of a deleted working file as deleted."""
    _apply(ctx, "deleted", Deleted(os.path.abspath(path)), require_header=False)


@click.command()
@click.argument("path", type=click.Path(exists=True, dir_okay=False))
@click.argument("legacy")
@click.pass_context
def link(ctx, path, legacy):
    """Record that the working file PATH was extracted from LEGACY.

    LEGACY is the legacy file path (``Table50100_Item.txt``); it is added to
    the object's migration references and the object to the legacy file's
    reverse references.
    """
    path = os.path.abspath(path)
    _apply(ctx, "link", Extracted(path, _read(path), legacy))
