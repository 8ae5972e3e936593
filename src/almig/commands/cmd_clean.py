"""Remove deleted objects from reverse references without a rebuild."""

from __future__ import annotations

import click

from almig.commands.resolve import require_service
from almig.output.formatter import json_envelope, to_json


@click.command("clean")
@click.option(
    "--prune-missing",
    is_flag=True,
    help="First mark records whose working file no longer exists as deleted.",
)
@click.pass_context
def clean(ctx, prune_missing):
    """Drop soft-deleted objects from every legacy file's reverse references.

    Deleting a working file only marks its record as deleted, so the legacy
    files keep pointing at it until this command runs. Records themselves
    are kept.
    """
    json_mode = ctx.obj.get("json") if ctx.obj else False
    service = require_service(ctx)
    result = service.clean(prune_missing=prune_missing)

    if json_mode:
        click.echo(
            to_json(
                json_envelope(
                    "clean",
                    summary={
                        "verdict": "cleaned" if result.reference_files else "clean",
                        "objects_purged": result.objects_purged,
                    },
                    marked_deleted=result.marked_deleted,
                    objects_purged=result.objects_purged,
                    reference_files=result.reference_files,
                )
            )
        )
        return

    if prune_missing:
        click.echo(f"Marked {result.marked_deleted} missing file(s) as deleted.")
    if not result.reference_files:
        click.echo("Reverse references are clean.")
        return
    click.echo(
        f"Removed {result.objects_purged} deleted object(s) from "
        f"{len(result.reference_files)} reference file(s):"
    )
    for key in result.reference_files:
        click.echo(f"  {key}")
