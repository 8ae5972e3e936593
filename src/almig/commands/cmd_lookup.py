"""Query the index: object records and legacy-file reverse references."""

from __future__ import annotations

import click

from almig.commands.resolve import require_service
from almig.exit_codes import ObjectNotFoundError
from almig.index.identity import DISPLAY_NAMES, OBJECT_TYPES
from almig.output.formatter import format_table, json_envelope, record_row, to_json


@click.command()
@click.argument("object_type", type=click.Choice(OBJECT_TYPES, case_sensitive=False))
@click.argument("object_id", type=int)
@click.pass_context
def lookup(ctx, object_type, object_id):
    """Show the index record and legacy files for one object."""
    json_mode = ctx.obj.get("json") if ctx.obj else False
    service = require_service(ctx)
    object_type = object_type.lower()

    record = service.lookup(object_type, object_id)
    if record is None:
        raise ObjectNotFoundError(DISPLAY_NAMES.get(object_type, object_type), object_id)
    legacy_files = service.legacy_files_for(object_type, object_id)

    if json_mode:
        click.echo(
            to_json(
                json_envelope(
                    "lookup",
                    summary={
                        "verdict": "deleted" if record.deleted else "found",
                        "legacy_files": len(legacy_files),
                    },
                    record=record.to_json(),
                    legacy_files=legacy_files,
                )
            )
        )
        return

    click.echo(format_table(["type", "number", "status", "path"], [record_row(record)]))
    click.echo(f"\nIndexed at: {record.indexed_at}")
    if record.last_updated:
        click.echo(f"Last updated: {record.last_updated}")
    if record.deleted_at:
        click.echo(f"Deleted at: {record.deleted_at}")
    click.echo("\nMigration files:")
    for name in record.referenced_migration_files or ["(none)"]:
        click.echo(f"  {name}")
    if legacy_files:
        click.echo("\nReferenced by legacy files:")
        for name in legacy_files:
            click.echo(f"  {name}")


@click.command()
@click.argument("legacy")
@click.pass_context
def refs(ctx, legacy):
    """List the working objects derived from the legacy file LEGACY."""
    json_mode = ctx.obj.get("json") if ctx.obj else False
    service = require_service(ctx)

    ref = service.references_for(legacy)
    rows = []
    for identity in ref.identities():
        record = service.lookup(identity.object_type, identity.object_id)
        status = "missing" if record is None else ("deleted" if record.deleted else "live")
        path = record.original_path if record is not None else "-"
        rows.append([identity.object_type, identity.number, status, path or "-"])

    if json_mode:
        click.echo(
            to_json(
                json_envelope(
                    "refs",
                    summary={"verdict": "found" if rows else "empty", "objects": len(rows)},
                    key=ref.key,
                    objects=[dict(zip(["type", "number", "status", "path"], row)) for row in rows],
                )
            )
        )
        return

    if ref.key is None:
        click.echo(f"{legacy} does not follow the <Type><Number>_<Name> naming convention")
        return
    click.echo(f"{ref.key}:")
    click.echo(format_table(["type", "number", "status", "path"], rows))
