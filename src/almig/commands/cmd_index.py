"""Build or rebuild the object index."""

from __future__ import annotations

import click

from almig.commands.resolve import require_service
from almig.exit_codes import PartialFailureError
from almig.output.formatter import json_envelope, to_json


@click.command()
@click.option("--no-progress", is_flag=True, help="Suppress progress output")
@click.pass_context
def index(ctx, no_progress):
    """Build or rebuild the object index from the working files.

    Existing records keep their migration references; only their location
    fields are refreshed. Running it twice in a row changes nothing on disk.
    """
    json_mode = ctx.obj.get("json") if ctx.obj else False
    service = require_service(ctx)

    progress = None
    if not (json_mode or no_progress):
        def progress(done, total):
            click.echo(f"  {done}/{total} files", err=True)

    summary = service.rebuild_index(progress=progress)

    if json_mode:
        click.echo(
            to_json(
                json_envelope(
                    "index",
                    summary={
                        "verdict": "partial" if summary.failed else "ok",
                        "files": summary.files,
                        "indexed": summary.indexed,
                    },
                    elapsed_s=summary.elapsed_s,
                    **{k: v for k, v in summary.to_dict().items() if k != "elapsed_s"},
                )
            )
        )
    else:
        click.echo(f"Index complete. ({summary.elapsed_s:.1f}s)")
        click.echo(
            f"  {summary.files} files, {summary.indexed} objects "
            f"({summary.created} new, {summary.updated} updated), "
            f"{summary.skipped} skipped, {summary.failed} failed"
        )
        if summary.duplicates:
            click.echo(f"  {summary.duplicates} file(s) declare an object already indexed from another file")

    if summary.failed:
        raise PartialFailureError(f"{summary.failed} file(s) could not be indexed.")
