"""Check the index for invariant violations."""

from __future__ import annotations

import click

from almig.commands.resolve import require_service
from almig.exit_codes import PartialFailureError
from almig.output.formatter import format_table, json_envelope, to_json


@click.command()
@click.pass_context
def verify(ctx):
    """Verify the object index and reverse references agree.

    Reports corrupt or misplaced records, working files indexed twice, and
    migration references missing from (or left over in) the legacy files'
    reverse-reference records. Exits 6 when anything is found.
    """
    json_mode = ctx.obj.get("json") if ctx.obj else False
    service = require_service(ctx)
    problems = service.verify()

    if json_mode:
        click.echo(
            to_json(
                json_envelope(
                    "verify",
                    summary={"verdict": "ok" if not problems else "violations", "problems": len(problems)},
                    problems=[p.to_dict() for p in problems],
                )
            )
        )
    elif problems:
        click.echo(format_table(["kind", "detail"], [[p.kind, p.detail] for p in problems]))
    else:
        click.echo("Index is consistent.")

    if problems:
        raise PartialFailureError(f"{len(problems)} problem(s) found.")
