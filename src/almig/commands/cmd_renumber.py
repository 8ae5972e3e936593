"""Give a working object a free number from the app's id ranges."""

from __future__ import annotations

import os

import click

from almig.commands.resolve import describe_result, echo_errors, raise_for_result, require_service
from almig.exit_codes import HeaderNotRecognizedError
from almig.output.formatter import json_envelope, to_json


@click.command()
@click.argument("path", type=click.Path(exists=True, dir_okay=False))
@click.pass_context
def renumber(ctx, path):
    """Move the object in PATH to a free number and update the index.

    The current number is kept when it lies inside the ``idRanges`` of
    app.json and no other object of the same type uses it. Otherwise the
    lowest free number is written into the header and the index record and
    reverse references move with it.
    """
    json_mode = ctx.obj.get("json") if ctx.obj else False
    service = require_service(ctx)
    path = os.path.abspath(path)

    assignment, result = service.renumber(path)
    if assignment is None:
        raise HeaderNotRecognizedError(path)

    if json_mode:
        click.echo(
            to_json(
                json_envelope(
                    "renumber",
                    summary={"verdict": "renumbered" if assignment.changed else "kept", "number": assignment.new_id},
                    path=path,
                    old_number=assignment.identity.object_id,
                    new_number=assignment.new_id,
                    **result.to_dict(),
                )
            )
        )
    else:
        if assignment.changed:
            click.echo(f"{assignment.identity} -> {assignment.new_id}")
        else:
            click.echo(f"{assignment.identity} kept")
        click.echo(describe_result(result))
        echo_errors(result.errors)

    raise_for_result(result)
