"""Manage per-project almig configuration (.almig/config.json)."""

from __future__ import annotations

import os

import click

from almig.commands.cmd_init import parse_folder_pairs
from almig.config import (
    ENV_BASE_PATH,
    LOG_LEVELS,
    find_project_root,
    get_config_path,
    load_project_config,
    load_settings,
    write_project_config,
)
from almig.output.formatter import json_envelope, to_json


@click.command("config")
@click.option("--set-base-path", "base_path", default=None, help="Directory holding the upgraded objects.")
@click.option("--folder", "folders", multiple=True, help="Legacy folder for an object type, as TYPE=DIR.")
@click.option("--working", "working", multiple=True, help="Working folder for an object type, as TYPE=DIR.")
@click.option(
    "--log-level",
    type=click.Choice(sorted(LOG_LEVELS), case_sensitive=False),
    default=None,
    help="Default logging level.",
)
@click.option("--show", is_flag=True, help="Print current configuration.")
@click.pass_context
def config(ctx, base_path, folders, working, log_level, show):
    """Manage per-project almig configuration (.almig/config.json).

    Folder options merge into the existing mappings:

    \b
      almig config --set-base-path upgraded
      almig config --folder page=Pages --working page=src/Pages
      almig config --log-level verbose

    The ``ALMIG_BASE_PATH`` environment variable still wins over the saved
    base path.
    """
    json_mode = ctx.obj.get("json") if ctx.obj else False
    root = find_project_root()
    current = load_project_config(root)

    updates: dict = {}
    if base_path is not None:
        updates["basePath"] = base_path
    if folders:
        merged = dict(current.get("upgradedObjectFolders") or {})
        merged.update(parse_folder_pairs(folders, "--folder"))
        updates["upgradedObjectFolders"] = merged
    if working:
        merged = dict(current.get("workingObjectFolders") or {})
        merged.update(parse_folder_pairs(working, "--working"))
        updates["workingObjectFolders"] = merged
    if log_level is not None:
        updates["logLevel"] = log_level.lower()

    if updates:
        config_path = write_project_config(updates, root)
        if json_mode:
            click.echo(
                to_json(
                    json_envelope(
                        "config",
                        summary={"verdict": "saved", "keys": sorted(updates)},
                        config_path=str(config_path),
                        updated=updates,
                    )
                )
            )
        else:
            for key in sorted(updates):
                click.echo(f"{key} saved to {config_path}")
        return

    settings = load_settings(root)
    if json_mode:
        click.echo(
            to_json(
                json_envelope(
                    "config",
                    summary={"verdict": "configured" if settings.configured else "not configured"},
                    config_path=str(get_config_path(root)),
                    config=current,
                    base_path=str(settings.base_path) if settings.base_path else None,
                    log_level=settings.log_level,
                )
            )
        )
        return

    if not current and not show:
        click.echo("No configuration set. Run `almig init` or `almig config --help`.")
        return
    click.echo(f"Config file: {get_config_path(root)}")
    click.echo(f"Base path:   {settings.base_path or '(not set)'}")
    if settings.base_path is not None and os.environ.get(ENV_BASE_PATH):
        click.echo(f"             (from ${ENV_BASE_PATH})")
    click.echo(f"Log level:   {settings.log_level}")
    for title, mapping in (
        ("Legacy folders", settings.upgraded_object_folders),
        ("Working folders", settings.working_object_folders),
    ):
        click.echo(f"{title}:")
        if not mapping:
            click.echo("  (none)")
        for key in sorted(mapping):
            click.echo(f"  {key}: {mapping[key]}")
