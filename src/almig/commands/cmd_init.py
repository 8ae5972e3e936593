"""Initialize a project for almig: config file, index folder, first index."""

from __future__ import annotations

import click

from almig.config import find_project_root, load_settings, write_project_config
from almig.events import IndexService
from almig.index.identity import OBJECT_TYPES
from almig.output.formatter import json_envelope, to_json


def parse_folder_pairs(pairs: tuple[str, ...], option: str) -> dict[str, str]:
    """Turn ``TYPE=DIR`` option values into a folder mapping."""
    folders: dict[str, str] = {}
    for pair in pairs:
        object_type, sep, folder = pair.partition("=")
        object_type = object_type.strip().lower()
        if not sep or not folder.strip():
            raise click.BadParameter(f"expected TYPE=DIR, got {pair!r}", param_hint=option)
        if object_type != "default" and object_type not in OBJECT_TYPES:
            raise click.BadParameter(f"unknown object type {object_type!r}", param_hint=option)
        folders[object_type] = folder.strip()
    return folders


@click.command()
@click.option(
    "--base-path",
    default=".",
    show_default=True,
    help="Directory holding the upgraded objects; the index lives in <base-path>/.index.",
)
@click.option("--folder", "folders", multiple=True, help="Legacy folder for an object type, as TYPE=DIR.")
@click.option("--working", "working", multiple=True, help="Working folder for an object type, as TYPE=DIR.")
@click.option("--no-index", is_flag=True, help="Only write the config; skip the first index build.")
@click.pass_context
def init(ctx, base_path, folders, working, no_index):
    """Create .almig/config.json and build the object index.

    \b
      almig init --base-path upgraded --folder table=Tables --folder default=Misc
      almig init --working table=src/Tables --no-index
    """
    json_mode = ctx.obj.get("json") if ctx.obj else False
    root = find_project_root()

    config: dict = {"basePath": base_path}
    upgraded = parse_folder_pairs(folders, "--folder")
    if upgraded:
        config["upgradedObjectFolders"] = upgraded
    working_folders = parse_folder_pairs(working, "--working")
    if working_folders:
        config["workingObjectFolders"] = working_folders
    config_path = write_project_config(config, root)

    settings = load_settings(root)
    service = IndexService(settings)
    service.index.ensure()
    summary = None if no_index else service.rebuild_index()

    if json_mode:
        click.echo(
            to_json(
                json_envelope(
                    "init",
                    summary={"verdict": "initialized", "indexed": summary.indexed if summary else 0},
                    config_path=str(config_path),
                    base_path=str(settings.base_path),
                    index=summary.to_dict() if summary else None,
                )
            )
        )
        return

    click.echo(f"Wrote {config_path}")
    click.echo(f"Index folder: {settings.index_path}")
    if summary is not None:
        click.echo(f"Indexed {summary.indexed} objects from {summary.files} files.")
