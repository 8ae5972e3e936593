"""Click CLI entry point with lazy-loaded subcommands."""

import logging
import os
import sys

# Fix Unicode output on Windows consoles (cp1252, cp850, etc.)
if sys.platform == "win32" and not os.environ.get("PYTHONIOENCODING"):
    sys.stdout.reconfigure(encoding="utf-8", errors="replace")
    sys.stderr.reconfigure(encoding="utf-8", errors="replace")

import click

from almig.config import LOG_LEVELS, load_settings


# Lazy-loading command group: imports command modules only when invoked.
_COMMANDS = {
    "init":     ("almig.commands.cmd_init",     "init"),
    "config":   ("almig.commands.cmd_config",   "config"),
    "index":    ("almig.commands.cmd_index",    "index"),
    "created":  ("almig.commands.cmd_events",   "created"),
    "saved":    ("almig.commands.cmd_events",   "saved"),
    "deleted":  ("almig.commands.cmd_events",   "deleted"),
    "link":     ("almig.commands.cmd_events",   "link"),
    "lookup":   ("almig.commands.cmd_lookup",   "lookup"),
    "refs":     ("almig.commands.cmd_lookup",   "refs"),
    "clean":    ("almig.commands.cmd_clean",    "clean"),
    "verify":   ("almig.commands.cmd_verify",   "verify"),
    "renumber": ("almig.commands.cmd_renumber", "renumber"),
}

# Command categories for organized --help display
_CATEGORIES = {
    "Setup": ["init", "config", "index"],
    "File Events": ["created", "saved", "deleted", "link"],
    "Queries": ["lookup", "refs"],
    "Maintenance": ["clean", "verify", "renumber"],
}

_LOG_FORMAT = "%(levelname)s %(name)s: %(message)s"


class LazyGroup(click.Group):
    """A Click group that lazy-loads command modules on first access."""

    def list_commands(self, ctx):
        return sorted(_COMMANDS.keys())

    def get_command(self, ctx, cmd_name):
        if cmd_name not in _COMMANDS:
            return None
        module_path, attr_name = _COMMANDS[cmd_name]
        import importlib
        mod = importlib.import_module(module_path)
        return getattr(mod, attr_name)

    def format_help(self, ctx, formatter):
        """Categorized help display instead of flat alphabetical list."""
        self.format_usage(ctx, formatter)
        formatter.write("\n")
        if self.help:
            formatter.write(self.help + "\n\n")
        # Options only; commands are listed by category below
        click.Command.format_options(self, ctx, formatter)
        formatter.write("\n")

        for cat_name, cmds in _CATEGORIES.items():
            formatter.write(f"  {cat_name}:\n")
            for cmd_name in cmds:
                cmd = self.get_command(ctx, cmd_name)
                if cmd is None:
                    continue
                formatter.write(f"    {cmd_name:12s} {cmd.get_short_help_str(limit=60)}\n")
            formatter.write("\n")

        formatter.write("  Run `almig <command> --help` for details on any command.\n")


_handler: logging.Handler | None = None


def _configure_logging(level_name: str) -> None:
    """Send ``almig.*`` log records to the current stderr at *level_name*."""
    global _handler
    root = logging.getLogger("almig")
    root.setLevel(LOG_LEVELS[level_name])
    if _handler is not None:
        root.removeHandler(_handler)
    _handler = logging.StreamHandler(sys.stderr)
    _handler.setFormatter(logging.Formatter(_LOG_FORMAT))
    root.addHandler(_handler)


@click.group(cls=LazyGroup)
@click.version_option(package_name="almig")
@click.option("--json", "json_mode", is_flag=True, help="Output in JSON format")
@click.option("--verbose", "-v", "verbosity", flag_value="verbose", help="Log every index operation")
@click.option("--quiet", "-q", "verbosity", flag_value="minimal", help="Only log warnings and errors")
@click.pass_context
def cli(ctx, json_mode, verbosity):
    """almig: object index for migrated AL working files."""
    ctx.ensure_object(dict)
    ctx.obj["json"] = json_mode
    settings = load_settings()
    _configure_logging(verbosity or settings.log_level)
    ctx.obj["settings"] = settings
