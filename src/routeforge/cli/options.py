"""Options shared by CLI commands."""

import os
import sys
from pathlib import Path

import click

from routeforge.api.app import load_plugins


def default_schema_path() -> Path:
    return Path(os.environ.get("ROUTEFORGE_SCHEMA_PATH", "schemas"))


def import_plugins(plugins: tuple[str, ...]) -> None:
    """Import plugin modules, resolving them from the working directory too."""
    if not plugins:
        return
    if os.getcwd() not in sys.path:
        sys.path.insert(0, os.getcwd())
    load_plugins(list(plugins))


plugin_option = click.option(
    "--plugin",
    "plugins",
    multiple=True,
    help="Module registering schema functions and hooks, imported first (repeatable).",
)
