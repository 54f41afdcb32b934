"""routeforge CLI entry point."""

import logging
import os
from pathlib import Path

import click

from routeforge.api.builder import RestApi
from routeforge.cli.options import default_schema_path, import_plugins, plugin_option
from routeforge.config import ApiOptions, load_api_options
from routeforge.persistence import MemoryStore
from routeforge.schema.loader import load_schemas


@click.group()
def cli():
    """routeforge: REST APIs from record-type schemas."""
    pass


@cli.command()
@click.option(
    "--schemas",
    "schema_path",
    default=None,
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    help="Directory of record-type YAML files (default: $ROUTEFORGE_SCHEMA_PATH or ./schemas).",
)
@click.option("--path", "mount_path", default=None, help="Mount prefix, e.g. /api.")
@click.option("--pluralize/--no-pluralize", default=None, help="Pluralize route segments.")
@click.option("--lowercase/--no-lowercase", default=None, help="Lower-case route segments.")
@click.option("--puts/--no-puts", default=None, help="Register PUT aliases.")
@click.option("--exclude", multiple=True, help="Record type to leave without routes (repeatable).")
@plugin_option
def routes(
    schema_path: Path | None,
    mount_path: str | None,
    pluralize: bool | None,
    lowercase: bool | None,
    puts: bool | None,
    exclude: tuple[str, ...],
    plugins: tuple[str, ...],
):
    """Print the route table derived from the schemas."""
    schema_path = schema_path or default_schema_path()
    try:
        import_plugins(plugins)
        registry = load_schemas(schema_path)
    except Exception as e:
        click.echo(click.style(f"Failed to load schemas: {e}", fg="red"), err=True)
        raise SystemExit(1)

    data = load_api_options(schema_path).model_dump()
    for key, value in (
        ("path", mount_path),
        ("pluralize", pluralize),
        ("lowercase", lowercase),
        ("puts", puts),
    ):
        if value is not None:
            data[key] = value
    if exclude:
        data["exclude"] = [*data["exclude"], *exclude]

    api = RestApi(registry, MemoryStore(registry), ApiOptions.from_dict(data))
    for entry in api.routes:
        click.echo(f"{entry.method:<7}{entry.path}")
    click.echo(f"\n{len(api.routes)} route(s) for {len(registry)} record type(s).")


@cli.command()
@click.option("--host", default="127.0.0.1", show_default=True)
@click.option("--port", default=8000, show_default=True, type=int)
@click.option("--reload", is_flag=True, default=False, help="Reload on code changes.")
@click.option(
    "--log-level",
    default=lambda: os.environ.get("ROUTEFORGE_LOG_LEVEL", "info").lower(),
    type=click.Choice(["critical", "error", "warning", "info", "debug"], case_sensitive=False),
    help="Log level (default: $ROUTEFORGE_LOG_LEVEL or info).",
)
def serve(host: str, port: int, reload: bool, log_level: str):
    """Run the API server (configuration from the environment)."""
    import uvicorn

    logging.basicConfig(
        level=log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    uvicorn.run(
        "routeforge.api.app:create_app",
        factory=True,
        host=host,
        port=port,
        reload=reload,
        log_level=log_level.lower(),
    )


# Register subcommand groups
from routeforge.cli.schema_cmd import schema  # noqa: E402

cli.add_command(schema)
