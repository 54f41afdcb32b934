"""Schema CLI commands."""

from pathlib import Path

import click

from routeforge.cli.options import default_schema_path, import_plugins, plugin_option
from routeforge.relations import resolve_relationships
from routeforge.schema.definition import validate_schema_dir
from routeforge.schema.introspect import introspect
from routeforge.schema.loader import load_schemas


@click.group()
def schema():
    """Schema commands."""
    pass


@schema.command()
@click.option(
    "--schemas",
    "schema_path",
    default=None,
    type=click.Path(file_okay=False, path_type=Path),
    help="Directory of record-type YAML files (default: $ROUTEFORGE_SCHEMA_PATH or ./schemas).",
)
@plugin_option
def check(schema_path: Path | None, plugins: tuple[str, ...]):
    """Validate and load the schemas; report fields, geo fields and relationships."""
    schema_path = schema_path or default_schema_path()
    if not schema_path.exists():
        click.echo(f"Error: Schema directory not found at {schema_path}", err=True)
        raise SystemExit(1)

    issues = validate_schema_dir(schema_path)
    for issue in issues:
        color = "red" if issue.severity == "error" else "yellow"
        click.echo(click.style(str(issue), fg=color), err=True)
    errors = [i for i in issues if i.severity == "error"]
    if errors:
        click.echo(
            click.style(f"\nSchema validation failed: {len(errors)} error(s)", fg="red"),
            err=True,
        )
        raise SystemExit(1)

    try:
        import_plugins(plugins)
        registry = load_schemas(schema_path)
    except Exception as e:
        click.echo(click.style(f"Schema loading failed: {e}", fg="red"), err=True)
        raise SystemExit(1)

    if not len(registry):
        click.echo(click.style(f"No record types found in {schema_path}", fg="yellow"))
        return

    click.echo(f"Loaded {len(registry)} record type(s):")
    for record_type in registry:
        view = introspect(record_type)
        details = [f"{len(view.fields)} fields"]
        if view.geo_field:
            details.append(f"geo: {view.geo_field}")
        if view.subdocument_fields:
            details.append(f"sub-documents: {', '.join(view.subdocument_fields)}")
        if view.methods:
            details.append(f"methods: {', '.join(view.methods)}")
        click.echo(f"  ✓ {record_type.name} ({'; '.join(details)})")

        for descriptor in resolve_relationships(record_type, registry):
            arrow = "[]" if descriptor.related_array else ""
            click.echo(
                f"      {descriptor.owning_field} -> "
                f"{descriptor.related_type}.{descriptor.related_field}{arrow}"
            )

    click.echo(click.style("\nAll schemas are valid.", fg="green", bold=True))
