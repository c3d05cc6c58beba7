"""Command-line interface for ProfileStub.

This module provides commands to inspect how structure descriptions are
normalized and how field values are coerced.
"""

import json
from typing import Any

import click

from profilestub import __version__
from profilestub.core.config import get_settings
from profilestub.core.exceptions import StructureError
from profilestub.core.logging import configure_logging, get_logger
from profilestub.domain.entities.schema import FieldType
from profilestub.domain.services.structure_normalizer import normalize_structure
from profilestub.domain.services.value_coercion import coerce_value


def _parse_value(raw: str, as_json: bool) -> Any:
    if not as_json:
        return raw
    try:
        return json.loads(raw)
    except json.JSONDecodeError as e:
        raise click.BadParameter(f"not valid JSON: {e}", param_hint="VALUE") from e


@click.group()
@click.version_option(version=__version__, prog_name="ProfileStub")
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]),
    default=None,
    help="Set log level (overrides environment)",
)
def cli(log_level: str | None) -> None:
    """ProfileStub - a stand-in for a marketing-database API."""
    settings = get_settings()
    if log_level is not None:
        settings = settings.model_copy(update={"log_level": log_level})
    configure_logging(settings)


@cli.command()
@click.argument("structure_file", type=click.File("r"))
@click.option(
    "--known-values",
    is_flag=True,
    default=False,
    help="Print the IDs and names consumed per scope instead of the structure",
)
def normalize(structure_file, known_values: bool) -> None:
    """Normalize a JSON structure description and print the result.

    STRUCTURE_FILE holds databases with their collections and fields; use
    '-' to read from standard input.
    """
    logger = get_logger(__name__)
    try:
        description = json.load(structure_file)
    except json.JSONDecodeError as e:
        raise click.ClickException(f"Invalid JSON: {e}") from e

    try:
        schema = normalize_structure(description)
    except StructureError as e:
        logger.warning("Structure rejected", error=str(e))
        raise click.ClickException(str(e)) from e

    output = dict(schema.known_values) if known_values else schema.to_dict()
    click.echo(json.dumps(output, indent=2))


@cli.command()
@click.argument("field_type", type=click.Choice([t.value for t in FieldType]))
@click.argument("value")
@click.option(
    "--json",
    "as_json",
    is_flag=True,
    default=False,
    help="Parse VALUE as JSON (numbers, booleans, lists) instead of a string",
)
def coerce(field_type: str, value: str, as_json: bool) -> None:
    """Show the stored representation of VALUE for a field of FIELD_TYPE."""
    settings = get_settings()
    result = coerce_value(_parse_value(value, as_json), field_type, settings.tzinfo)
    click.echo(json.dumps(result))


@cli.command()
def info() -> None:
    """Show the active settings."""
    settings = get_settings()
    click.echo(f"ProfileStub {__version__}")
    for name, value in settings.model_dump().items():
        click.echo(f"  {name}: {value}")


def main() -> None:
    """Main entry point for the CLI.

    This function is called when the `profilestub` command is run
    or when using `python -m profilestub`.
    """
    cli()


if __name__ == "__main__":
    main()
