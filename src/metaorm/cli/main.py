"""metaorm CLI - Main entry point."""

import logging
import sys
from importlib.metadata import PackageNotFoundError
from importlib.metadata import version as package_version
from pathlib import Path
from typing import Annotated

import typer

import metaorm
from metaorm.cli.context import CLIContext
from metaorm.cli.output import OutputFormatter
from metaorm.core.config import Configuration

# Create main Typer app
app = typer.Typer(
    name="metaorm",
    help="metaorm CLI - Metadata-driven schema synchronization and SQL compilation",
    no_args_is_help=True,
)

# Store CLI context globally (will be set in callback)
state: dict[str, CLIContext] = {}

DEPENDENCIES = ("sqlalchemy", "pydantic", "typer", "rich")


@app.callback()
def main_callback(
    ctx: typer.Context,
    entities: Annotated[
        str | None,
        typer.Option(
            "--entities",
            "-e",
            help="Entity descriptions JSON file (METAORM_ENTITIES_PATH)",
        ),
    ] = None,
    database: Annotated[
        str | None,
        typer.Option(
            "--database",
            "-d",
            help="Database URL (METAORM_DATABASE_URL)",
        ),
    ] = None,
    platform: Annotated[
        str | None,
        typer.Option(
            "--platform",
            "-p",
            help="Target platform: sqlite, postgresql or mysql (METAORM_PLATFORM)",
        ),
    ] = None,
    naming: Annotated[
        str | None,
        typer.Option("--naming", help="Naming strategy: underscore or entity_case"),
    ] = None,
    no_wrap: Annotated[
        bool,
        typer.Option("--no-wrap", help="Omit the platform schema preamble/epilogue"),
    ] = False,
    echo: Annotated[
        bool,
        typer.Option("--echo", help="Echo executed SQL statements"),
    ] = False,
    json_output: Annotated[
        bool,
        typer.Option(
            "--json",
            "-j",
            help="Output as JSON (machine-readable)",
        ),
    ] = False,
    debug: Annotated[
        bool,
        typer.Option("--debug", help="Verbose logging on stderr"),
    ] = False,
) -> None:
    """Initialize CLI context with global options."""
    config = Configuration.from_env(
        entities_path=entities,
        database_url=database,
        platform=platform,
        naming_strategy=naming,
        wrap=False if no_wrap else None,
        debug=True if debug else None,
    )

    logging.basicConfig(
        level=logging.DEBUG if config.debug else logging.WARNING,
        stream=sys.stderr,
        format="%(levelname)s %(name)s: %(message)s",
    )

    cli_ctx = CLIContext(config=config, json_output=json_output, echo=echo)

    # Store in Typer context for command access
    ctx.obj = cli_ctx
    state["cli_ctx"] = cli_ctx


@app.command()
def version() -> None:
    """Show version information."""
    typer.echo(f"metaorm v{metaorm.__version__}")


@app.command("debug")
def debug_info(ctx: typer.Context) -> None:
    """Show configuration, dependency versions and entities file status."""
    cli_ctx: CLIContext = ctx.obj
    formatter = OutputFormatter(cli_ctx.json_output)
    config = cli_ctx.config

    versions: dict[str, str] = {}
    for name in DEPENDENCIES:
        try:
            versions[name] = package_version(name)
        except PackageNotFoundError:
            versions[name] = "not installed"

    entities_path = Path(config.entities_path)
    info: dict[str, object] = {
        "version": metaorm.__version__,
        "python": sys.version.split()[0],
        "config": config.model_dump(),
        "dependencies": versions,
        "entities_file": {"path": str(entities_path), "exists": entities_path.exists()},
    }

    if entities_path.exists():
        try:
            registry = cli_ctx.get_registry()
            info["entities_file"] = {
                "path": str(entities_path),
                "exists": True,
                "entities": registry.names(),
            }
        except Exception as e:
            formatter.print_error(e)
            raise typer.Exit(code=1)

    if cli_ctx.json_output:
        formatter.print_data(info)
        return

    typer.echo(f"\nmetaorm v{info['version']} (Python {info['python']})")
    formatter.print_table(
        "Configuration",
        [{"Setting": k, "Value": v} for k, v in config.model_dump().items()],
        ["Setting", "Value"],
    )
    formatter.print_table(
        "Dependencies",
        [{"Package": k, "Version": v} for k, v in versions.items()],
        ["Package", "Version"],
    )
    typer.echo(f"Entities file: {info['entities_file']}")


# Register command groups
from metaorm.cli.commands import schema  # noqa: E402

app.add_typer(schema.app, name="schema")


def main() -> None:
    """Main entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
