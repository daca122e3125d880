"""Schema synchronization commands."""

from typing import Annotated

import typer

from metaorm.cli.context import CLIContext
from metaorm.cli.output import OutputFormatter

# Create schema subcommand group
app = typer.Typer(help="Generate and apply schema DDL from entity descriptions")

RunOption = Annotated[
    bool,
    typer.Option("--run", "-r", help="Execute the statements against --database"),
]
SnapshotOption = Annotated[
    str | None,
    typer.Option(
        "--snapshot",
        "-s",
        help="Compare against a JSON schema snapshot instead of the database",
    ),
]


def _emit(
    cli_ctx: CLIContext,
    formatter: OutputFormatter,
    statements: list[str],
    run: bool,
    title: str,
) -> None:
    if not run:
        formatter.print_sql(statements, title)
        return

    executed = cli_ctx.get_connection().execute(statements)
    formatter.print_success(f"{title}: executed {executed} statements", {"statements": executed})


@app.command("create")
def schema_create(ctx: typer.Context, run: RunOption = False) -> None:
    """Print (or run) the DDL creating every table.

    Examples:

        metaorm --entities entities.json schema create
        metaorm -d sqlite:///app.db schema create --run
    """
    cli_ctx: CLIContext = ctx.obj
    formatter = OutputFormatter(cli_ctx.json_output)

    try:
        statements = cli_ctx.get_generator().get_create_schema_sql(wrap=cli_ctx.config.wrap)
        _emit(cli_ctx, formatter, statements, run, "Create schema")
    except Exception as e:
        formatter.print_error(e)
        raise typer.Exit(code=1)
    finally:
        cli_ctx.close()


@app.command("drop")
def schema_drop(
    ctx: typer.Context,
    run: RunOption = False,
    drop_migrations_table: Annotated[
        bool,
        typer.Option("--drop-migrations-table", help="Also drop the migrations table"),
    ] = False,
    force: Annotated[
        bool,
        typer.Option("--force", help="Skip confirmation prompt"),
    ] = False,
) -> None:
    """Print (or run) the DDL dropping every table in reverse dependency order."""
    cli_ctx: CLIContext = ctx.obj
    formatter = OutputFormatter(cli_ctx.json_output)

    if run and not force and not cli_ctx.json_output:
        confirm = typer.confirm("Are you sure you want to drop every table?")
        if not confirm:
            typer.echo("Cancelled.")
            raise typer.Exit(code=0)

    try:
        statements = cli_ctx.get_generator().get_drop_schema_sql(
            wrap=cli_ctx.config.wrap, drop_migrations_table=drop_migrations_table
        )
        _emit(cli_ctx, formatter, statements, run, "Drop schema")
    except Exception as e:
        formatter.print_error(e)
        raise typer.Exit(code=1)
    finally:
        cli_ctx.close()


@app.command("update")
def schema_update(
    ctx: typer.Context,
    run: RunOption = False,
    snapshot: SnapshotOption = None,
    safe: Annotated[
        bool | None,
        typer.Option("--safe/--unsafe", help="Never emit drop statements"),
    ] = None,
    drop_tables: Annotated[
        bool | None,
        typer.Option("--drop-tables/--keep-tables", help="Drop tables without metadata"),
    ] = None,
) -> None:
    """Print (or run) the DDL bringing the live schema in line with the entities.

    Examples:

        metaorm -d sqlite:///app.db schema update --safe
        metaorm schema update --snapshot live.json
    """
    cli_ctx: CLIContext = ctx.obj
    formatter = OutputFormatter(cli_ctx.json_output)
    config = cli_ctx.config

    try:
        schema = cli_ctx.get_live_schema(snapshot)
        generator = cli_ctx.get_generator()
        statements = generator.get_update_schema_sql(
            schema,
            wrap=False,
            safe=config.safe if safe is None else safe,
            drop_tables=config.drop_tables if drop_tables is None else drop_tables,
        )
        # an up to date schema prints "No changes." without the preamble
        if statements:
            statements = generator.wrap_schema(statements, config.wrap)
        _emit(cli_ctx, formatter, statements, run and bool(statements), "Update schema")
    except Exception as e:
        formatter.print_error(e)
        raise typer.Exit(code=1)
    finally:
        cli_ctx.close()


@app.command("diff")
def schema_diff(
    ctx: typer.Context,
    snapshot: SnapshotOption = None,
    safe: Annotated[
        bool,
        typer.Option("--safe", help="Ignore column, index and table removals"),
    ] = False,
) -> None:
    """Show the differences between the entities and the live schema."""
    cli_ctx: CLIContext = ctx.obj
    formatter = OutputFormatter(cli_ctx.json_output)

    try:
        schema = cli_ctx.get_live_schema(snapshot)
        generator = cli_ctx.get_generator()
        diff = generator.comparator.compare(
            cli_ctx.get_registry(),
            schema,
            safe=safe or cli_ctx.config.safe,
            drop_tables=cli_ctx.config.drop_tables,
        )

        if cli_ctx.json_output:
            formatter.print_data(diff.to_dict())
            return

        rows = [{"Table": name, "Change": "create table"} for name in diff.create_tables]
        for name, table_diff in diff.tables.items():
            for change, items in table_diff.to_dict().items():
                for item in items:
                    label = item if isinstance(item, str) else item.get("column") or item.get("from")
                    rows.append({"Table": name, "Change": f"{change} {label}"})
        rows.extend({"Table": name, "Change": "drop table"} for name in diff.drop_tables)

        if not rows:
            formatter.print_success("Schema is up to date")
        else:
            formatter.print_table(f"Schema differences ({len(rows)})", rows, ["Table", "Change"])
    except Exception as e:
        formatter.print_error(e)
        raise typer.Exit(code=1)
    finally:
        cli_ctx.close()


@app.command("order")
def schema_order(ctx: typer.Context) -> None:
    """Show the table creation order derived from foreign keys."""
    cli_ctx: CLIContext = ctx.obj
    formatter = OutputFormatter(cli_ctx.json_output)

    try:
        metadata = cli_ctx.get_generator().get_ordered_metadata()
        rows = [
            {
                "Position": position,
                "Entity": meta.name,
                "Table": meta.table_name,
                "Pivot": "✓" if meta.pivot_table else "",
            }
            for position, meta in enumerate(metadata, 1)
        ]
        formatter.print_table("Commit order", rows, ["Position", "Entity", "Table", "Pivot"])
    except Exception as e:
        formatter.print_error(e)
        raise typer.Exit(code=1)
    finally:
        cli_ctx.close()
