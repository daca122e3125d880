"""Output formatting for CLI commands."""

import json
from typing import Any

from rich.console import Console, Group
from rich.panel import Panel
from rich.syntax import Syntax
from rich.table import Table

from metaorm.exceptions import MetaORMError

console = Console()


class OutputFormatter:
    """Renders command results with Rich, or as JSON on stdout."""

    def __init__(self, json_mode: bool = False) -> None:
        """Initialize formatter.

        Args:
            json_mode: If True, output JSON instead of Rich formatting
        """
        self.json_mode = json_mode

    def _dump(self, data: Any) -> None:
        print(json.dumps(data, default=str, indent=2))

    def print_sql(self, statements: list[str], title: str | None = None) -> None:
        """Print DDL statements, syntax highlighted or as a JSON array.

        Args:
            statements: Ordered SQL statements
            title: Optional heading shown above the statements
        """
        if self.json_mode:
            self._dump({"statements": statements})
            return

        if not statements:
            console.print("No changes.", style="dim")
            return

        if title:
            console.print(f"[bold]{title}[/bold] ({len(statements)} statements)")
        sql = "\n".join(f"{statement};" for statement in statements)
        console.print(Syntax(sql, "sql", word_wrap=True))

    def print_table(self, title: str, rows: list[dict[str, Any]], columns: list[str]) -> None:
        """Print rows as a Rich table, or the row dicts as a JSON array."""
        if self.json_mode:
            self._dump(rows)
            return

        table = Table(title=title, header_style="bold magenta")
        for name in columns:
            table.add_column(name)
        for row in rows:
            table.add_row(*(str(row.get(name, "")) for name in columns))
        console.print(table)

    def print_success(self, message: str, details: dict[str, Any] | None = None) -> None:
        """Print a success message; JSON output merges ``details`` at the top level."""
        if self.json_mode:
            self._dump({"success": True, "message": message, **(details or {})})
            return

        console.print(f"✓ {message}", style="green")
        for key, value in (details or {}).items():
            console.print(f"  {key}: {value}", style="dim")

    def print_error(self, error: Exception) -> None:
        """Print an error panel, listing the context of metaorm errors.

        Args:
            error: Exception to display
        """
        context = error.context if isinstance(error, MetaORMError) else {}
        if self.json_mode:
            if isinstance(error, MetaORMError):
                self._dump(error.to_dict())
            else:
                self._dump({"error": str(error)})
            return

        body: list[Any] = [str(error)]
        if context:
            grid = Table.grid(padding=(0, 2))
            grid.add_column(style="dim")
            grid.add_column()
            for key, value in context.items():
                grid.add_row(key, str(value))
            body.extend(["", grid])

        title = type(error).__name__
        console.print(Panel(Group(*body), title=f"[red]{title}[/red]", border_style="red"))

    def print_data(self, data: Any) -> None:
        """Print generic data (dict, list, etc.)."""
        if self.json_mode:
            self._dump(data)
        else:
            console.print_json(json.dumps(data, default=str))
