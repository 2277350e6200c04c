"""
Progress tracking and reporting utilities using rich.
"""

import time
from contextlib import contextmanager
from typing import Iterator

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

console = Console()


@contextmanager
def operation_status(operation: str) -> Iterator[None]:
    """
    Context manager to show operation status.

    Usage:
        with operation_status("Applying Terraform plan"):
            terraform.apply()

    Args:
        operation: Description of the operation

    Yields:
        None
    """
    console.print(f"[bold blue]{operation}...[/bold blue]")

    try:
        yield
        console.print(f"[green]✓ {operation} complete[/green]")
    except Exception as e:
        reason = str(e).splitlines()[0] if str(e) else type(e).__name__
        console.print(f"[red]✗ {operation} failed: {escape(reason)}[/red]")
        raise


class ProgressTracker:
    """
    Progress tracker for the multi-step deployment.

    Records each step with its outcome and duration so the run can be
    written to runs/<timestamp>/deploy.json.
    """

    def __init__(self, operation_name: str):
        self.operation_name = operation_name
        self.steps_completed = 0
        self.steps_total = 0
        self.steps: list[dict[str, str | float]] = []
        self._started_at: float | None = None

    def start(self, total_steps: int):
        """
        Start tracking with total number of steps.

        Args:
            total_steps: Total number of steps expected
        """
        self.steps_total = total_steps
        self.steps_completed = 0
        console.print(
            f"[bold blue]Starting {self.operation_name}[/bold blue] ({total_steps} steps)"
        )

    @contextmanager
    def step(self, step_name: str) -> Iterator[None]:
        """
        Run one step, recording success or failure.

        Args:
            step_name: Name of the step
        """
        index = len(self.steps) + 1
        progress_pct = (index / self.steps_total * 100) if self.steps_total > 0 else 0
        console.print(
            f"\n[bold][{index}/{self.steps_total}][/bold] "
            f"[dim]({progress_pct:.0f}%)[/dim] {step_name}"
        )

        started = time.monotonic()
        record: dict[str, str | float] = {"name": step_name, "status": "running"}
        self.steps.append(record)
        try:
            yield
        except Exception:
            record["status"] = "failed"
            record["duration_s"] = round(time.monotonic() - started, 2)
            raise
        record["status"] = "ok"
        record["duration_s"] = round(time.monotonic() - started, 2)
        self.steps_completed += 1

    def complete(self):
        """Mark operation as complete and show summary."""
        console.print(
            f"\n[green]✓ {self.operation_name} complete "
            f"({self.steps_completed}/{self.steps_total} steps)[/green]"
        )


def show_summary(title: str, items: dict[str, str | int]):
    """
    Show a formatted summary box.

    Args:
        title: Summary title
        items: Dictionary of items to show (key: value pairs)
    """
    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column("Key", style="cyan")
    table.add_column("Value", style="white")

    for key, value in items.items():
        table.add_row(key, escape(str(value)))

    panel = Panel(table, title=f"[bold]{title}[/bold]", border_style="blue")
    console.print(panel)
