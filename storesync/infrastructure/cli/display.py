import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from rich.box import HEAVY, ROUNDED, SIMPLE
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from storesync.core.notices import ERROR, WARNING, Notice
from storesync.domain.models.common import MetricsSnapshot
from storesync.domain.models.operations import DrainReport, OperationStatus, QueuedOperation

logger = logging.getLogger(__name__)

STATUS_STYLES = {
    OperationStatus.PENDING: "yellow",
    OperationStatus.PROCESSING: "cyan",
    OperationStatus.DONE: "green",
    OperationStatus.FAILED: "bold red",
}


class ConsoleDisplay:
    """Console output for the storesync CLI, rendered with rich."""

    def __init__(self, console: Optional[Console] = None):
        self._console = console or Console()

    @property
    def console(self) -> Console:
        """Get the Rich console instance for direct operations."""
        return self._console

    def display_error(self, error_message: str) -> None:
        """Displays an error message in a distinct style.

        Args:
            error_message: The error message to display.
        """
        panel = Panel(
            Text(error_message, style="white"),
            title="[bold red]Error[/bold red]",
            border_style="red",
            box=HEAVY,
            padding=(0, 1)
        )
        self.console.print(panel)

    def display_info(self, info_message: str) -> None:
        panel = Panel(
            Text(info_message, style="white"),
            title="[bold blue]Info[/bold blue]",
            border_style="blue",
            box=SIMPLE,
            padding=(0, 1)
        )
        self.console.print(panel)

    def display_warning(self, warning_message: str) -> None:
        logger.warning(f"Display warning: {warning_message}")
        panel = Panel(
            Text(warning_message, style="white"),
            title="[bold yellow]Warning[/bold yellow]",
            border_style="yellow",
            box=HEAVY,
            padding=(0, 1)
        )
        self.console.print(panel)

    def display_notice(self, notice: Notice) -> None:
        """Routes a Notice to the panel matching its level."""
        if notice.level == ERROR:
            self.display_error(notice.message)
        elif notice.level == WARNING:
            self.display_warning(notice.message)
        else:
            self.display_info(notice.message)

    def display_pending(self, operations: List[QueuedOperation]) -> None:
        """Displays queued operations as a table, oldest first.

        Args:
            operations: Queue entries as returned by OfflineQueue.list_pending().
        """
        if not operations:
            self.display_info("The offline queue is empty.")
            return

        table = Table(title="Queued operations", show_header=True, box=ROUNDED, border_style="cyan", padding=(0, 1))
        table.add_column("#", style="dim", justify="right")
        table.add_column("Queued at", style="cyan")
        table.add_column("Operation")
        table.add_column("Status")
        table.add_column("Attempts", justify="right")
        table.add_column("Last error", style="dim")

        for queued in operations:
            style = STATUS_STYLES.get(queued.status, "white")
            table.add_row(
                str(queued.id),
                datetime.fromtimestamp(queued.enqueued_at).strftime('%Y-%m-%d %H:%M:%S'),
                queued.operation.describe(),
                f"[{style}]{queued.status.value}[/{style}]",
                str(queued.attempts),
                queued.last_error or "",
            )
        self.console.print(table)

    def display_metrics(self, metrics: MetricsSnapshot) -> None:
        table = Table(title="Metrics", show_header=False, box=SIMPLE, border_style="cyan", padding=(0, 1))
        table.add_column("Metric", style="cyan")
        table.add_column("Value", justify="right", style="bold")
        for name, value in metrics.items():
            table.add_row(name.replace("_", " "), str(value))
        self.console.print(table)

    def display_settings(self, settings: Dict[str, Any], title: str = "Effective settings") -> None:
        table = Table(title=title, show_header=True, box=ROUNDED, border_style="cyan", padding=(0, 1))
        table.add_column("Setting", style="cyan")
        table.add_column("Value")
        for key in sorted(settings):
            value = settings[key]
            table.add_row(key, "[dim]not set[/dim]" if value is None else str(value))
        self.console.print(table)

    def display_drain_report(self, report: Optional[DrainReport]) -> None:
        """Summarizes a drain. None means another drain was already running."""
        if report is None:
            self.display_warning("A sync is already running; it will pick up the remaining operations.")
            return
        summary = (f"Replayed {len(report.replayed)}, failed {len(report.failed)}, "
                   f"deferred {len(report.deferred)}, skipped {len(report.skipped)}.")
        if report.failed or report.interrupted:
            if report.interrupted:
                summary += " Connection was lost before the queue was fully synced."
            self.display_warning(summary)
        else:
            self.display_info(summary)

    def ask_yes_no_question(self, question: str) -> bool:
        """Asks a yes/no question and returns the answer.

        Args:
            question: The question to ask

        Returns:
            True if the answer is yes, False otherwise
        """
        panel = Panel(
            Text(f"{question} (y/n)", style="white"),
            title="[bold yellow]Question[/bold yellow]",
            border_style="yellow",
            box=ROUNDED,
            padding=(0, 1)
        )
        self.console.print(panel)
        response = self.console.input("[bold yellow]> [/bold yellow]").strip().lower()
        return response in ('y', 'yes')
