from unittest.mock import MagicMock

import pytest
from rich.panel import Panel
from rich.table import Table

from storesync.core.notices import Notice
from storesync.domain.models.operations import (
    DrainReport, OperationKind, OperationStatus, QueuedOperation, WriteOperation,
)
from storesync.infrastructure.cli.display import ConsoleDisplay


@pytest.fixture
def mock_console():
    """Fixture to create a mock rich Console object."""
    return MagicMock()


@pytest.fixture
def console_display(mock_console: MagicMock):
    return ConsoleDisplay(console=mock_console)


def printed(mock_console: MagicMock):
    args, _ = mock_console.print.call_args
    return args[0]


def test_display_error_uses_red_panel(console_display: ConsoleDisplay, mock_console: MagicMock):
    console_display.display_error("Something went wrong")
    panel = printed(mock_console)
    assert isinstance(panel, Panel)
    assert panel.border_style == "red"
    assert panel.renderable.plain == "Something went wrong"


@pytest.mark.parametrize("level, border", [("info", "blue"), ("warning", "yellow"), ("error", "red")])
def test_display_notice_routes_by_level(console_display: ConsoleDisplay, mock_console: MagicMock, level, border):
    console_display.display_notice(Notice(level, "message", False))
    assert printed(mock_console).border_style == border


def test_display_pending_table(console_display: ConsoleDisplay, mock_console: MagicMock):
    operations = [
        QueuedOperation(id=1, operation=WriteOperation(OperationKind.UPDATE, "products", "p1"), enqueued_at=0),
        QueuedOperation(id=2, operation=WriteOperation(OperationKind.DELETE, "faqs", "f1"), enqueued_at=0,
                        status=OperationStatus.FAILED, attempts=1, last_error="denied"),
    ]
    console_display.display_pending(operations)
    table = printed(mock_console)
    assert isinstance(table, Table)
    assert table.row_count == 2


def test_display_pending_empty(console_display: ConsoleDisplay, mock_console: MagicMock):
    console_display.display_pending([])
    assert "empty" in printed(mock_console).renderable.plain


def test_drain_report_with_failures_is_a_warning(console_display: ConsoleDisplay, mock_console: MagicMock):
    console_display.display_drain_report(DrainReport(passes=1, replayed=[1], failed=[2]))
    panel = printed(mock_console)
    assert panel.border_style == "yellow"
    assert "failed 1" in panel.renderable.plain


def test_drain_report_none_means_already_running(console_display: ConsoleDisplay, mock_console: MagicMock):
    console_display.display_drain_report(None)
    assert "already running" in printed(mock_console).renderable.plain


@pytest.mark.parametrize("answer, expected", [("y", True), ("Yes", True), ("n", False), ("", False)])
def test_ask_yes_no_question(console_display: ConsoleDisplay, mock_console: MagicMock, answer, expected):
    mock_console.input.return_value = answer
    assert console_display.ask_yes_no_question("Proceed?") is expected
