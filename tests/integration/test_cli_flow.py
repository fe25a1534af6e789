import asyncio

import pytest
from typer.testing import CliRunner

from storesync import main
from storesync.core.context import ResilienceContext
from storesync.domain.models.operations import OperationKind, WriteOperation
from storesync.infrastructure.backend.memory_backend import InMemoryBackend
from storesync.infrastructure.cli.display import ConsoleDisplay
from storesync.infrastructure.config.settings import ResilienceSettings
from storesync.infrastructure.storage.disk_store import MemoryKeyValueStore


@pytest.fixture
def cli_backend():
    backend = InMemoryBackend()
    backend.seed("products", {"p1": {"name": "Desk"}})
    return backend


@pytest.fixture
def cli_dependencies(monkeypatch, tmp_path, cli_backend):
    """Wires the CLI to an in-memory queue and backend instead of disk and Firestore."""
    settings = ResilienceSettings(retry_base_delay=0.0, queue_replay_delay=0.0,
                                  queue_directory=str(tmp_path / "queue"), firebase_project_id="demo-store")
    deps = {
        'ui': ConsoleDisplay(),
        'settings': settings,
        'context': ResilienceContext.from_settings(settings, store=MemoryKeyValueStore()),
        'backend_factory': lambda: cli_backend,
    }
    monkeypatch.setattr(main, "_dependencies", deps)
    return deps


def queue_updates(deps, *names):
    async def fill():
        for name in names:
            await deps['context'].offline_queue.enqueue(
                WriteOperation(OperationKind.UPDATE, "products", record_id="p1", payload={"name": name})
            )
    asyncio.run(fill())


def queue_size(deps):
    return asyncio.run(deps['context'].offline_queue.size())


def test_pending_with_empty_queue(runner: CliRunner, cli_dependencies):
    result = runner.invoke(main.app, ["pending"])
    assert result.exit_code == 0
    assert "empty" in result.output


def test_status_lists_queued_operations(runner: CliRunner, cli_dependencies):
    queue_updates(cli_dependencies, "Desk v2", "Desk v3")
    result = runner.invoke(main.app, ["status"])
    assert result.exit_code == 0
    assert "storesync status" in result.output
    assert "demo-store" in result.output
    assert "Queued operations" in result.output


def test_clear_queue_asks_first(runner: CliRunner, cli_dependencies):
    queue_updates(cli_dependencies, "Desk v2", "Desk v3")

    declined = runner.invoke(main.app, ["clear-queue"], input="n\n")
    assert declined.exit_code == 0
    assert "Nothing was discarded" in declined.output
    assert queue_size(cli_dependencies) == 2

    accepted = runner.invoke(main.app, ["clear-queue"], input="y\n")
    assert accepted.exit_code == 0
    assert "Discarded 2" in accepted.output
    assert queue_size(cli_dependencies) == 0


def test_clear_queue_yes_flag(runner: CliRunner, cli_dependencies):
    queue_updates(cli_dependencies, "Desk v2")
    result = runner.invoke(main.app, ["clear-queue", "--yes"])
    assert result.exit_code == 0
    assert queue_size(cli_dependencies) == 0


def test_sync_replays_queue(runner: CliRunner, cli_dependencies, cli_backend: InMemoryBackend):
    queue_updates(cli_dependencies, "Desk v2", "Desk v3")

    result = runner.invoke(main.app, ["sync"])

    assert result.exit_code == 0, result.output
    assert "Replayed 2" in result.output
    assert cli_backend.collections["products"]["p1"]["name"] == "Desk v3"
    assert queue_size(cli_dependencies) == 0


def test_sync_with_rejected_operation_exits_nonzero(runner: CliRunner, cli_dependencies,
                                                    cli_backend: InMemoryBackend):
    queue_updates(cli_dependencies, "Desk v2")
    cli_backend.fail_next(code="permission-denied")

    result = runner.invoke(main.app, ["sync"])

    assert result.exit_code == 1
    assert "failed 1" in result.output
    assert queue_size(cli_dependencies) == 1


def test_sync_reports_backend_connection_failure(runner: CliRunner, cli_dependencies):
    def broken_factory():
        raise RuntimeError("no credentials")

    cli_dependencies['backend_factory'] = broken_factory
    result = runner.invoke(main.app, ["sync"])
    assert result.exit_code == 1
    assert "Could not connect" in result.output


def test_config_shows_effective_settings(runner: CliRunner, cli_dependencies):
    result = runner.invoke(main.app, ["config"])
    assert result.exit_code == 0
    assert "cache_max_items" in result.output


def test_version(runner: CliRunner, cli_dependencies):
    result = runner.invoke(main.app, ["version"])
    assert result.output.strip() == "storesync 1.0.0"


def test_dependencies_are_created_lazily_once(monkeypatch, mocker, cli_dependencies):
    monkeypatch.setattr(main, "_dependencies", None)
    create = mocker.patch("storesync.main.create_dependencies", return_value=cli_dependencies)

    assert main.get_dependencies() is cli_dependencies
    assert main.get_dependencies() is cli_dependencies
    create.assert_called_once()
