"""Main entry point for the storesync command-line tool.

Sets up the Typer CLI application and performs dependency injection
(Composition Root). The commands inspect and manage the durable offline
queue; `sync` replays it against Firestore.
"""

import asyncio
import logging
import sys
from typing import Any, Callable, Coroutine, Dict, Optional

import typer
from typing_extensions import Annotated

from storesync import __version__
from storesync.core.context import ResilienceContext
from storesync.core.notices import user_notice
from storesync.core.services.data_access_service import DataAccessService
from storesync.domain.exceptions import StoreSyncError
from storesync.domain.interfaces.backend import DocumentBackend
from storesync.infrastructure.cli.display import ConsoleDisplay
from storesync.infrastructure.config.settings import ResilienceSettings, load_configuration
from storesync.infrastructure.monitoring.logger_setup import setup_logging
from storesync.infrastructure.storage.disk_store import DiskKeyValueStore

logger = logging.getLogger(__name__)


def _firestore_factory(settings: ResilienceSettings) -> Callable[[], DocumentBackend]:
    def build() -> DocumentBackend:
        # Imported here so the offline commands never touch firebase-admin
        from storesync.infrastructure.backend.firestore_backend import FirestoreBackend
        return FirestoreBackend(credentials_path=settings.firebase_credentials,
                                project_id=settings.firebase_project_id)
    return build


# --- Dependency Injection Container (Manual) ---

def create_dependencies() -> Dict[str, Any]:
    """Creates and wires up all dependencies for the application.

    This acts as the Composition Root. The backend is created on demand
    through `backend_factory`, since only `sync` talks to Firestore.
    """
    dependencies: Dict[str, Any] = {}
    try:
        load_configuration()
        settings = ResilienceSettings.from_config()
        setup_logging(settings, default_level=logging.WARNING)
        logger.info("Configuration and logging initialized.")

        dependencies['ui'] = ConsoleDisplay()
        dependencies['settings'] = settings
        dependencies['context'] = ResilienceContext.from_settings(
            settings, store=DiskKeyValueStore(settings.queue_directory)
        )
        dependencies['backend_factory'] = _firestore_factory(settings)
        logger.info("All dependencies initialized successfully.")
        return dependencies
    except Exception as e:
        logger.error(f"Fatal Error during application initialization: {e}", exc_info=True)
        print(f"FATAL ERROR during initialization: {e}", file=sys.stderr)
        sys.exit(1)


_dependencies: Optional[Dict[str, Any]] = None


def get_dependencies() -> Dict[str, Any]:
    global _dependencies
    if _dependencies is None:
        _dependencies = create_dependencies()
    return _dependencies


# --- Typer App Definition ---
app = typer.Typer(
    name="storesync",
    help="storesync: inspect and sync the offline write queue of the storefront data layer.",
    add_completion=False,
)


# --- Helper for Running Async Commands ---
def run_async(coro: Coroutine[Any, Any, Any]) -> Any:
    """Runs a coroutine from a sync Typer command, reporting data-layer errors."""
    ui: ConsoleDisplay = get_dependencies()['ui']
    try:
        return asyncio.run(coro)
    except StoreSyncError as e:
        logger.error(f"Command failed: {e}", exc_info=True)
        ui.display_notice(user_notice(e))
        raise typer.Exit(code=1)


# --- CLI Commands ---

@app.command()
def status():
    """Show configuration and the state of the offline queue."""
    deps = get_dependencies()
    ui: ConsoleDisplay = deps['ui']
    settings: ResilienceSettings = deps['settings']
    context: ResilienceContext = deps['context']

    pending = run_async(context.offline_queue.list_pending())
    ui.display_settings({
        "firebase project": settings.firebase_project_id,
        "credentials": settings.firebase_credentials,
        "queue directory": settings.queue_directory,
        "queue capacity": settings.queue_max_size,
        "queued operations": len(pending),
    }, title="storesync status")
    ui.display_pending(pending)


@app.command()
def pending():
    """List queued operations, oldest first."""
    deps = get_dependencies()
    ui: ConsoleDisplay = deps['ui']
    context: ResilienceContext = deps['context']
    ui.display_pending(run_async(context.offline_queue.list_pending()))


@app.command(name="clear-queue")
def clear_queue_command(
    yes: Annotated[bool, typer.Option("--yes", "-y", help="Do not ask for confirmation.")] = False,
):
    """Drop every queued operation without syncing it."""
    deps = get_dependencies()
    ui: ConsoleDisplay = deps['ui']
    context: ResilienceContext = deps['context']

    depth = run_async(context.offline_queue.size())
    if not depth:
        ui.display_info("The offline queue is empty.")
        return
    if not yes and not ui.ask_yes_no_question(f"Discard {depth} queued operation(s)? They will never be synced."):
        ui.display_info("Nothing was discarded.")
        return
    run_async(context.offline_queue.clear())
    ui.display_info(f"Discarded {depth} queued operation(s).")


@app.command()
def sync():
    """Replay the offline queue against the backend."""
    deps = get_dependencies()
    ui: ConsoleDisplay = deps['ui']
    context: ResilienceContext = deps['context']

    try:
        backend = deps['backend_factory']()
    except Exception as e:
        logger.error(f"Could not connect to the backend: {e}", exc_info=True)
        ui.display_error(f"Could not connect to the backend: {e}")
        raise typer.Exit(code=1)

    async def _sync():
        service = DataAccessService(context, backend)
        try:
            return await service.drain_queue()
        finally:
            await service.close()

    report = run_async(_sync())
    ui.display_drain_report(report)
    ui.display_metrics(context.metrics.snapshot())
    if report is not None and report.failed:
        raise typer.Exit(code=1)


@app.command(name="config")
def config_command():
    """Show the effective settings after YAML, .env and environment overrides."""
    deps = get_dependencies()
    ui: ConsoleDisplay = deps['ui']
    ui.display_settings(deps['settings'].as_dict())


@app.command()
def version():
    """Print the storesync version."""
    typer.echo(f"storesync {__version__}")


# --- Main Execution Guard ---

def cli_entry_point():
    """Function to be called by the script entry point in pyproject.toml."""
    app()


if __name__ == "__main__":
    cli_entry_point()
