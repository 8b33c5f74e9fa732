"""Process-level entry points shared by the CLI and the server."""

import asyncio
import logging
import sys
from pathlib import Path

from mindflow.application.config import AppConfig
from mindflow.application.factory import Services, build_services
from mindflow.application.id_service import generate_run_id
from mindflow.application.sync_coordinator import SweepReport

logger = logging.getLogger(__name__)


def _level_for(verbose: int) -> int:
    if verbose >= 2:
        return logging.DEBUG
    if verbose == 1:
        return logging.INFO
    return logging.WARNING


def setup_logging(log_dir: Path, verbose: int = 1) -> tuple[logging.Logger, Path, str]:
    """
    Configure console logging plus a per-run log file.

    Returns:
        The package logger, the log file path and the run id tagging the file.
    """
    run_id = generate_run_id()
    log_dir.mkdir(parents=True, exist_ok=True)
    log_path = log_dir / f"mindflow_{run_id}.log"

    root = logging.getLogger("mindflow")
    root.setLevel(logging.DEBUG)
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(_level_for(verbose))
    console.setFormatter(logging.Formatter("%(levelname)s:%(name)s:%(message)s"))
    root.addHandler(console)

    file_handler = logging.FileHandler(log_path, encoding="utf-8")
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(
        logging.Formatter(f"%(asctime)s [{run_id}] %(levelname)s:%(name)s:%(message)s")
    )
    root.addHandler(file_handler)
    root.propagate = False

    root.debug(f"Logging run {run_id} to {log_path}")
    return root, log_path, run_id


async def execute_sweep(config: AppConfig, services: Services | None = None) -> SweepReport:
    """Run one sync sweep and return the report."""
    owned = services is None
    services = services or build_services(config)
    try:
        if not services.auth.is_authenticated():
            logger.warning("Not signed in; records stay local until you sign in.")
        return await services.coordinator.sweep()
    finally:
        if owned:
            await services.aclose()


async def run_periodic_sync(config: AppConfig, stop_event: asyncio.Event) -> None:
    services = build_services(config)
    try:
        await services.coordinator.run_periodic(stop_event)
    finally:
        await services.aclose()


async def run_sweep_logic(config: AppConfig) -> SweepReport:
    """CLI wrapper: logging setup, one sweep, summary on stdout."""
    _, log_path, _ = setup_logging(config.log_dir, config.verbose)
    report = await execute_sweep(config)
    print(
        f"Synced {report.synced}, failed {report.failed}, skipped {report.skipped}"
        + (f", errors {report.errors}" if report.errors else "")
    )
    logger.debug(f"Log file: {log_path}")
    return report
