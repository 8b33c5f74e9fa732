import logging

import pytest

from mindflow.application.config import AppConfig
from mindflow.application.factory import build_services
from mindflow.domain.models import RecordKind, SyncStatus
from mindflow.main import execute_sweep, run_sweep_logic, setup_logging


@pytest.fixture(autouse=True)
def restore_logging(tmp_path, monkeypatch):
    monkeypatch.setenv("HOME", str(tmp_path))
    yield
    root = logging.getLogger("mindflow")
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()
    root.propagate = True
    root.setLevel(logging.NOTSET)


def test_setup_logging_creates_run_file(tmp_path):
    logger, log_path, run_id = setup_logging(tmp_path / "logs", verbose=2)

    logger.info("hello from test")

    assert log_path.parent == tmp_path / "logs"
    assert run_id in log_path.name
    content = log_path.read_text(encoding="utf-8")
    assert f"[{run_id}]" in content
    assert "hello from test" in content


def test_setup_logging_replaces_handlers(tmp_path):
    setup_logging(tmp_path / "a")
    logger, _, _ = setup_logging(tmp_path / "b", verbose=0)

    assert len(logger.handlers) == 2
    assert logger.handlers[0].level == logging.WARNING


@pytest.mark.asyncio
async def test_execute_sweep_with_prebuilt_services(fake_client, signed_in, make_interaction):
    config = AppConfig(database_path=":memory:")
    services = build_services(config, client=fake_client, auth=signed_in)
    services.store.create(make_interaction())

    report = await execute_sweep(config, services)

    assert report.synced == 1
    assert services.store.counts_by_sync_status(RecordKind.INTERACTION)[SyncStatus.SYNCED] == 1
    await services.aclose()


@pytest.mark.asyncio
async def test_run_sweep_logic_prints_summary(tmp_path, capsys):
    config = AppConfig(
        database_path=tmp_path / "m.db",
        log_dir=tmp_path / "logs",
        session_file=tmp_path / "missing.json",
    )

    report = await run_sweep_logic(config)

    assert report.outcomes == []
    assert "Synced 0, failed 0, skipped 0" in capsys.readouterr().out
    assert list((tmp_path / "logs").glob("mindflow_*.log"))
