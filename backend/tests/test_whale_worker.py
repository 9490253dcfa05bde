import asyncio
import sys
from pathlib import Path
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
    sys.path.insert(0, str(BACKEND_ROOT))

from workers import whale_worker  # noqa: E402


def _runtime():
    engine = MagicMock()
    engine.start = AsyncMock()
    engine.get_signal_log = MagicMock(return_value=[])
    engine.get_status = MagicMock(return_value={"poll_count": 3})
    return SimpleNamespace(
        engine=engine,
        client=SimpleNamespace(get_stats=lambda: {"submitted": 3}),
        sink=SimpleNamespace(stats={"stored": 0}),
        notifier=SimpleNamespace(stats={"queued": 0, "sent": 0, "failed": 0}),
        shutdown=AsyncMock(),
    )


@pytest.mark.asyncio
async def test_run_starts_engine_and_waits_for_stop():
    runtime = _runtime()
    stop_event = asyncio.Event()

    task = asyncio.create_task(whale_worker.run(runtime, stop_event))
    await asyncio.sleep(0)
    assert not task.done()

    stop_event.set()
    await asyncio.wait_for(task, timeout=1)
    runtime.engine.start.assert_awaited_once()


@pytest.mark.asyncio
async def test_main_exits_nonzero_on_configuration_error(monkeypatch):
    from config import ConfigurationError

    def _fail(config):
        raise ConfigurationError("Wallet roster is empty")

    monkeypatch.setattr(whale_worker, "build_runtime", _fail)
    monkeypatch.setattr(whale_worker, "setup_logging", lambda **kwargs: None)

    assert await whale_worker.main() == 1


def test_session_summary_reads_runtime_state():
    runtime = _runtime()

    whale_worker.log_session_summary(runtime)

    runtime.engine.get_signal_log.assert_called_once()
