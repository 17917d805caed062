from __future__ import annotations

import asyncio
import contextlib
import logging
import os
import sys
from textwrap import dedent
from typing import TYPE_CHECKING
from unittest.mock import MagicMock

import pytest

from core.llm.supervisor import ChildExitedUnexpectedlyError, ServerSupervisor, SupervisorState
from models.config_models import Config

if TYPE_CHECKING:
    from pathlib import Path

pytestmark = pytest.mark.skipif(os.name == "nt", reason="fake llama-server relies on a shebang script")

LONG_RUNNING: str = """
import sys, time
print("ready", flush=True)
print("loading model", file=sys.stderr, flush=True)
time.sleep(60)
"""

IGNORES_TERM: str = """
import signal, time
signal.signal(signal.SIGTERM, signal.SIG_IGN)
print("ready", flush=True)
time.sleep(60)
"""

EXITS_AT_ONCE: str = """
import sys
print("bad model", file=sys.stderr, flush=True)
sys.exit(3)
"""


def _install(data_dir: Path, body: str, config: Config) -> None:
    bin_dir: Path = data_dir / "bin"
    bin_dir.mkdir(parents=True, exist_ok=True)
    script: Path = bin_dir / "llama-server"
    script.write_text(f"#!{sys.executable}\n" + dedent(body), encoding="utf-8")
    script.chmod(0o755)
    models_dir: Path = data_dir / "models"
    models_dir.mkdir(parents=True, exist_ok=True)
    (models_dir / config.llama_model_file).write_bytes(b"GGUF")


async def _wait_for_log(caplog: pytest.LogCaptureFixture, text: str, timeout: float = 5.0) -> None:
    loop = asyncio.get_running_loop()
    deadline: float = loop.time() + timeout
    while text not in caplog.text:
        if loop.time() > deadline:
            pytest.fail(f"log line not seen: {text}")
        await asyncio.sleep(0.02)


@pytest.fixture
def config() -> Config:
    return Config(llama_model_file="test-model.gguf", llama_server_port=18080)


@pytest.fixture
def supervisor(config: Config, tmp_path: Path) -> ServerSupervisor:
    sup = ServerSupervisor(config, tmp_path)
    sup.GRACE_PERIOD_SEC = 0.5
    sup.KILL_TIMEOUT_SEC = 1.0
    return sup


def test_command_line(supervisor: ServerSupervisor, tmp_path: Path) -> None:
    supervisor.config.llama_metrics = True

    command: list[str] = supervisor.build_command()

    assert command[0] == str((tmp_path / "bin" / "llama-server").absolute())
    assert command[command.index("--model") + 1] == str((tmp_path / "models" / "test-model.gguf").absolute())
    assert command[command.index("--port") + 1] == "18080"
    assert command[command.index("--ctx-size") + 1] == "4096"
    assert command[command.index("--n-gpu-layers") + 1] == "-1"
    assert command[command.index("--host") + 1] == "0.0.0.0"
    assert command[-1] == "--metrics"


def test_explicit_executable_path(supervisor: ServerSupervisor, tmp_path: Path) -> None:
    supervisor.config.llama_server_path = str(tmp_path / "custom" / "server")

    assert supervisor.executable_path == (tmp_path / "custom" / "server").resolve()


def test_gpu_selection_only_touches_child_env(supervisor: ServerSupervisor, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("CUDA_VISIBLE_DEVICES", raising=False)

    assert "CUDA_VISIBLE_DEVICES" not in supervisor.build_env()

    supervisor.config.llama_gpu_id = 1
    assert supervisor.build_env()["CUDA_VISIBLE_DEVICES"] == "1"
    assert "CUDA_VISIBLE_DEVICES" not in os.environ


@pytest.mark.asyncio
async def test_start_disabled(supervisor: ServerSupervisor) -> None:
    supervisor.config.auto_start_llama_server = False

    assert await supervisor.start() is False
    assert supervisor.state is SupervisorState.STOPPED


@pytest.mark.asyncio
async def test_start_without_executable(supervisor: ServerSupervisor, caplog: pytest.LogCaptureFixture) -> None:
    with caplog.at_level(logging.ERROR):
        assert await supervisor.start() is False

    assert "llama-server not found" in caplog.text
    assert supervisor.process is None


@pytest.mark.asyncio
async def test_start_without_model(
    supervisor: ServerSupervisor, config: Config, tmp_path: Path, caplog: pytest.LogCaptureFixture
) -> None:
    _install(tmp_path, LONG_RUNNING, config)
    (tmp_path / "models" / config.llama_model_file).unlink()

    with caplog.at_level(logging.ERROR):
        assert await supervisor.start() is False

    assert "Model file not found" in caplog.text


@pytest.mark.asyncio
async def test_start_and_stop(
    supervisor: ServerSupervisor, config: Config, tmp_path: Path, caplog: pytest.LogCaptureFixture
) -> None:
    caplog.set_level(logging.DEBUG)
    _install(tmp_path, LONG_RUNNING, config)

    assert await supervisor.start() is True
    assert supervisor.is_running()
    assert supervisor.state is SupervisorState.RUNNING
    assert supervisor.pid is not None
    # A second start is a no-op.
    assert await supervisor.start() is True

    await _wait_for_log(caplog, "[llama-server] loading model")
    assert any(
        rec.levelno == logging.WARNING and "loading model" in rec.message for rec in caplog.records
    )

    await supervisor.stop()

    assert not supervisor.is_running()
    assert supervisor.state is SupervisorState.STOPPED
    assert supervisor.process is None
    assert supervisor.last_error is None


@pytest.mark.asyncio
async def test_stop_force_kills_stubborn_child(
    supervisor: ServerSupervisor, config: Config, tmp_path: Path, caplog: pytest.LogCaptureFixture
) -> None:
    caplog.set_level(logging.DEBUG)
    _install(tmp_path, IGNORES_TERM, config)
    supervisor.KILL_TIMEOUT_SEC = 0.3

    assert await supervisor.start() is True
    await _wait_for_log(caplog, "[llama-server] ready")

    await supervisor.stop()

    assert "force killing" in caplog.text
    assert supervisor.state is SupervisorState.STOPPED


@pytest.mark.asyncio
async def test_exit_during_startup(supervisor: ServerSupervisor, config: Config, tmp_path: Path) -> None:
    _install(tmp_path, EXITS_AT_ONCE, config)
    supervisor.GRACE_PERIOD_SEC = 3.0

    assert await supervisor.start() is False

    assert supervisor.state is SupervisorState.STOPPED
    assert isinstance(supervisor.last_error, ChildExitedUnexpectedlyError)
    assert "code: 3" in str(supervisor.last_error)


@pytest.mark.asyncio
async def test_stop_when_not_started(supervisor: ServerSupervisor) -> None:
    await supervisor.stop()

    assert supervisor.state is SupervisorState.STOPPED


@pytest.mark.asyncio
async def test_teardown_keeps_state_of_newer_child(supervisor: ServerSupervisor) -> None:
    release = asyncio.Event()

    async def _slow_reader() -> None:
        try:
            await asyncio.sleep(60)
        except asyncio.CancelledError:
            await release.wait()
            raise

    supervisor.process = MagicMock()
    supervisor._tasks = [asyncio.create_task(_slow_reader())]  # noqa: SLF001
    await asyncio.sleep(0)
    teardown: asyncio.Task[None] = asyncio.create_task(supervisor._finish_stop())  # noqa: SLF001
    await asyncio.sleep(0.01)

    newer_process = MagicMock()
    newer_task: asyncio.Task[None] = asyncio.create_task(asyncio.sleep(60))
    supervisor.process = newer_process
    supervisor._tasks = [newer_task]  # noqa: SLF001
    supervisor._state = SupervisorState.RUNNING  # noqa: SLF001
    release.set()
    await teardown

    assert supervisor.process is newer_process
    assert supervisor._tasks == [newer_task]  # noqa: SLF001
    assert supervisor.state is SupervisorState.RUNNING

    newer_task.cancel()
    with contextlib.suppress(asyncio.CancelledError):
        await newer_task
