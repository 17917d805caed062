"""Supervisor for the local llama-server child process.

Spawns the server with the configured model and options, forwards its output to the log,
watches for exit, and stops it with terminate, wait, then kill. There is no restart policy: an
unexpected exit leaves the supervisor stopped until ``start()`` is called again.
"""

from __future__ import annotations

import asyncio
import contextlib
import os
import threading
from enum import StrEnum
from typing import TYPE_CHECKING, ClassVar, Final

from utils.file_utils import FileUtils, FileUtilsError
from utils.logger_utils import LoggerUtils

if TYPE_CHECKING:
    import logging
    from asyncio.subprocess import Process
    from pathlib import Path

    from models.config_models import Config

__all__: list[str] = [
    "ChildExitedUnexpectedlyError",
    "ChildSpawnFailedError",
    "ServerSupervisor",
    "SupervisorError",
    "SupervisorState",
]

logger: logging.Logger = LoggerUtils.get_logger(__name__)

WINDOWS: Final[bool] = os.name == "nt"
EXECUTABLE_NAME: Final[str] = "llama-server.exe" if WINDOWS else "llama-server"
STREAM_LIMIT: Final[int] = 1024 * 1024  # llama-server can print very long lines


class SupervisorError(Exception):
    """Base error for child process supervision."""


class ChildSpawnFailedError(SupervisorError):
    """The child process could not be started."""


class ChildExitedUnexpectedlyError(SupervisorError):
    """The child process exited without being asked to stop."""


class SupervisorState(StrEnum):
    STOPPED = "stopped"
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"


class ServerSupervisor:
    """Owns at most one llama-server process and the tasks bound to it.

    Each child gets three tasks: a stdout reader (DEBUG log), a stderr reader (WARNING log),
    and a watchdog awaiting its exit. They are cancelled and awaited whenever the child
    reaches STOPPED, so none of them outlives its process.

    Attributes:
        GRACE_PERIOD_SEC (ClassVar[float]): Time the child must survive before it counts as running.
        KILL_TIMEOUT_SEC (ClassVar[float]): Wait after terminate, and again after kill.
    """

    GRACE_PERIOD_SEC: ClassVar[float] = 2.0
    KILL_TIMEOUT_SEC: ClassVar[float] = 5.0

    def __init__(self, config: Config, data_dir: Path) -> None:
        self.config: Config = config
        self.data_dir: Path = data_dir
        self.process: Process | None = None
        self.last_error: SupervisorError | None = None
        self._state: SupervisorState = SupervisorState.STOPPED
        self._running: threading.Event = threading.Event()
        self._lock: asyncio.Lock = asyncio.Lock()
        self._tasks: list[asyncio.Task[None]] = []
        self._stop_requested: bool = False

    @property
    def state(self) -> SupervisorState:
        return self._state

    @property
    def pid(self) -> int | None:
        return self.process.pid if self.process else None

    @property
    def executable_path(self) -> Path:
        """``llamaServerPath`` if set, else ``<dataDir>/bin/llama-server[.exe]``."""
        if self.config.llama_server_path.strip():
            return FileUtils.resolve_path(self.config.llama_server_path)
        return self.data_dir / "bin" / EXECUTABLE_NAME

    @property
    def model_path(self) -> Path:
        return self.data_dir / "models" / self.config.llama_model_file

    def is_running(self) -> bool:
        """Thread-safe running check."""
        return self._running.is_set()

    def build_command(self) -> list[str]:
        cfg: Config = self.config
        command: list[str] = [
            str(self.executable_path.absolute()),
            "--model",
            str(self.model_path.absolute()),
            "--port",
            str(cfg.llama_server_port),
            "--ctx-size",
            str(cfg.llama_context_size),
            "--n-gpu-layers",
            str(cfg.llama_gpu_layers),
            "--batch-size",
            str(cfg.llama_batch_size),
            "--threads",
            str(cfg.llama_threads),
            "--parallel",
            str(cfg.llama_parallel),
            "--main-gpu",
            str(cfg.llama_main_gpu),
            "--host",
            cfg.llama_server_host,
        ]
        if cfg.llama_metrics:
            command.append("--metrics")
        return command

    def build_env(self) -> dict[str, str]:
        """Environment of the child; the parent's environment is never modified."""
        env: dict[str, str] = dict(os.environ)
        if self.config.llama_gpu_id >= 0:
            env["CUDA_VISIBLE_DEVICES"] = str(self.config.llama_gpu_id)
            logger.info("Setting CUDA_VISIBLE_DEVICES=%d", self.config.llama_gpu_id)
        return env

    async def start(self) -> bool:
        """Start llama-server if enabled and both executable and model exist.

        Returns:
            bool: True if the server is running when the call returns.
        """
        if not self.config.auto_start_llama_server:
            logger.info("Auto-start llama-server is disabled")
            return False

        async with self._lock:
            if self._state is SupervisorState.RUNNING and self.is_running():
                logger.info("llama-server is already running")
                return True

            try:
                FileUtils.check_file_status(self.executable_path)
            except FileUtilsError as err:
                logger.error("llama-server not found at: %s (%s)", self.executable_path, err)
                return False
            try:
                FileUtils.check_file_status(self.model_path)
            except FileUtilsError as err:
                logger.error("Model file not found at: %s (%s)", self.model_path, err)
                return False

            self._state = SupervisorState.STARTING
            self._stop_requested = False
            self.last_error = None
            try:
                await self._spawn()
            except ChildSpawnFailedError as err:
                logger.error("%s", err)
                self.last_error = err
                await self._finish_stop()
                return False

            watchdog: asyncio.Task[None] = self._tasks[-1]
            done, _ = await asyncio.wait({watchdog}, timeout=self.GRACE_PERIOD_SEC)
            if done or self.process is None:
                # The watchdog already moved the supervisor to STOPPED and logged the exit.
                return False

            self._state = SupervisorState.RUNNING
            self._running.set()
            logger.info("llama-server started successfully on port %d (pid %s)", self.config.llama_server_port, self.pid)
            return True

    async def stop(self) -> None:
        """Stop the child: terminate, wait, kill if needed, then tear down its tasks."""
        async with self._lock:
            if self.process is None:
                self._state = SupervisorState.STOPPED
                return

            logger.info("Stopping llama-server...")
            self._stop_requested = True
            self._state = SupervisorState.STOPPING
            self._running.clear()
            await self._kill()
            await self._finish_stop()
            logger.info("llama-server stopped")

    async def _spawn(self) -> None:
        command: list[str] = self.build_command()
        logger.info("Starting llama-server with command: %s", " ".join(command))
        try:
            self.process = await asyncio.create_subprocess_exec(
                *command,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                stdin=asyncio.subprocess.DEVNULL,
                cwd=str(self.executable_path.parent),
                env=self.build_env(),
                limit=STREAM_LIMIT,
            )
        except OSError as err:
            self.process = None
            msg = f"Failed to start llama-server '{self.executable_path}': {err}"
            raise ChildSpawnFailedError(msg) from err

        process: Process = self.process
        self._tasks = [
            asyncio.create_task(self._read_stream(process.stdout, is_stderr=False), name="llama-server-stdout"),
            asyncio.create_task(self._read_stream(process.stderr, is_stderr=True), name="llama-server-stderr"),
            asyncio.create_task(self._watch(process), name="llama-server-watchdog"),
        ]

    async def _read_stream(self, stream: asyncio.StreamReader | None, *, is_stderr: bool) -> None:
        if stream is None:
            return
        while True:
            try:
                raw: bytes = await stream.readline()
            except ValueError as err:
                logger.warning("Skipping oversized llama-server output line: %s", err)
                continue
            if not raw:
                return
            line: str = raw.decode("utf-8", errors="replace").rstrip()
            if not line:
                continue
            if is_stderr:
                logger.warning("[llama-server] %s", line)
            else:
                logger.debug("[llama-server] %s", line)

    async def _watch(self, process: Process) -> None:
        exit_code: int = await process.wait()
        if self._stop_requested or self.process is not process:
            return

        self._running.clear()
        self._state = SupervisorState.STOPPING
        msg = f"llama-server exited with code: {exit_code}"
        err = ChildExitedUnexpectedlyError(msg)
        self.last_error = err
        if exit_code != 0:
            logger.error("%s", err)
        else:
            logger.info("llama-server stopped normally")
        await self._finish_stop()

    async def _finish_stop(self) -> None:
        """Cancel and await the child's tasks, then enter STOPPED.

        State is left alone when a newer child was spawned while the tasks were being awaited.
        """
        process: Process | None = self.process
        current: asyncio.Task | None = asyncio.current_task()
        tasks: list[asyncio.Task[None]] = [task for task in self._tasks if task is not current]
        for task in tasks:
            if not task.done():
                task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        if self.process is not process:
            logger.debug("A new llama-server was started during teardown, keeping its state")
            return
        self._tasks = []
        self.process = None
        self._running.clear()
        self._state = SupervisorState.STOPPED

    async def _kill(self) -> None:
        """Terminate the process; force kill it if it does not exit in time."""
        if not self.process:
            return

        with contextlib.suppress(ProcessLookupError):
            try:
                logger.info("Terminating process %s", self.process.pid)
                self.process.terminate()
            except PermissionError as exc:
                logger.error("Failed to terminate process %s: %s", self.process.pid, exc)
                return

        if await self._wait_for_exit(self.KILL_TIMEOUT_SEC):
            return

        if WINDOWS:
            # terminate() and kill() are the same call on Windows.
            logger.error("Timeout while terminating process %s on Windows", self.process.pid)
            return

        with contextlib.suppress(ProcessLookupError):
            try:
                logger.warning("llama-server did not stop gracefully, force killing process %s", self.process.pid)
                self.process.kill()
            except PermissionError as exc:
                logger.error("Failed to force kill process %s: %s", self.process.pid, exc)
                return

        if not await self._wait_for_exit(self.KILL_TIMEOUT_SEC):
            logger.error("Force kill also timed out for process %s", self.process.pid)

    async def _wait_for_exit(self, wait_timeout: float) -> bool:
        """Wait for the process to exit.

        Returns:
            bool: True if the process exited within ``wait_timeout`` seconds.
        """
        if not self.process:
            return True
        try:
            await asyncio.wait_for(self.process.wait(), timeout=wait_timeout)
        except TimeoutError:
            return False
        else:
            return True
