"""Shared data management for the translation core.

This module defines the SharedData class, a container that wires the configuration, per-server
storage, inference client, llama-server supervisor, and translation pipeline together, and
owns their startup and shutdown order.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from config.loader import ConfigLoader
from core.cache.inflight_manager import InFlightManager
from core.cache.memory_cache import InMemoryCache
from core.llm.client import InferenceClient
from core.llm.supervisor import ServerSupervisor
from core.pipeline import INFLIGHT_WAIT_MARGIN_SEC, TranslationPipeline
from core.storage.router import StorageRouter
from utils.logger_utils import LoggerUtils

if TYPE_CHECKING:
    import logging
    from collections.abc import Callable
    from pathlib import Path

    from models.config_models import Config


__all__: list[str] = ["SharedData"]

logger: logging.Logger = LoggerUtils.get_logger(__name__)


@dataclass
class SharedData:
    _config: Config = field()
    _data_dir: Path | None = None
    _timeout_notifier: Callable[[str], None] | None = None
    _router: StorageRouter = field(init=False)
    _client: InferenceClient = field(init=False)
    _inflight_manager: InFlightManager = field(init=False)
    _supervisor: ServerSupervisor = field(init=False)
    _pipeline: TranslationPipeline = field(init=False)

    async def async_init(self) -> None:
        data_dir: Path = self._data_dir if self._data_dir is not None else ConfigLoader.resolve_data_dir(self.config)
        self._data_dir = data_dir
        self._router = StorageRouter(self.config, data_dir)
        self._client = InferenceClient(self.config)
        self._inflight_manager = InFlightManager(self.config.request_timeout_sec + INFLIGHT_WAIT_MARGIN_SEC)
        self._supervisor = ServerSupervisor(self.config, data_dir)
        self._pipeline = TranslationPipeline(
            self.config,
            self._router,
            self._client,
            memory_cache=InMemoryCache(self.config.memory_cache_max_entries),
            inflight_manager=self._inflight_manager,
            timeout_notifier=self._timeout_notifier,
        )
        await self._pipeline.component_load()
        logger.debug("Shared data initialized (data dir: %s)", data_dir)

    async def startup(self, *, start_llama: bool = True) -> bool:
        """Start llama-server when configured for local inference.

        Returns:
            bool: Whether llama-server is running afterwards.
        """
        if not start_llama or self.config.use_online_api:
            return False
        return await self._supervisor.start()

    async def shutdown(self) -> None:
        """Save every scope, stop llama-server, and close the HTTP session."""
        await self._pipeline.component_teardown()
        self._router.save_all()
        await self._supervisor.stop()
        await self._client.close()
        logger.info("Shutdown complete")

    @property
    def config(self) -> Config:
        return self._config

    @property
    def data_dir(self) -> Path | None:
        return self._data_dir

    @property
    def router(self) -> StorageRouter:
        return self._router

    @property
    def client(self) -> InferenceClient:
        return self._client

    @property
    def inflight_manager(self) -> InFlightManager:
        return self._inflight_manager

    @property
    def supervisor(self) -> ServerSupervisor:
        return self._supervisor

    @property
    def pipeline(self) -> TranslationPipeline:
        return self._pipeline
