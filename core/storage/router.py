"""Per-server storage scopes.

The router owns one ``ServerScope`` (retrieval store plus history) per remote server it has
seen, and tracks which one is current. Scopes are never destroyed; leaving a server only clears
the current pointer, and rejoining resumes the same scope.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, ClassVar

from core.cache.retrieval_store import RetrievalStore
from core.history import HistoryBuffer
from utils.logger_utils import LoggerUtils
from utils.string_utils import StringUtils

if TYPE_CHECKING:
    import logging
    from pathlib import Path

    from models.config_models import Config

__all__: list[str] = ["ServerScope", "StorageRouter"]

logger: logging.Logger = LoggerUtils.get_logger(__name__)


@dataclass
class ServerScope:
    """Storage bound to one remote server.

    Attributes:
        server_id (str): Canonical server id (directory name).
        store (RetrievalStore): Persistent translations for this server.
        history (HistoryBuffer): Recent chat lines on this server.
        directory (Path): ``<data_dir>/servers/<server_id>``.
    """

    server_id: str
    store: RetrievalStore
    history: HistoryBuffer = field(default_factory=HistoryBuffer)
    directory: Path | None = None

    def save(self) -> bool:
        saved: bool = self.store.save()
        if saved:
            logger.info("Saved storage for server: %s", self.server_id)
        return saved

    def clear(self) -> None:
        self.store.clear()
        self.history.clear()
        logger.info("Cleared storage for server: %s", self.server_id)


class StorageRouter:
    """Maps the active server to its scope.

    Attributes:
        SERVERS_DIR_NAME (ClassVar[str]): Subdirectory of the data directory holding scopes.
        STORE_FILE_NAME (ClassVar[str]): Retrieval store file inside a scope directory.
    """

    SERVERS_DIR_NAME: ClassVar[str] = "servers"
    STORE_FILE_NAME: ClassVar[str] = "rag.json"

    def __init__(self, config: Config, data_dir: Path) -> None:
        """Create a router rooted at ``<data_dir>/servers``.

        Args:
            config (Config): Supplies ``rag_max_entries`` and ``chat_history_size`` for new scopes.
            data_dir (Path): Application data directory.
        """
        self.config: Config = config
        self.root: Path = data_dir / self.SERVERS_DIR_NAME
        self._scopes: dict[str, ServerScope] = {}
        self._current_id: str | None = None
        self._lock: threading.Lock = threading.Lock()
        try:
            self.root.mkdir(parents=True, exist_ok=True)
        except OSError as err:
            logger.error("Failed to create storage directory '%s': %s", self.root, err)

    @property
    def current(self) -> ServerScope | None:
        """Scope of the server currently joined, or None."""
        with self._lock:
            return self._scopes.get(self._current_id) if self._current_id else None

    @property
    def current_id(self) -> str | None:
        with self._lock:
            return self._current_id

    def get(self, server_id: str) -> ServerScope | None:
        with self._lock:
            return self._scopes.get(server_id)

    def server_ids(self) -> list[str]:
        with self._lock:
            return list(self._scopes)

    def on_join(self, address: str | None) -> ServerScope:
        """Save the current scope, then make the scope for ``address`` current.

        Args:
            address (str | None): Remote address; None or empty means single player.

        Returns:
            ServerScope: The now current scope.
        """
        server_id: str = StringUtils.canonical_server_id(address)
        logger.info("Joining server: %s", server_id)

        previous: ServerScope | None = self.current
        if previous is not None:
            previous.save()

        scope: ServerScope = self._get_or_create(server_id)
        with self._lock:
            self._current_id = server_id

        if self.config.load_full_cache_on_join:
            logger.info(
                "'loadFullCacheOnJoin' is reserved; %d of %d entries would be loaded for server: %s",
                min(scope.store.size(), self.config.max_cache_load_on_join),
                scope.store.size(),
                server_id,
            )
        return scope

    def on_leave(self) -> None:
        """Save the current scope and clear the current pointer."""
        with self._lock:
            scope: ServerScope | None = self._scopes.get(self._current_id) if self._current_id else None
            self._current_id = None
        if scope is None:
            return
        logger.info("Leaving server: %s", scope.server_id)
        scope.save()

    def save_all(self) -> None:
        """Save every scope ever created."""
        with self._lock:
            scopes: list[ServerScope] = list(self._scopes.values())
        logger.info("Saving all server storages (%d servers)", len(scopes))
        for scope in scopes:
            scope.save()

    def _get_or_create(self, server_id: str) -> ServerScope:
        with self._lock:
            scope: ServerScope | None = self._scopes.get(server_id)
        if scope is not None:
            return scope

        directory: Path = self.root / server_id
        try:
            directory.mkdir(parents=True, exist_ok=True)
        except OSError as err:
            logger.error("Failed to create server storage directory '%s': %s", directory, err)
        # Loading reads the file; keep it outside the router lock.
        created = ServerScope(
            server_id=server_id,
            store=RetrievalStore(directory / self.STORE_FILE_NAME, self.config.rag_max_entries),
            history=HistoryBuffer(self.config.chat_history_size),
            directory=directory,
        )

        with self._lock:
            scope = self._scopes.setdefault(server_id, created)
        if scope is created:
            logger.info("Created storage for server: %s", server_id)
        return scope
