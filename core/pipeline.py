# ruff: noqa: BLE001
"""Three-tier translation pipeline.

Looks a chat line up in the in-memory cache, then in the current server's retrieval store, and
finally asks the inference endpoint. Successful results are written back to every tier and to
the server's history. Translation never raises: any failure returns the original text.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

from core.cache.inflight_manager import InFlightManager
from core.cache.memory_cache import InMemoryCache
from core.llm.client import InferenceError
from models.cache_models import CacheStatistics
from models.message_models import Direction
from models.translation_models import TranslationResult, TranslationSource
from utils.logger_utils import LoggerUtils

if TYPE_CHECKING:
    import logging
    from collections.abc import Callable

    from core.llm.client import InferenceClient
    from core.storage.router import ServerScope, StorageRouter
    from models.cache_models import RetrievalEntry
    from models.config_models import Config
    from models.message_models import ChatMessage

__all__: list[str] = ["TranslationPipeline"]

logger: logging.Logger = LoggerUtils.get_logger(__name__)

# Extra wait for coalesced requests beyond the request timeout.
INFLIGHT_WAIT_MARGIN_SEC: float = 1.0


class TranslationPipeline:
    """Translates incoming and outgoing chat lines.

    Identical raw inputs that arrive while a request for them is in flight share that request.
    Outgoing translations race against ``outgoingTranslationTimeout``; on timeout the original is
    returned while the request keeps running and still fills the caches.
    """

    def __init__(
        self,
        config: Config,
        router: StorageRouter,
        client: InferenceClient,
        *,
        memory_cache: InMemoryCache | None = None,
        inflight_manager: InFlightManager | None = None,
        timeout_notifier: Callable[[str], None] | None = None,
    ) -> None:
        """Initialize the pipeline.

        Args:
            config (Config): Configuration read on every call.
            router (StorageRouter): Source of the current server scope.
            client (InferenceClient): Chat-completion client.
            memory_cache (InMemoryCache | None): Process-wide cache. Created from the config when None.
            inflight_manager (InFlightManager | None): Request coalescing. Created when None.
            timeout_notifier (Callable[[str], None] | None): Called with the original text when an
                outgoing translation times out and the original is sent instead.
        """
        self.config: Config = config
        self.router: StorageRouter = router
        self.client: InferenceClient = client
        self.memory_cache: InMemoryCache = (
            memory_cache if memory_cache is not None else InMemoryCache(config.memory_cache_max_entries)
        )
        self.inflight_manager: InFlightManager = (
            inflight_manager
            if inflight_manager is not None
            else InFlightManager(config.request_timeout_sec + INFLIGHT_WAIT_MARGIN_SEC)
        )
        self.timeout_notifier: Callable[[str], None] | None = timeout_notifier
        self._background: set[asyncio.Task[str]] = set()

    async def component_load(self) -> None:
        await self.inflight_manager.component_load()

    async def component_teardown(self) -> None:
        await self.wait_background()
        await self.inflight_manager.component_teardown()

    async def translate_incoming(self, speaker: str, text: str) -> str:
        """Translate a line received from another player into ``targetLanguage``.

        Recent history of the current server is sent as context.
        """
        if not self._is_enabled(Direction.INCOMING):
            return text
        return await self._translate(Direction.INCOMING, speaker, text)

    async def translate_outgoing(self, speaker: str, text: str) -> str:
        """Translate the user's own line into ``outgoingTargetLanguage`` within the outgoing timeout.

        No history is sent as context.
        """
        if not self._is_enabled(Direction.OUTGOING):
            return text

        task: asyncio.Task[str] = asyncio.create_task(self._translate(Direction.OUTGOING, speaker, text))
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        try:
            return await asyncio.wait_for(asyncio.shield(task), timeout=self.config.outgoing_translation_timeout_sec)
        except TimeoutError:
            logger.warning(
                "Outgoing translation timed out after %d ms, sending original", self.config.outgoing_translation_timeout
            )
            self._notify_timeout(text)
            return text

    async def wait_background(self) -> None:
        """Wait for outgoing translations that outlived their timeout."""
        if self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    def _is_enabled(self, direction: Direction) -> bool:
        if not self.config.translation_enabled:
            return False
        if direction is Direction.INCOMING:
            return self.config.auto_translate_incoming
        return self.config.auto_translate_outgoing

    def _notify_timeout(self, text: str) -> None:
        if self.timeout_notifier is None:
            return
        try:
            self.timeout_notifier(text)
        except Exception:
            logger.exception("Timeout notifier failed")

    async def _translate(self, direction: Direction, speaker: str, text: str) -> str:
        if not text or not text.strip():
            return text

        scope: ServerScope | None = self.router.current
        if scope is None:
            logger.debug("No server scope, skipping translation")
            return text

        cached: str | None = self.memory_cache.get(text)
        if cached:
            logger.debug("Memory cache hit: '%s'", text[:50])
            scope.history.add(speaker, text, cached, direction)
            return cached

        entry: RetrievalEntry | None = scope.store.exact(text)
        if entry is not None and entry.translated:
            logger.debug("Retrieval store hit (uses: %d): '%s'", entry.use_count, text[:50])
            self.memory_cache.put(text, entry.translated)
            scope.history.add(speaker, text, entry.translated, direction)
            return entry.translated

        context: list[ChatMessage] | None = None
        if direction is Direction.INCOMING and self.config.context_message_count > 0:
            context = scope.history.recent_context(self.config.context_message_count)

        result: TranslationResult = await self._infer(direction, text, context)
        if not result.ok:
            logger.debug("Translation failed, returning original: %s", result.error)
            return text

        translated: str = result.text_or(text)
        self.memory_cache.put(text, translated)
        scope.history.add(speaker, text, translated, direction)
        if self.config.rag_enabled and result.source is TranslationSource.LLM:
            scope.store.upsert(text, translated, speaker)
        logger.debug("Final translation result (%s): '%s'", direction, translated[:50])
        return translated

    async def _infer(self, direction: Direction, text: str, context: list[ChatMessage] | None) -> TranslationResult:
        """Call the inference endpoint, sharing the call with identical in-flight requests.

        Returns:
            TranslationResult: LLM-sourced text for the producer, the shared result (marked as
                coming from memory so only the producer writes the store) for waiters, or a failure.
        """
        try:
            shared: TranslationResult | None = await self.inflight_manager.mark_inflight_start(text)
        except TimeoutError as err:
            return TranslationResult.failure(f"In-flight translation: {err}")
        except Exception as err:
            return self._handle_translation_failure(err, context="In-flight translation")
        if shared is not None:
            if not shared.ok:
                return shared
            return TranslationResult(text=shared.text, source=TranslationSource.MEMORY)

        target_language: str = (
            self.config.target_language if direction is Direction.INCOMING else self.config.outgoing_target_language
        )
        try:
            translated: str = await self.client.translate(text, target_language=target_language, context=context)
        except asyncio.CancelledError:
            await self.inflight_manager.store_inflight_exception(text, TimeoutError("translation cancelled"))
            raise
        except Exception as err:
            result: TranslationResult = self._handle_translation_failure(err, context="Translation")
        else:
            result = TranslationResult(text=translated, source=TranslationSource.LLM)
        await self.inflight_manager.store_inflight_result(text, result)
        return result

    def _handle_translation_failure(self, err: Exception, *, context: str) -> TranslationResult:
        """Log a translation failure in one place and turn it into a failed result."""
        if isinstance(err, InferenceError):
            logger.debug("%s failed: %s", context, err)
        else:
            logger.exception("%s failed with unexpected error.", context)
        return TranslationResult.failure(f"{context}: {err}")

    # Maintenance

    def on_join(self, address: str | None) -> ServerScope:
        return self.router.on_join(address)

    def on_leave(self) -> None:
        self.router.on_leave()

    def save(self) -> None:
        self.router.save_all()

    def clear_cache(self) -> None:
        self.memory_cache.clear()

    def clear_history(self) -> None:
        scope: ServerScope | None = self.router.current
        if scope is not None:
            scope.history.clear()

    def clear_rag(self) -> None:
        scope: ServerScope | None = self.router.current
        if scope is not None:
            scope.store.clear()

    def clear_all(self) -> None:
        self.memory_cache.clear()
        scope: ServerScope | None = self.router.current
        if scope is not None:
            scope.clear()
        logger.info("All caches cleared")

    def stats(self) -> CacheStatistics:
        statistics = CacheStatistics(memory_entries=self.memory_cache.size())
        scope: ServerScope | None = self.router.current
        if scope is None:
            return statistics

        entries: list[RetrievalEntry] = list(scope.store.entries().values())
        statistics.server_id = scope.server_id
        statistics.history_entries = scope.history.size()
        statistics.store_entries = len(entries)
        statistics.total_uses = sum(entry.use_count for entry in entries)
        if entries:
            statistics.oldest_entry = min(entry.timestamp for entry in entries)
            statistics.newest_entry = max(entry.timestamp for entry in entries)
        return statistics

    async def test_connection(self) -> bool:
        healthy: bool = await self.client.health()
        logger.info("Connection test %s: %s", "succeeded" if healthy else "failed", self.client.endpoint)
        return healthy
