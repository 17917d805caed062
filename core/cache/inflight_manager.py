from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, ClassVar

from utils.logger_utils import LoggerUtils

if TYPE_CHECKING:
    import logging

    from models.translation_models import TranslationResult


__all__: list[str] = ["InFlightManager"]

logger: logging.Logger = LoggerUtils.get_logger(__name__)


class InFlightManager:
    """Coalesces identical translation requests that are being processed concurrently.

    The first caller for a key registers a future and performs the work; later callers for the
    same key wait on that future and receive the same result or exception.

    Attributes:
        DEFAULT_WAIT_TIMEOUT_SEC (float): Default time a waiter waits for the producer.
    """

    DEFAULT_WAIT_TIMEOUT_SEC: ClassVar[float] = 12.0

    def __init__(self, wait_timeout_sec: float = DEFAULT_WAIT_TIMEOUT_SEC) -> None:
        self._inflight: dict[str, asyncio.Future[TranslationResult]] = {}
        self._lock: asyncio.Lock = asyncio.Lock()
        self._wait_timeout_sec: float = wait_timeout_sec
        self._is_initialized: bool = False

    @property
    def is_initialized(self) -> bool:
        return self._is_initialized

    @property
    def pending(self) -> int:
        return len(self._inflight)

    async def component_load(self) -> None:
        """Start accepting registrations."""
        self._is_initialized = True
        logger.info("InFlightManager initialized successfully")

    async def component_teardown(self) -> None:
        """Stop accepting registrations and cancel every pending future."""
        self._is_initialized = False
        async with self._lock:
            for fut in self._inflight.values():
                if not fut.done():
                    fut.cancel()
            self._inflight.clear()
        logger.info("InFlightManager torn down and in-flight state cleared")

    async def mark_inflight_start(self, key: str | None) -> TranslationResult | None:
        """Register a request, or wait for the one already registered under ``key``.

        Args:
            key (str | None): Coalescing key (the raw text).

        Returns:
            TranslationResult | None: The producer's result when another request for ``key`` was
                in flight, or None when the caller has just become the producer.

        Raises:
            TimeoutError: If waiting for the producer times out or the producer is cancelled.
            Exception: Whatever the producer stored with ``store_inflight_exception``.
        """
        if not self._is_initialized:
            return None

        if not key:
            logger.warning("Attempted to mark in-flight start with empty key")
            return None

        async with self._lock:
            if key not in self._inflight:
                fut: asyncio.Future[TranslationResult] = asyncio.get_running_loop().create_future()
                self._inflight[key] = fut
                logger.debug("Marked in-flight start for key: %s", key[:16])
                return None
            fut = self._inflight[key]
            logger.debug("In-flight translation detected for key: %s", key[:16])

        try:
            result: TranslationResult = await asyncio.wait_for(asyncio.shield(fut), timeout=self._wait_timeout_sec)
            logger.debug("Received in-flight translation result for key: %s", key[:16])
        except TimeoutError:
            logger.warning("In-flight translation timeout for key: %s", key[:16])
            await self._discard(key, fut)
            msg: str = f"In-flight translation timed out for key: {key[:16]}"
            raise TimeoutError(msg) from None
        except asyncio.CancelledError:
            if not fut.cancelled():
                # The waiter itself was cancelled.
                raise
            logger.warning("In-flight translation cancelled for key: %s", key[:16])
            await self._discard(key, fut)
            msg = f"In-flight translation cancelled for key: {key[:16]}"
            raise TimeoutError(msg) from None
        else:
            return result

    async def store_inflight_result(self, key: str | None, result: TranslationResult) -> None:
        """Resolve the future registered under ``key`` and release its waiters."""
        if not key:
            logger.warning("Attempted to store in-flight result with empty key")
            return

        async with self._lock:
            fut: asyncio.Future[TranslationResult] | None = self._inflight.pop(key, None)
            if fut and not fut.done():
                fut.set_result(result)
                logger.debug("Set in-flight translation result for key: %s", key[:16])
            else:
                logger.debug("No in-flight future found or already done for key: %s when storing result", key[:16])

    async def store_inflight_exception(self, key: str | None, exc: Exception) -> None:
        """Fail the future registered under ``key``; waiters re-raise ``exc``."""
        if not key:
            logger.warning("Attempted to store in-flight exception with empty key")
            return

        async with self._lock:
            fut: asyncio.Future[TranslationResult] | None = self._inflight.pop(key, None)
            if fut and not fut.done():
                fut.set_exception(exc)
                # Mark retrieved so an unawaited future does not log "exception was never retrieved".
                fut.exception()
                logger.debug("Set in-flight translation exception for key: %s", key[:16])
            else:
                logger.debug(
                    "No in-flight future found or already done for key: %s when storing exception", key[:16]
                )

    async def _discard(self, key: str, fut: asyncio.Future[TranslationResult]) -> None:
        async with self._lock:
            if self._inflight.get(key) is fut:
                self._inflight.pop(key, None)
