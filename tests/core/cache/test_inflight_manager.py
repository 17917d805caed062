"""Tests for InFlightManager."""

from __future__ import annotations

import asyncio

import pytest

from core.cache.inflight_manager import InFlightManager
from models.translation_models import TranslationResult, TranslationSource


@pytest.fixture
async def inflight_manager() -> InFlightManager:
    """Create and initialize InFlightManager with a short wait timeout."""
    manager = InFlightManager(wait_timeout_sec=0.05)
    await manager.component_load()
    return manager


@pytest.mark.asyncio
async def test_mark_inflight_start_returns_none_when_not_initialized() -> None:
    manager = InFlightManager()

    assert await manager.mark_inflight_start("key") is None
    assert await manager.mark_inflight_start("key") is None
    assert manager.pending == 0


@pytest.mark.asyncio
async def test_empty_key_is_never_registered(inflight_manager: InFlightManager) -> None:
    assert await inflight_manager.mark_inflight_start("") is None
    assert inflight_manager.pending == 0


@pytest.mark.asyncio
async def test_waiter_receives_producer_result(inflight_manager: InFlightManager) -> None:
    key = "hello"
    assert await inflight_manager.mark_inflight_start(key) is None

    waiter: asyncio.Task[TranslationResult | None] = asyncio.create_task(inflight_manager.mark_inflight_start(key))
    await asyncio.sleep(0)
    produced = TranslationResult(text="こんにちは", source=TranslationSource.LLM)
    await inflight_manager.store_inflight_result(key, produced)

    assert await waiter == produced
    assert inflight_manager.pending == 0


@pytest.mark.asyncio
async def test_mark_inflight_start_timeout_does_not_cancel_shared_future(inflight_manager: InFlightManager) -> None:
    """Wait timeout should not cancel the producer-owned shared future."""
    key = "timeout-key"
    assert await inflight_manager.mark_inflight_start(key) is None
    shared_future: asyncio.Future[TranslationResult] = inflight_manager._inflight[key]  # noqa: SLF001

    with pytest.raises(TimeoutError):
        await inflight_manager.mark_inflight_start(key)

    assert shared_future.cancelled() is False


@pytest.mark.asyncio
async def test_mark_inflight_start_converts_cancelled_future_to_timeout(inflight_manager: InFlightManager) -> None:
    """Cancelled shared future should be converted to TimeoutError for callers."""
    key = "cancel-key"
    assert await inflight_manager.mark_inflight_start(key) is None

    waiter: asyncio.Task[TranslationResult | None] = asyncio.create_task(inflight_manager.mark_inflight_start(key))
    await asyncio.sleep(0)
    inflight_manager._inflight[key].cancel()  # noqa: SLF001

    with pytest.raises(TimeoutError, match="cancelled"):
        await waiter


@pytest.mark.asyncio
async def test_store_inflight_exception_propagates_to_waiter(inflight_manager: InFlightManager) -> None:
    key = "exception-key"
    assert await inflight_manager.mark_inflight_start(key) is None

    waiter: asyncio.Task[TranslationResult | None] = asyncio.create_task(inflight_manager.mark_inflight_start(key))
    await asyncio.sleep(0)
    await inflight_manager.store_inflight_exception(key, RuntimeError("translation failed"))

    with pytest.raises(RuntimeError, match="translation failed"):
        await waiter


@pytest.mark.asyncio
async def test_teardown_cancels_pending(inflight_manager: InFlightManager) -> None:
    assert await inflight_manager.mark_inflight_start("pending") is None
    shared_future: asyncio.Future[TranslationResult] = inflight_manager._inflight["pending"]  # noqa: SLF001

    await inflight_manager.component_teardown()

    assert shared_future.cancelled()
    assert inflight_manager.pending == 0
    assert not inflight_manager.is_initialized
