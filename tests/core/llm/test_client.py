from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any
from unittest.mock import AsyncMock, MagicMock

import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

from core.llm.client import (
    InferenceClient,
    InferenceStatusError,
    InferenceTimeoutError,
    MalformedResponseError,
)
from handlers.async_comm import AsyncHttp
from models.config_models import Config
from models.message_models import ChatMessage

if TYPE_CHECKING:
    from collections.abc import AsyncIterator


class _FakeCompletions:
    """Records requests and answers with a configurable response."""

    def __init__(self) -> None:
        self.requests: list[dict[str, Any]] = []
        self.headers: list[dict[str, str]] = []
        self.response: Any = {"choices": [{"message": {"role": "assistant", "content": "  こんにちは \n"}}]}
        self.status: int = 200
        self.delay: float = 0.0
        self.health_status: int = 200

    async def completions(self, request: web.Request) -> web.Response:
        self.requests.append(await request.json())
        self.headers.append(dict(request.headers))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.status != 200:
            return web.Response(status=self.status, text="error")
        return web.json_response(self.response)

    async def health(self, _: web.Request) -> web.Response:
        return web.json_response({"status": "ok"}, status=self.health_status)


@pytest.fixture
def fake() -> _FakeCompletions:
    return _FakeCompletions()


@pytest.fixture
async def server(fake: _FakeCompletions) -> AsyncIterator[TestServer]:
    app = web.Application()
    app.router.add_post("/v1/chat/completions", fake.completions)
    app.router.add_post("/online", fake.completions)
    app.router.add_get("/health", fake.health)
    test_server = TestServer(app)
    await test_server.start_server()
    yield test_server
    await test_server.close()


@pytest.fixture
async def client(server: TestServer) -> AsyncIterator[InferenceClient]:
    config = Config(llm_server_url=str(server.make_url("")).rstrip("/"), request_timeout=2000)
    inference = InferenceClient(config)
    yield inference
    await inference.close()


def test_endpoint_selection() -> None:
    config = Config(llm_server_url="http://localhost:8080/")

    assert InferenceClient(config).endpoint == "http://localhost:8080/v1/chat/completions"

    config.use_online_api = True
    config.online_api_url = "https://api.example.com/v1/chat/completions"
    assert InferenceClient(config).endpoint == "https://api.example.com/v1/chat/completions"


def test_request_body_layout() -> None:
    config = Config(system_prompt="To %s. Keep %s.", max_tokens=64, temperature=0.1, top_p=0.5)
    context: list[ChatMessage] = [
        ChatMessage(role="user", content="[Steve]: hi"),
        ChatMessage(role="assistant", content="やあ"),
    ]

    body: dict[str, Any] = InferenceClient(config).build_request_body("how are you", "Japanese", context)

    assert body["messages"] == [
        {"role": "system", "content": "To Japanese. Keep Japanese."},
        {"role": "user", "content": "[Steve]: hi"},
        {"role": "assistant", "content": "やあ"},
        {"role": "user", "content": "how are you"},
    ]
    assert body["max_tokens"] == 64
    assert body["temperature"] == pytest.approx(0.1)
    assert body["top_p"] == pytest.approx(0.5)
    assert body["stream"] is False


@pytest.mark.asyncio
async def test_translate_returns_stripped_content(client: InferenceClient, fake: _FakeCompletions) -> None:
    result: str = await client.translate("hello")

    assert result == "こんにちは"
    assert fake.requests[0]["messages"][-1] == {"role": "user", "content": "hello"}
    assert "Authorization" not in fake.headers[0]


@pytest.mark.asyncio
async def test_translate_uses_explicit_target_language(client: InferenceClient, fake: _FakeCompletions) -> None:
    await client.translate("こんにちは", target_language="English")

    assert "Translate to English ONLY." in fake.requests[0]["messages"][0]["content"]


@pytest.mark.asyncio
async def test_online_mode_sends_bearer_token(server: TestServer, fake: _FakeCompletions) -> None:
    config = Config(use_online_api=True, online_api_url=str(server.make_url("/online")), online_api_key="secret")
    client = InferenceClient(config)
    try:
        await client.translate("hello")
    finally:
        await client.close()

    assert fake.headers[0]["Authorization"] == "Bearer secret"


@pytest.mark.asyncio
async def test_error_status_raises(client: InferenceClient, fake: _FakeCompletions) -> None:
    fake.status = 500

    with pytest.raises(InferenceStatusError) as excinfo:
        await client.translate("hello")

    assert excinfo.value.status == 500


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "response",
    [
        {"choices": []},
        {"choices": [{"message": {}}]},
        {"choices": [{"message": {"content": "   "}}]},
        {"error": "nope"},
    ],
)
async def test_malformed_response_raises(
    client: InferenceClient, fake: _FakeCompletions, response: dict[str, Any]
) -> None:
    fake.response = response

    with pytest.raises(MalformedResponseError):
        await client.translate("hello")


@pytest.mark.asyncio
async def test_timeout_raises(client: InferenceClient, fake: _FakeCompletions) -> None:
    client.config.request_timeout = 100
    fake.delay = 1.0

    with pytest.raises(InferenceTimeoutError):
        await client.translate("hello")


@pytest.mark.asyncio
async def test_unreachable_server_raises_status_error(unused_tcp_port: int) -> None:
    client = InferenceClient(Config(llm_server_url=f"http://127.0.0.1:{unused_tcp_port}"))
    try:
        with pytest.raises(InferenceStatusError) as excinfo:
            await client.translate("hello")
    finally:
        await client.close()

    assert excinfo.value.status is None


@pytest.mark.asyncio
async def test_health(client: InferenceClient, fake: _FakeCompletions) -> None:
    assert await client.health() is True

    fake.health_status = 503
    assert await client.health() is False


@pytest.mark.asyncio
async def test_health_online_mode_checks_url_only() -> None:
    assert await InferenceClient(Config(use_online_api=True, online_api_url="https://x.example")).health()
    assert not await InferenceClient(Config(use_online_api=True, online_api_url="")).health()


def test_parse_response_ignores_extra_fields() -> None:
    response: dict[str, Any] = {
        "id": "chatcmpl-1",
        "model": "gemma",
        "usage": {"prompt_tokens": 10},
        "choices": [
            {"index": 0, "message": {"role": "assistant", "content": " hi "}, "finish_reason": "stop", "logprobs": None}
        ],
    }

    assert InferenceClient.parse_response(response) == "hi"


@pytest.mark.parametrize("response", [None, "plain text", {"choices": [{}]}, {"choices": [{"message": "x"}]}])
def test_parse_response_rejects_unexpected_shapes(response: Any) -> None:
    with pytest.raises(MalformedResponseError):
        InferenceClient.parse_response(response)


@pytest.mark.asyncio
async def test_connect_timeout_matches_request_timeout() -> None:
    http = MagicMock(spec=AsyncHttp)
    http.post = AsyncMock(return_value={"choices": [{"message": {"content": "hola"}}]})
    client = InferenceClient(Config(request_timeout=7000), http=http)

    assert await client.translate("hello") == "hola"

    kwargs: dict[str, Any] = http.post.await_args.kwargs
    assert kwargs["total_timeout"] == pytest.approx(7.0)
    assert kwargs["connect_timeout"] == pytest.approx(7.0)
