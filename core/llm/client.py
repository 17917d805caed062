"""Client for OpenAI-style chat-completion endpoints.

Builds the translation request (system prompt, optional context turns, the text), posts it to
the local llama-server or to an online API, and extracts the first choice's message content.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, ClassVar

from handlers.async_comm import AsyncCommError, AsyncCommInvalidContentTypeError, AsyncCommTimeoutError, AsyncHttp
from models.completion_models import ChatCompletionResponse
from models.message_models import ChatMessage
from utils.logger_utils import LoggerUtils

if TYPE_CHECKING:
    import logging
    from collections.abc import Sequence

    from models.config_models import Config

__all__: list[str] = [
    "InferenceClient",
    "InferenceError",
    "InferenceStatusError",
    "InferenceTimeoutError",
    "MalformedResponseError",
]

logger: logging.Logger = LoggerUtils.get_logger(__name__)


class InferenceError(Exception):
    """Base error for chat-completion requests."""


class InferenceTimeoutError(InferenceError):
    """The endpoint did not answer within ``requestTimeout``."""


class InferenceStatusError(InferenceError):
    """The endpoint was unreachable or answered with an error status.

    Attributes:
        status (int | None): HTTP status, None when no response was received.
    """

    def __init__(self, msg: str, status: int | None = None) -> None:
        super().__init__(msg)
        self.status: int | None = status


class MalformedResponseError(InferenceError):
    """The response did not contain ``choices[0].message.content``."""


class InferenceClient:
    """Stateless chat-completion client.

    Every request reads the current ``Config`` values, so edits to the configuration apply to
    the next request.

    Attributes:
        COMPLETIONS_PATH (ClassVar[str]): Path appended to ``llmServerUrl``.
        HEALTH_PATH (ClassVar[str]): Health endpoint of llama-server.
        HEALTH_TIMEOUT_SEC (ClassVar[float]): Timeout of the health check.
    """

    COMPLETIONS_PATH: ClassVar[str] = "/v1/chat/completions"
    HEALTH_PATH: ClassVar[str] = "/health"
    HEALTH_TIMEOUT_SEC: ClassVar[float] = 5.0

    def __init__(self, config: Config, http: AsyncHttp | None = None) -> None:
        self.config: Config = config
        self._http: AsyncHttp = http if http is not None else AsyncHttp()

    @property
    def endpoint(self) -> str:
        """URL the completion request is posted to."""
        if self.config.use_online_api:
            return self.config.online_api_url
        return self.config.llm_server_url.rstrip("/") + self.COMPLETIONS_PATH

    def build_messages(
        self, text: str, target_language: str, context: Sequence[ChatMessage] | None = None
    ) -> list[ChatMessage]:
        """System prompt, then the context turns, then the text as the final user turn."""
        messages: list[ChatMessage] = [
            ChatMessage(role="system", content=self.config.formatted_system_prompt(target_language))
        ]
        if context:
            messages.extend(context)
        messages.append(ChatMessage(role="user", content=text))
        return messages

    def build_request_body(
        self, text: str, target_language: str, context: Sequence[ChatMessage] | None = None
    ) -> dict[str, Any]:
        return {
            "messages": [message.to_dict() for message in self.build_messages(text, target_language, context)],
            "max_tokens": self.config.max_tokens,
            "temperature": self.config.temperature,
            "top_p": self.config.top_p,
            "stream": False,
        }

    async def translate(
        self, text: str, *, target_language: str | None = None, context: Sequence[ChatMessage] | None = None
    ) -> str:
        """Translate ``text`` into ``target_language``.

        Args:
            text (str): Text to translate.
            target_language (str | None): Target language name. Defaults to ``targetLanguage``.
            context (Sequence[ChatMessage] | None): Prior turns inserted between the system
                prompt and the text.

        Returns:
            str: The stripped, non-empty translation.

        Raises:
            InferenceTimeoutError: If the request times out.
            InferenceStatusError: If the endpoint is unreachable or returns an error status.
            MalformedResponseError: If the response lacks a non-empty message content.
        """
        language: str = target_language or self.config.target_language
        body: dict[str, Any] = self.build_request_body(text, language, context)
        headers: dict[str, str] = {"Content-Type": "application/json"}
        if self.config.use_online_api and self.config.online_api_key:
            headers["Authorization"] = f"Bearer {self.config.online_api_key}"

        logger.debug("Request: %s", body)
        try:
            response: Any = await self._http.post(
                url=self.endpoint,
                data=body,
                headers=headers,
                total_timeout=self.config.request_timeout_sec,
                connect_timeout=self.config.request_timeout_sec,
            )
        except AsyncCommTimeoutError as err:
            msg = f"Inference request timed out after {self.config.request_timeout} ms"
            raise InferenceTimeoutError(msg) from err
        except AsyncCommInvalidContentTypeError as err:
            msg = f"Invalid response from inference server: {err}"
            raise MalformedResponseError(msg) from err
        except AsyncCommError as err:
            msg = f"Inference server error: {err}"
            raise InferenceStatusError(msg, status=err.status) from err
        logger.debug("Response: %s", response)

        return self.parse_response(response)

    @staticmethod
    def parse_response(response: Any) -> str:
        """Extract ``choices[0].message.content``, stripped.

        Raises:
            MalformedResponseError: If the field is missing, not a string, or blank.
        """
        try:
            parsed: ChatCompletionResponse = ChatCompletionResponse.from_dict(response)
        except (KeyError, TypeError, ValueError, AttributeError) as err:
            msg = "Invalid response format from inference server"
            raise MalformedResponseError(msg) from err
        content: Any = parsed.first_content
        if not isinstance(content, str) or not content.strip():
            msg = "Inference server returned empty content"
            raise MalformedResponseError(msg)
        return content.strip()

    async def health(self) -> bool:
        """Whether the endpoint is reachable and healthy.

        Online mode has no health endpoint; it counts as healthy when a URL is configured.
        """
        if self.config.use_online_api:
            return bool(self.config.online_api_url)

        url: str = self.config.llm_server_url.rstrip("/") + self.HEALTH_PATH
        try:
            status: int = await self._http.get_status(url=url, total_timeout=self.HEALTH_TIMEOUT_SEC)
        except AsyncCommError as err:
            logger.debug("Connection test failed: %s", err)
            return False
        return status == 200

    async def close(self) -> None:
        await self._http.close()
