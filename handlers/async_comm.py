"""Asynchronous HTTP utilities.

This module provides an aiohttp-based client for JSON APIs. It maps the transport failures that
matter to callers (timeouts, refused connections, error statuses, unexpected content types) to a
small exception family so higher layers never see aiohttp exceptions directly.
"""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any, Final, Literal, Self

import aiohttp
from aiohttp.client import ClientSession

from utils.logger_utils import LoggerUtils

if TYPE_CHECKING:
    import logging
    from collections.abc import Callable

    from aiohttp.client import ClientResponse

__all__: list[str] = [
    "AsyncCommError",
    "AsyncCommInvalidContentTypeError",
    "AsyncCommTimeoutError",
    "AsyncHttp",
]

logger: logging.Logger = LoggerUtils.get_logger(__name__)

HTTPMethod = Literal["GET", "POST", "PUT", "PATCH", "DELETE", "HEAD", "OPTIONS"]

CONNECT_TIMEOUT: Final[float] = 1.0


class AsyncHttp:
    """Asynchronous HTTP client for making requests and handling responses.

    The aiohttp session is created on first use so the client can be constructed outside a
    running event loop. Responses are decoded by content type through registered handlers.
    """

    def __init__(self) -> None:
        """Register the default content type handlers.

        The default handlers include:
            - "text/plain": Decodes bytes to a UTF-8 string.
            - "text/html": Decodes bytes to a UTF-8 string.
            - "application/json": Parses bytes as JSON.
        """
        logger.info("%s initializing", self.__class__.__name__)
        self.__session: ClientSession | None = None
        self.content_handlers: dict[str, Callable[[bytes], Any]] = {}
        self.add_handler("text/plain", lambda x: x.decode("utf-8"))
        self.add_handler("text/html", lambda x: x.decode("utf-8"))
        self.add_handler("application/json", lambda x: json.loads(x.decode("utf-8")))
        self.list_handlers()

    async def __aenter__(self) -> Self:
        logger.debug("%s entering context", self.__class__.__name__)
        self.initialize_session(suppress_already_log=True)
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        _ = exc_type, exc_val, exc_tb
        logger.debug("%s exiting context", self.__class__.__name__)
        await self.close()

    def initialize_session(self, *, suppress_already_log: bool = False) -> None:
        """Initialize the aiohttp session.

        Must be called with a running event loop.

        Args:
            suppress_already_log (bool): If True, do not log when the session is already initialized.
        """
        if self.__session is None or self.__session.closed:
            self.__session = ClientSession()
            logger.debug("%s session initialized", self.__class__.__name__)
        elif not suppress_already_log:
            logger.debug("%s session already initialized", self.__class__.__name__)

    @property
    def session(self) -> ClientSession:
        """Get the current aiohttp session, creating it when needed."""
        self.initialize_session(suppress_already_log=True)
        if self.__session is None:
            msg = "Session could not be initialized"
            raise RuntimeError(msg)
        return self.__session

    @property
    def is_open(self) -> bool:
        return self.__session is not None and not self.__session.closed

    async def close(self) -> None:
        """Close the aiohttp session if it is open."""
        if self.__session and not self.__session.closed:
            await self.__session.close()
            logger.info("%s session closed", self.__class__.__name__)
        self.__session = None

    async def get(self, *, url: str, headers: dict[str, str] | None = None, total_timeout: float = 10.0) -> Any:
        """Perform an asynchronous HTTP GET request.

        Args:
            url (str): The URL to send the GET request to.
            headers (dict[str, str] | None): Optional request headers.
            total_timeout (float): Total timeout for the request in seconds.

        Returns:
            Any: The decoded response data.
        """
        logger.debug("'url': '%s', 'timeout': '%s'", url, total_timeout)
        return await self._request("GET", url=url, headers=headers, total_timeout=total_timeout)

    async def post(
        self,
        *,
        url: str,
        data: Any | None = None,
        headers: dict[str, str] | None = None,
        total_timeout: float = 10.0,
        connect_timeout: float | None = None,
    ) -> Any:
        """Perform an asynchronous HTTP POST request with a JSON body.

        Args:
            url (str): The URL to send the POST request to.
            data (Any | None): Object serialized as the JSON request body.
            headers (dict[str, str] | None): Optional request headers.
            total_timeout (float): Total timeout for the request in seconds.
            connect_timeout (float | None): Connection timeout in seconds. Defaults to
                ``CONNECT_TIMEOUT``.

        Returns:
            Any: The decoded response data.
        """
        logger.debug("'url': '%s', 'timeout': '%s'", url, total_timeout)
        return await self._request(
            "POST", url=url, headers=headers, json=data, total_timeout=total_timeout, connect_timeout=connect_timeout
        )

    async def get_status(self, *, url: str, total_timeout: float = 5.0) -> int:
        """Return the status code of a GET request without decoding the body.

        Error statuses are returned, not raised.

        Raises:
            AsyncCommTimeoutError: If the server does not answer in time.
            AsyncCommError: If the connection fails.
        """
        logger.debug("'url': '%s', 'timeout': '%s'", url, total_timeout)
        try:
            async with self.session.request(method="GET", url=url, timeout=self._timeout(total_timeout)) as resp:
                return resp.status
        except TimeoutError as err:
            msg = "Timeout due to a lack of response from the server."
            raise AsyncCommTimeoutError(msg) from err
        except aiohttp.ClientError as err:
            logger.debug(err)
            msg = "The server is not running, or the port is closed."
            raise AsyncCommError(msg) from err

    async def decode_response(self, resp: ClientResponse) -> Any:
        """Parse the response body according to its 'Content-Type' header.

        Args:
            resp (ClientResponse): The response object from the aiohttp request.

        Returns:
            Any: The parsed response data, or None for an empty body.

        Raises:
            AsyncCommInvalidContentTypeError: If no handler is registered for the content type
                or the handler cannot parse the body.
        """
        content_type: str = resp.headers.get("Content-Type", "").split(";")[0].strip()
        logger.debug("'Content-Type': '%s'", content_type)
        raw: bytes = await resp.read()
        if not raw:
            logger.debug("Received empty response")
            return None

        handler: Callable[[bytes], Any] | None = self.content_handlers.get(content_type)
        if handler is None:
            msg: str = f"Unknown Content-Type '{content_type}'"
            raise AsyncCommInvalidContentTypeError(msg)
        try:
            return handler(raw)
        except (UnicodeDecodeError, ValueError) as err:
            msg = f"Failed to decode '{content_type}' response: {err}"
            raise AsyncCommInvalidContentTypeError(msg) from err

    def add_handler(self, content_type: str, handler: Callable[[bytes], Any]) -> None:
        """Add a custom handler for a specific content type.

        Args:
            content_type (str): The content type to handle (e.g., "text/plain", "application/json").
            handler (Callable[[bytes], Any]): A function that takes bytes and returns the parsed data.
        """
        if self.content_handlers.get(content_type):
            logger.warning("Handler for content type '%s' already exists, replacing it", content_type)
        self.content_handlers[content_type] = handler
        logger.debug("Added handler for content type '%s'", content_type)

    def list_handlers(self) -> None:
        """Log the content types that have a registered handler."""
        if not self.content_handlers:
            logger.info("No content type handlers registered")
            return
        logger.info("Handlers registered for content types '%s'", list(self.content_handlers.keys()))

    @staticmethod
    def _timeout(total_timeout: float, connect_timeout: float | None = None) -> aiohttp.ClientTimeout:
        connect: float = CONNECT_TIMEOUT if connect_timeout is None else connect_timeout
        if total_timeout <= 0:
            # No timeout at all
            return aiohttp.ClientTimeout(total=None)
        if total_timeout <= connect:
            # Keep the connect timeout from exceeding the total
            return aiohttp.ClientTimeout(total=total_timeout)
        return aiohttp.ClientTimeout(connect=connect, total=total_timeout)

    async def _request(
        self,
        method: HTTPMethod,
        *,
        url: str,
        total_timeout: float,
        connect_timeout: float | None = None,
        **kwargs: Any,
    ) -> Any:
        """Perform an asynchronous HTTP request.

        Args:
            method (HTTPMethod): The HTTP method to use (GET, POST, etc.).
            url (str): The URL to send the request to.
            total_timeout (float): Total timeout for the request in seconds.
            connect_timeout (float | None): Connection timeout in seconds, None for the default.
            **kwargs: Additional keyword arguments to pass to the aiohttp request.

        Returns:
            Any: The decoded response data.

        Raises:
            AsyncCommTimeoutError: If the request times out.
            AsyncCommError: If the connection fails or the server answers with an error status.
            AsyncCommInvalidContentTypeError: If the body cannot be decoded.
        """
        logger.debug("[%s] url=%s timeout=%s", method, url, total_timeout)
        try:
            async with self.session.request(
                method=method,
                url=url,
                timeout=self._timeout(total_timeout, connect_timeout),
                **kwargs,
            ) as resp:
                resp.raise_for_status()
                return await self.decode_response(resp)
        except TimeoutError as err:
            logger.debug(err)
            msg = "Timeout due to a lack of response from the server."
            raise AsyncCommTimeoutError(msg) from err
        except ConnectionResetError as err:
            logger.debug(err)
            msg = "The connection to the server has been disconnected."
            raise AsyncCommError(msg) from err
        except aiohttp.ClientConnectorError as err:
            logger.debug(err)
            msg = "The server is not running, or the port is closed."
            raise AsyncCommError(msg) from err
        except aiohttp.ClientResponseError as err:
            logger.debug(err)
            msg = "Error response from the server."
            raise AsyncCommError(msg, response=err) from err
        except aiohttp.ClientError as err:
            logger.debug(err)
            msg = f"HTTP client error: {err}"
            raise AsyncCommError(msg) from err


class AsyncCommError(Exception):
    """Base class for asynchronous communication errors.

    Attributes:
        msg (str): Message, with the HTTP status appended when a response is attached.
        status (int | None): HTTP status of the failed response, if any.
    """

    def __init__(self, msg: str | BaseException, **kwargs: Any) -> None:
        self.msg: str = str(msg)
        self.status: int | None = None

        rsp: aiohttp.ClientResponseError | None = kwargs.pop("response", None)
        if isinstance(rsp, aiohttp.ClientResponseError):
            self.status = rsp.status
            self.msg = f"{self.msg}: status='{rsp.status}'"

        super().__init__(self.msg)


class AsyncCommTimeoutError(AsyncCommError):
    """Error raised when an HTTP request does not complete within its timeout."""


class AsyncCommInvalidContentTypeError(AsyncCommError):
    """Error raised when a response body has an unsupported content type or cannot be decoded."""
