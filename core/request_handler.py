"""Bounded-retry HTTP execution for the LayerEdge node bot.

Every API call goes through :class:`RequestHandler.execute`, which retries a
single request up to ``max_attempts`` times with one of two delay
strategies:

* **SERVER_OVERLOAD** (HTTP 500): exponential, ``backoff_base * 1.5 ** n``
  for the ``n``-th attempt (0-based).  A server that is down gets room to
  recover.
* **TRANSIENT** (timeouts, connection/proxy errors, other 5xx): a flat
  short delay so a flaky proxy recovers quickly.

Any status below 500 is handed back to the caller untouched; 4xx bodies
often carry the domain-level answer (e.g. a check-in cooldown) and are
interpreted by the client.  Exhausting the attempts returns ``None``
instead of raising.
"""

import asyncio
import json
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional

import aiohttp
from aiohttp_socks import ProxyError, ProxyTimeoutError

logger = logging.getLogger(__name__)

DEFAULT_MAX_ATTEMPTS = 30
DEFAULT_BACKOFF_BASE_SECONDS = 2.0
DEFAULT_TRANSIENT_DELAY_SECONDS = 2.0
SERVER_OVERLOAD_STATUS = 500
BACKOFF_FACTOR = 1.5


class FailureClass(Enum):
    """Retry classes for a failed attempt."""
    SERVER_OVERLOAD = "server_overload"  # HTTP 500
    TRANSIENT = "transient"  # Network error, timeout, other 5xx


@dataclass
class RequestDescriptor:
    """A single HTTP call, built fresh for every operation.

    Attributes:
        method: HTTP verb (``GET`` / ``POST``).
        url: Absolute URL.
        headers: Final header mapping (base headers already merged).
        json: Optional JSON body.
    """

    method: str
    url: str
    headers: Dict[str, str] = field(default_factory=dict)
    json: Optional[Any] = None


@dataclass
class Response:
    """A delivered response (status < 500).

    Attributes:
        status: HTTP status code.
        body: Parsed JSON when the payload is JSON, raw text otherwise.
    """

    status: int
    body: Any = None


class ServerStatusError(Exception):
    """Raised internally for responses with status >= 500."""

    def __init__(self, status: int, body: Any = None):
        super().__init__(f"HTTP {status}")
        self.status = status
        self.body = body


RETRYABLE_ERRORS = (
    ServerStatusError,
    aiohttp.ClientError,
    asyncio.TimeoutError,
    ProxyError,
    ProxyTimeoutError,
    OSError,
)


def merge_headers(
    base: Dict[str, str], overrides: Optional[Dict[str, str]] = None,
) -> Dict[str, str]:
    """Merge per-call *overrides* into *base*; per-call values win."""
    merged = dict(base)
    if overrides:
        merged.update(overrides)
    return merged


def classify_failure(status: Optional[int]) -> FailureClass:
    """Classify a failed attempt by its HTTP status.

    Args:
        status: Status of the failed response, or ``None`` when no
            response arrived (timeout, connection reset, proxy failure).
    """
    if status == SERVER_OVERLOAD_STATUS:
        return FailureClass.SERVER_OVERLOAD
    return FailureClass.TRANSIENT


def retry_delay(
    failure_class: FailureClass,
    attempt: int,
    backoff_base: float = DEFAULT_BACKOFF_BASE_SECONDS,
    transient_delay: float = DEFAULT_TRANSIENT_DELAY_SECONDS,
) -> float:
    """Seconds to wait after the failed *attempt* (0-based)."""
    if failure_class is FailureClass.SERVER_OVERLOAD:
        return backoff_base * (BACKOFF_FACTOR ** attempt)
    return transient_delay


async def read_body(response: aiohttp.ClientResponse) -> Any:
    """Return the response payload as JSON when possible, else text.

    Undecodable bytes are replaced with U+FFFD instead of raising.
    """
    text = await response.text(errors="replace")
    if not text:
        return text
    try:
        return json.loads(text)
    except ValueError:
        return text


class RequestHandler:
    """
    Executes requests over one aiohttp session with bounded retries.

    The handler holds no per-request state; one instance serves every
    operation of a wallet client.
    """

    def __init__(
        self,
        session: aiohttp.ClientSession,
        transient_delay: float = DEFAULT_TRANSIENT_DELAY_SECONDS,
        request_kwargs: Optional[Dict[str, Any]] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        """
        Initialize the handler.

        Args:
            session: Open aiohttp session (timeout and connector set by
                the owner).
            transient_delay: Flat delay for TRANSIENT failures (seconds).
            request_kwargs: Extra ``session.request`` arguments applied to
                every call (e.g. ``{"proxy": url}`` for HTTP proxies).
            sleep: Awaitable sleep, replaceable in tests.
        """
        self.session = session
        self.transient_delay = transient_delay
        self.request_kwargs = dict(request_kwargs or {})
        self._sleep = sleep

    async def _attempt(self, descriptor: RequestDescriptor) -> Response:
        kwargs = dict(self.request_kwargs)
        if descriptor.json is not None:
            kwargs["json"] = descriptor.json
        async with self.session.request(
            descriptor.method.upper(),
            descriptor.url,
            headers=descriptor.headers,
            **kwargs,
        ) as response:
            body = await read_body(response)
            if response.status >= SERVER_OVERLOAD_STATUS:
                raise ServerStatusError(response.status, body)
            return Response(status=response.status, body=body)

    async def execute(
        self,
        descriptor: RequestDescriptor,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        backoff_base: float = DEFAULT_BACKOFF_BASE_SECONDS,
    ) -> Optional[Response]:
        """Run *descriptor* until a status < 500 arrives or attempts run out.

        Args:
            descriptor: The request to send.
            max_attempts: Total tries, including the first.
            backoff_base: Base delay (seconds) for the 500 backoff curve.

        Returns:
            The delivered :class:`Response`, or ``None`` when every attempt
            failed.
        """
        for attempt in range(max_attempts):
            is_last = attempt == max_attempts - 1
            logger.debug(
                f"Attempting request ({attempt + 1}/{max_attempts}) "
                f"{descriptor.method.upper()} {descriptor.url}"
            )
            try:
                response = await self._attempt(descriptor)
                logger.debug(f"Request successful, status: {response.status}")
                return response
            except RETRYABLE_ERRORS as e:
                status = e.status if isinstance(e, ServerStatusError) else None
                failure = classify_failure(status)

                if failure is FailureClass.SERVER_OVERLOAD:
                    logger.error(
                        f"Server Error (500), attempt {attempt + 1}/{max_attempts}: "
                        f"{descriptor.url}"
                    )
                    logger.debug(f"Server error body: {e.body!r}")
                    if is_last:
                        break
                else:
                    if is_last:
                        logger.error(
                            f"Max retries reached for {descriptor.url}: "
                            f"{type(e).__name__}: {e}"
                        )
                        return None
                    logger.warning(
                        f"Request failed, attempt {attempt + 1}/{max_attempts}: "
                        f"{type(e).__name__}: {e}"
                    )

                wait = retry_delay(
                    failure, attempt, backoff_base, self.transient_delay,
                )
                logger.warning(f"Waiting {wait:g}s before retry...")
                await self._sleep(wait)
        return None
