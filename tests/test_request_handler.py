import asyncio
import pytest
import aiohttp
from unittest.mock import AsyncMock, MagicMock

from core.request_handler import (
    FailureClass,
    RequestDescriptor,
    RequestHandler,
    Response,
    classify_failure,
    merge_headers,
    retry_delay,
)


class SleepRecorder:
    """Stands in for asyncio.sleep and records requested delays."""

    def __init__(self):
        self.calls = []

    async def __call__(self, seconds):
        self.calls.append(seconds)


def make_response_ctx(status, text=""):
    response = AsyncMock()
    response.status = status
    response.text.return_value = text

    ctx = AsyncMock()
    ctx.__aenter__.return_value = response
    ctx.__aexit__.return_value = None
    return ctx


def make_session(*outcomes):
    """Session whose request() yields each outcome in turn.

    Integers become responses with that status, exceptions are raised.
    """
    side_effect = []
    for outcome in outcomes:
        if isinstance(outcome, BaseException):
            side_effect.append(outcome)
        elif isinstance(outcome, tuple):
            side_effect.append(make_response_ctx(*outcome))
        else:
            side_effect.append(make_response_ctx(outcome, '{"ok": true}'))
    session = MagicMock()
    session.request = MagicMock(side_effect=side_effect)
    return session


def descriptor(**kwargs):
    defaults = {"method": "get", "url": "https://api.example/status", "headers": {"A": "1"}}
    defaults.update(kwargs)
    return RequestDescriptor(**defaults)


class TestClassification:
    """Test suite for failure classification and delay strategies."""

    def test_500_is_server_overload(self):
        assert classify_failure(500) is FailureClass.SERVER_OVERLOAD

    @pytest.mark.parametrize("status", [None, 502, 503, 504])
    def test_everything_else_is_transient(self, status):
        assert classify_failure(status) is FailureClass.TRANSIENT

    def test_server_overload_delay_grows_by_half(self):
        delays = [retry_delay(FailureClass.SERVER_OVERLOAD, n, 2.0) for n in range(4)]
        assert delays == [2.0, 3.0, 4.5, 6.75]

    def test_transient_delay_is_flat(self):
        delays = {retry_delay(FailureClass.TRANSIENT, n, 2.0, 2.0) for n in range(10)}
        assert delays == {2.0}

    def test_merge_headers_per_call_wins(self):
        base = {"Accept": "application/json", "User-Agent": "ua"}
        merged = merge_headers(base, {"Accept": "*/*", "Content-Type": "application/json"})
        assert merged == {
            "Accept": "*/*",
            "User-Agent": "ua",
            "Content-Type": "application/json",
        }
        assert base["Accept"] == "application/json"


class TestRequestHandlerExecute:
    """Test suite for RequestHandler.execute retry behaviour."""

    @pytest.mark.asyncio
    async def test_success_on_first_attempt(self):
        session = make_session(200)
        sleep = SleepRecorder()
        handler = RequestHandler(session, sleep=sleep)

        result = await handler.execute(descriptor())

        assert result == Response(status=200, body={"ok": True})
        assert session.request.call_count == 1
        assert sleep.calls == []

    @pytest.mark.asyncio
    async def test_two_server_errors_then_success(self):
        """500, 500, 200 waits 2s then 3s and records three attempts."""
        session = make_session(500, 500, 200)
        sleep = SleepRecorder()
        handler = RequestHandler(session, sleep=sleep)

        result = await handler.execute(descriptor(), max_attempts=30, backoff_base=2.0)

        assert result is not None
        assert result.status == 200
        assert session.request.call_count == 3
        assert sleep.calls == [2.0, 3.0]
        assert sum(sleep.calls) == pytest.approx(5.0)

    @pytest.mark.asyncio
    async def test_server_errors_exhaust_without_final_sleep(self):
        session = make_session(500, 500, 500)
        sleep = SleepRecorder()
        handler = RequestHandler(session, sleep=sleep)

        result = await handler.execute(descriptor(), max_attempts=3, backoff_base=2.0)

        assert result is None
        assert session.request.call_count == 3
        assert sleep.calls == [2.0, 3.0]

    @pytest.mark.asyncio
    async def test_network_errors_use_flat_delay(self):
        session = make_session(
            aiohttp.ClientConnectionError("reset"),
            asyncio.TimeoutError(),
            200,
        )
        sleep = SleepRecorder()
        handler = RequestHandler(session, transient_delay=2.0, sleep=sleep)

        result = await handler.execute(descriptor(), max_attempts=5, backoff_base=10.0)

        assert result.status == 200
        assert sleep.calls == [2.0, 2.0]

    @pytest.mark.asyncio
    async def test_transient_exhaustion_returns_none(self):
        session = make_session(*[aiohttp.ClientConnectionError("down")] * 4)
        sleep = SleepRecorder()
        handler = RequestHandler(session, sleep=sleep)

        result = await handler.execute(descriptor(), max_attempts=4)

        assert result is None
        assert session.request.call_count == 4
        assert sleep.calls == [2.0, 2.0, 2.0]

    @pytest.mark.asyncio
    async def test_other_5xx_is_retried_flat(self):
        session = make_session(502, 503, 200)
        sleep = SleepRecorder()
        handler = RequestHandler(session, transient_delay=2.0, sleep=sleep)

        result = await handler.execute(descriptor(), backoff_base=100.0)

        assert result.status == 200
        assert sleep.calls == [2.0, 2.0]

    @pytest.mark.asyncio
    async def test_client_errors_are_delivered(self):
        """4xx responses are returned for the caller to interpret."""
        session = make_session((405, '{"statusCode": 405, "message": "come back later"}'))
        sleep = SleepRecorder()
        handler = RequestHandler(session, sleep=sleep)

        result = await handler.execute(descriptor())

        assert result.status == 405
        assert result.body["statusCode"] == 405
        assert sleep.calls == []

    @pytest.mark.asyncio
    async def test_non_json_body_kept_as_text(self):
        session = make_session((200, "plain text"))
        handler = RequestHandler(session, sleep=SleepRecorder())

        result = await handler.execute(descriptor())

        assert result.body == "plain text"

    @pytest.mark.asyncio
    async def test_undecodable_body_is_replaced(self):
        """A body that is not valid UTF-8 is delivered, not raised."""
        raw = b'{"message": "\xff"}'

        async def text(encoding=None, errors="strict"):
            return raw.decode("utf-8", errors=errors)

        response = AsyncMock()
        response.status = 200
        response.text.side_effect = text
        ctx = AsyncMock()
        ctx.__aenter__.return_value = response
        session = MagicMock()
        session.request = MagicMock(return_value=ctx)
        sleep = SleepRecorder()
        handler = RequestHandler(session, sleep=sleep)

        result = await handler.execute(descriptor(), max_attempts=2)

        assert result.status == 200
        assert result.body == {"message": "�"}
        assert sleep.calls == []

    @pytest.mark.asyncio
    async def test_never_raises_for_mixed_failures(self):
        session = make_session(
            500,
            aiohttp.ClientConnectionError("reset"),
            OSError("dns"),
            500,
        )
        handler = RequestHandler(session, sleep=SleepRecorder())

        result = await handler.execute(descriptor(), max_attempts=4)

        assert result is None

    @pytest.mark.asyncio
    async def test_request_arguments(self):
        session = make_session(200)
        handler = RequestHandler(
            session,
            request_kwargs={"proxy": "http://u:p@1.2.3.4:8080"},
            sleep=SleepRecorder(),
        )

        await handler.execute(descriptor(method="post", json={"sign": "0xabc"}))

        args, kwargs = session.request.call_args
        assert args == ("POST", "https://api.example/status")
        assert kwargs["headers"] == {"A": "1"}
        assert kwargs["json"] == {"sign": "0xabc"}
        assert kwargs["proxy"] == "http://u:p@1.2.3.4:8080"

    @pytest.mark.asyncio
    async def test_get_without_body_sends_no_json(self):
        session = make_session(200)
        handler = RequestHandler(session, sleep=SleepRecorder())

        await handler.execute(descriptor())

        _, kwargs = session.request.call_args
        assert "json" not in kwargs
