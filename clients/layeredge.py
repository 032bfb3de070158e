"""LayerEdge light-node client.

One :class:`LayerEdgeClient` binds one :class:`~core.wallet_manager.WalletIdentity`
and one resolved proxy to the LayerEdge referral/light-node API:

    * Referral: verify invite code, register wallet.
    * Light node: start / stop node, status, daily check-in.
    * Tasks: proof submission (dashboard), proof points, light-node points.
    * Wallet details: total node points.

Every operation signs a fresh message where the API requires it, sends the
request through :class:`~core.request_handler.RequestHandler` and reduces
the response to ``True``/``False``.  Operations never raise; failures are
logged and reported as ``False``.
"""

import asyncio
import functools
import logging
import re
import time
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, Optional

import aiohttp

from core.config import BotSettings
from core.proxy_manager import mask_proxy, resolve_proxy
from core.request_handler import (
    RequestDescriptor,
    RequestHandler,
    Response,
    merge_headers,
)
from core.wallet_manager import WalletIdentity

logger = logging.getLogger(__name__)

REFERRAL_API = "https://referralapi.layeredge.io"
DASHBOARD_API = "https://dashboard.layeredge.io"

NODE_ACTION_SUCCESS = "node action executed successfully"
PROOF_TASK_SUCCESS = "proof submission task completed successfully"
NODE_POINTS_TASK_SUCCESS = "node points task completed successfully"
PROOF_TEXT = "GmEdgesss"

# Daily check-in already claimed; body message says "... after <cooldown>!"
CHECK_IN_COOLDOWN_STATUS = 405
COOLDOWN_PATTERN = re.compile(r"after\s+([^!]+)!")

JSON_HEADERS = {"Content-Type": "application/json"}
TASK_HEADERS = {
    "Content-Type": "application/json",
    "Accept": "application/json, text/plain, */*",
}
PROOF_HEADERS = {
    "Content-Type": "application/json",
    "Accept": "*/*",
}


def build_base_headers(user_agent: str) -> Dict[str, str]:
    """Browser-like header set sent with every request."""
    return {
        "Accept": "application/json, text/plain, */*",
        "Accept-Encoding": "gzip, deflate, br",
        "Accept-Language": "en-US,en;q=0.9",
        "Origin": "https://layeredge.io",
        "Referer": "https://layeredge.io/",
        "Sec-Fetch-Dest": "empty",
        "Sec-Fetch-Mode": "cors",
        "Sec-Fetch-Site": "same-site",
        "User-Agent": user_agent,
        "sec-ch-ua": '"Not A(Brand";v="99", "Google Chrome";v="121", "Chromium";v="121"',
        "sec-ch-ua-mobile": "?0",
        "sec-ch-ua-platform": '"Windows"',
    }


def body_field(body: Any, *path: str) -> Any:
    """Walk nested dict keys in *body*, returning ``None`` on any miss."""
    value = body
    for key in path:
        if not isinstance(value, dict):
            return None
        value = value.get(key)
    return value


def timestamp_ms() -> int:
    return int(time.time() * 1000)


def timestamp_iso() -> str:
    """UTC timestamp in JavaScript ``toISOString`` form."""
    now = datetime.now(timezone.utc)
    return now.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def api_operation(description: str):
    """Turn any exception raised by an operation into a logged ``False``."""
    def decorator(func: Callable[..., Awaitable[bool]]):
        @functools.wraps(func)
        async def wrapper(self: "LayerEdgeClient", *args: Any, **kwargs: Any) -> bool:
            try:
                return await func(self, *args, **kwargs)
            except Exception as e:
                logger.error(
                    f"[{self.short_address}] Error during {description}: {e}",
                    exc_info=self.settings.verbose,
                )
                return False
        return wrapper
    return decorator


class LayerEdgeClient:
    """LayerEdge API client for a single wallet.

    The client owns one aiohttp session, opened on entering the async
    context manager (or on first request outside one) and closed by
    :meth:`close`.  HTTP proxies are passed per request; SOCKS proxies
    become the session connector, so a bad SOCKS URL makes ``async with``
    raise instead of failing every operation.
    """

    def __init__(
        self,
        identity: WalletIdentity,
        proxy: Optional[str] = None,
        settings: Optional[BotSettings] = None,
        handler: Optional[RequestHandler] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        """Initialize the client.

        Args:
            identity: Signing identity for this wallet.
            proxy: Proxy URL, or ``None`` for a direct connection.
            settings: Bot settings (retry count, timeouts, referral code).
            handler: Pre-built request handler.  Tests pass a fake here;
                normally the handler is built on first use.
            sleep: Awaitable sleep used between retries.
        """
        self.settings = settings or BotSettings()
        self.identity = identity
        self.proxy = proxy
        self.dialer = resolve_proxy(proxy)
        self.referral_code = self.settings.referral_code
        self.retry_count = self.settings.max_retries
        self.headers = build_base_headers(self.settings.user_agent)
        self._handler = handler
        self._session: Optional[aiohttp.ClientSession] = None
        self._sleep = sleep

        logger.debug(
            f"Initialized LayerEdgeClient wallet={self.address} "
            f"proxy={mask_proxy(proxy)}"
        )

    @property
    def address(self) -> str:
        return self.identity.address

    @property
    def short_address(self) -> str:
        return f"{self.address[:6]}...{self.address[-4:]}"

    async def __aenter__(self) -> "LayerEdgeClient":
        # Connector/session faults (e.g. a malformed SOCKS URL) surface here
        await self._get_handler()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def _get_handler(self) -> RequestHandler:
        if self._handler is None:
            connector = self.dialer.connector() if self.dialer else None
            self._session = aiohttp.ClientSession(
                connector=connector,
                timeout=aiohttp.ClientTimeout(
                    total=self.settings.request_timeout_seconds,
                ),
            )
            self._handler = RequestHandler(
                self._session,
                transient_delay=self.settings.transient_retry_delay_seconds,
                request_kwargs=(
                    self.dialer.request_kwargs() if self.dialer else None
                ),
                sleep=self._sleep,
            )
        return self._handler

    async def close(self) -> None:
        if self._session is not None and not self._session.closed:
            await self._session.close()

    async def make_request(
        self,
        method: str,
        url: str,
        json: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> Optional[Response]:
        """Send one request with the client's headers and retry policy."""
        descriptor = RequestDescriptor(
            method=method,
            url=url,
            headers=merge_headers(self.headers, headers),
            json=json,
        )
        handler = await self._get_handler()
        return await handler.execute(
            descriptor,
            max_attempts=self.retry_count,
            backoff_base=self.settings.backoff_base_seconds,
        )

    def _signed_claim(self, message_prefix: str) -> Dict[str, Any]:
        """Sign ``<prefix> <address> at <ms>`` and build the claim payload."""
        timestamp = timestamp_ms()
        message = f"{message_prefix} {self.address} at {timestamp}"
        return {
            "walletAddress": self.address,
            "timestamp": timestamp,
            "sign": self.identity.sign(message),
        }

    # ------------------------------------------------------------------
    # Referral
    # ------------------------------------------------------------------

    @api_operation("invite check")
    async def verify_invite(self) -> bool:
        response = await self.make_request(
            "POST",
            f"{REFERRAL_API}/api/referral/verify-referral-code",
            json={"invite_code": self.referral_code},
            headers=JSON_HEADERS,
        )
        if response and body_field(response.body, "data", "valid") is True:
            logger.info(f"[{self.short_address}] Invite code valid: {response.body}")
            return True
        logger.error(f"[{self.short_address}] Failed to check invite")
        return False

    @api_operation("wallet registration")
    async def register_wallet(self) -> bool:
        response = await self.make_request(
            "POST",
            f"{REFERRAL_API}/api/referral/register-wallet/{self.referral_code}",
            json={"walletAddress": self.address},
            headers=JSON_HEADERS,
        )
        if response and response.body:
            logger.info(f"[{self.short_address}] Wallet registered: {response.body}")
            return True
        logger.error(f"[{self.short_address}] Failed to register wallet")
        return False

    # ------------------------------------------------------------------
    # Light node
    # ------------------------------------------------------------------

    def _node_action_payload(self, action: str) -> Dict[str, Any]:
        timestamp = timestamp_ms()
        message = f"Node {action} request for {self.address} at {timestamp}"
        return {"sign": self.identity.sign(message), "timestamp": timestamp}

    @api_operation("node activation")
    async def connect_node(self) -> bool:
        response = await self.make_request(
            "POST",
            f"{REFERRAL_API}/api/light-node/node-action/{self.address}/start",
            json=self._node_action_payload("activation"),
            headers=JSON_HEADERS,
        )
        if response and body_field(response.body, "message") == NODE_ACTION_SUCCESS:
            logger.info(f"[{self.short_address}] Connected node: {response.body}")
            return True
        logger.error(f"[{self.short_address}] Failed to connect node")
        return False

    @api_operation("node deactivation")
    async def stop_node(self) -> bool:
        response = await self.make_request(
            "POST",
            f"{REFERRAL_API}/api/light-node/node-action/{self.address}/stop",
            json=self._node_action_payload("deactivation"),
            headers=JSON_HEADERS,
        )
        if response and response.body:
            logger.info(f"[{self.short_address}] Stop and claim result: {response.body}")
            return True
        logger.error(f"[{self.short_address}] Failed to stop node and claim points")
        return False

    @api_operation("daily check-in")
    async def daily_check_in(self) -> bool:
        """Claim the daily node point.

        Two outcomes count as success: a fresh claim, and the
        "already claimed, come back after ..." cooldown answer (405).
        """
        response = await self.make_request(
            "POST",
            f"{REFERRAL_API}/api/light-node/claim-node-points",
            json=self._signed_claim("I am claiming my daily node point for"),
            headers=JSON_HEADERS,
        )
        if response is None or not response.body:
            logger.error(f"[{self.short_address}] Daily check-in failed")
            return False

        status_code = body_field(response.body, "statusCode")
        if CHECK_IN_COOLDOWN_STATUS in (status_code, response.status):
            message = body_field(response.body, "message")
            match = COOLDOWN_PATTERN.search(message) if isinstance(message, str) else None
            cooldown = match.group(1).strip() if match else "unknown time"
            logger.info(
                f"[{self.short_address}] Daily check-in already completed, "
                f"come back after {cooldown}"
            )
            return True

        rejected = isinstance(status_code, int) and status_code >= 400
        if 200 <= response.status < 300 and not rejected:
            logger.info(f"[{self.short_address}] Daily check-in successful: {response.body}")
            return True

        logger.error(
            f"[{self.short_address}] Daily check-in rejected "
            f"(HTTP {response.status}): {response.body}"
        )
        return False

    @api_operation("node status check")
    async def check_node_status(self) -> bool:
        """Return ``True`` when the node reports a start timestamp."""
        response = await self.make_request(
            "GET",
            f"{REFERRAL_API}/api/light-node/node-status/{self.address}",
        )
        if response and body_field(response.body, "data", "startTimestamp") is not None:
            logger.info(f"[{self.short_address}] Node status running: {response.body}")
            return True
        logger.error(f"[{self.short_address}] Node not running, it will be started")
        return False

    @api_operation("points check")
    async def check_node_points(self) -> bool:
        response = await self.make_request(
            "GET",
            f"{REFERRAL_API}/api/referral/wallet-details/{self.address}",
        )
        if response and response.body:
            points = body_field(response.body, "data", "nodePoints") or 0
            logger.info(f"[{self.short_address}] {self.address} Total Points: {points}")
            return True
        logger.error(f"[{self.short_address}] Failed to check total points")
        return False

    # ------------------------------------------------------------------
    # Tasks
    # ------------------------------------------------------------------

    @api_operation("proof submission")
    async def submit_proof(self) -> bool:
        message = f"I am submitting a proof for LayerEdge at {timestamp_iso()}"
        payload = {
            "proof": PROOF_TEXT,
            "signature": self.identity.sign(message),
            "message": message,
            "address": self.address,
        }
        response = await self.make_request(
            "POST",
            f"{DASHBOARD_API}/api/send-proof",
            json=payload,
            headers=PROOF_HEADERS,
        )
        if response and body_field(response.body, "success"):
            logger.info(
                f"[{self.short_address}] Proof submitted: "
                f"{body_field(response.body, 'message')}"
            )
            return True
        logger.error(
            f"[{self.short_address}] Failed to submit proof: "
            f"{response.body if response else None}"
        )
        return False

    @api_operation("proof points claim")
    async def claim_proof_submission_points(self) -> bool:
        response = await self.make_request(
            "POST",
            f"{REFERRAL_API}/api/task/proof-submission",
            json=self._signed_claim(
                "I am claiming my proof submission node points for"
            ),
            headers=TASK_HEADERS,
        )
        if response and body_field(response.body, "message") == PROOF_TASK_SUCCESS:
            logger.info(f"[{self.short_address}] Proof submission points claimed")
            return True
        logger.error(
            f"[{self.short_address}] Failed to claim proof submission points: "
            f"{response.body if response else None}"
        )
        return False

    @api_operation("light node points claim")
    async def claim_light_node_points(self) -> bool:
        response = await self.make_request(
            "POST",
            f"{REFERRAL_API}/api/task/node-points",
            json=self._signed_claim(
                "I am claiming my light node run task node points for"
            ),
            headers=TASK_HEADERS,
        )
        if response and body_field(response.body, "message") == NODE_POINTS_TASK_SUCCESS:
            logger.info(f"[{self.short_address}] Light node points claimed")
            return True
        logger.error(
            f"[{self.short_address}] Failed to claim light node points: "
            f"{response.body if response else None}"
        )
        return False
