"""Cycle orchestration for the LayerEdge node bot.

This module drives the never-ending loop: every cycle walks the wallet list
in a fixed order, runs each wallet's full pipeline to completion (or
failure) before the next wallet starts, then sleeps for the cycle interval.

Per-wallet pipeline::

    started -> checked_in -> proof_submitted -> proof_points_claimed
    -> status_checked -> [node_stopped] -> node_restarted
    -> light_points_claimed -> points_checked -> complete | failed

Step outcomes are logged but never gate later steps; only ``node_stopped``
is conditional (it runs when the status check found the node running).
An exception anywhere in a wallet's pipeline marks that wallet ``failed``
and the loop moves on to the next wallet after a short pause.

Classes:
    PipelineState: Enum of pipeline states.
    WalletRunResult: Outcome of one wallet's pass through the pipeline.
    WalletOrchestrator: Main loop.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence

from clients.layeredge import LayerEdgeClient
from core.config import BotSettings, ConfigurationError, WalletProfile
from core.logging_setup import log_progress
from core.proxy_manager import assign_proxy, mask_proxy
from core.wallet_manager import WalletIdentity

logger = logging.getLogger(__name__)


class PipelineState(Enum):
    """States a wallet moves through within one cycle."""
    STARTED = "started"
    CHECKED_IN = "checked_in"
    PROOF_SUBMITTED = "proof_submitted"
    PROOF_POINTS_CLAIMED = "proof_points_claimed"
    STATUS_CHECKED = "status_checked"
    NODE_STOPPED = "node_stopped"
    NODE_RESTARTED = "node_restarted"
    LIGHT_POINTS_CLAIMED = "light_points_claimed"
    POINTS_CHECKED = "points_checked"
    COMPLETE = "complete"
    FAILED = "failed"


# (state reached, progress label, client method)
PIPELINE_STEPS = [
    (PipelineState.CHECKED_IN, "Performing Daily Check-in", "daily_check_in"),
    (PipelineState.PROOF_SUBMITTED, "Submitting Proof", "submit_proof"),
    (PipelineState.PROOF_POINTS_CLAIMED, "Claiming Proof Submission Points",
     "claim_proof_submission_points"),
    (PipelineState.STATUS_CHECKED, "Checking Node Status", "check_node_status"),
    (PipelineState.NODE_STOPPED, "Stopping Node and Claiming Points", "stop_node"),
    (PipelineState.NODE_RESTARTED, "Reconnecting Node", "connect_node"),
    (PipelineState.LIGHT_POINTS_CLAIMED, "Claiming Light Node Points",
     "claim_light_node_points"),
    (PipelineState.POINTS_CHECKED, "Checking Node Points", "check_node_points"),
]


@dataclass
class WalletRunResult:
    """Outcome of one wallet's pipeline in one cycle.

    Attributes:
        index: Wallet position in the configured list.
        address: Wallet address (derived once the identity is built).
        proxy: Proxy assigned for this cycle, or ``None``.
        state: Last state reached (``COMPLETE`` or ``FAILED`` at the end).
        steps: Boolean outcome per executed step.
        error: Error text when the wallet failed.
    """

    index: int
    address: str
    proxy: Optional[str] = None
    state: PipelineState = PipelineState.STARTED
    steps: Dict[PipelineState, bool] = field(default_factory=dict)
    error: Optional[str] = None

    @property
    def succeeded_steps(self) -> int:
        return sum(1 for ok in self.steps.values() if ok)


IdentityFactory = Callable[[WalletProfile], Any]
ClientFactory = Callable[[Any, Optional[str], BotSettings], Any]


def build_identity(profile: WalletProfile) -> WalletIdentity:
    """Default identity factory: supplied key, or a freshly generated one."""
    if not profile.private_key:
        logger.info(f"No private key for {profile.label}, generating a new wallet")
    return WalletIdentity(profile.private_key)


def build_client(
    identity: WalletIdentity, proxy: Optional[str], settings: BotSettings,
) -> LayerEdgeClient:
    """Default client factory: identity + proxy -> LayerEdge client."""
    return LayerEdgeClient(identity, proxy=proxy, settings=settings)


class WalletOrchestrator:
    """
    Runs every wallet's pipeline, one wallet at a time, forever.

    Wallets and proxies are fixed at construction.  The wallet at position
    ``i`` uses ``proxies[i % len(proxies)]``; with no proxies every wallet
    connects directly.  Each wallet's identity is built on first use and
    kept for the life of the orchestrator, so a keyless wallet keeps the
    address generated for it in the first cycle.
    """

    def __init__(
        self,
        settings: BotSettings,
        wallets: Sequence[WalletProfile],
        proxies: Optional[Sequence[str]] = None,
        client_factory: ClientFactory = build_client,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        identity_factory: IdentityFactory = build_identity,
    ):
        """
        Initialize the orchestrator.

        Args:
            settings: Global configuration object.
            wallets: Wallet profiles, processed in this order.
            proxies: Proxy URLs for round-robin assignment.
            client_factory: Builds a client for ``(identity, proxy, settings)``.
            sleep: Awaitable sleep for cycle and failure pauses.
            identity_factory: Builds the signing identity for a profile.

        Raises:
            ConfigurationError: If no wallets are configured.
        """
        if not wallets:
            raise ConfigurationError("No wallets configured")
        self.settings = settings
        self.wallets = tuple(wallets)
        self.proxies = tuple(proxies or ())
        self.client_factory = client_factory
        self.identity_factory = identity_factory
        self._identities: Dict[int, Any] = {}
        self._sleep = sleep
        self.cycles_completed = 0

    def proxy_for(self, index: int) -> Optional[str]:
        return assign_proxy(index, self.proxies)

    def identity_for(self, index: int, profile: WalletProfile) -> Any:
        """Identity for the wallet at *index*, built once and then reused.

        A profile whose key is rejected is not cached and fails again on
        the next cycle.
        """
        if index not in self._identities:
            self._identities[index] = self.identity_factory(profile)
        return self._identities[index]

    async def run_wallet(self, index: int, profile: WalletProfile) -> WalletRunResult:
        """Run the full pipeline for the wallet at *index*.

        Never raises (except on cancellation): any fault is logged and
        recorded as ``FAILED`` on the returned result.
        """
        proxy = self.proxy_for(index)
        result = WalletRunResult(index=index, address=profile.label, proxy=proxy)

        try:
            logger.debug(
                f"Processing wallet {index + 1}/{len(self.wallets)}: {profile.label}"
            )
            identity = self.identity_for(index, profile)
            client = self.client_factory(identity, proxy, self.settings)
            async with client:
                result.address = client.address
                log_progress(logger, result.address, "Wallet Processing Started", "start")
                logger.info(
                    f"Wallet Details - Address: {result.address}, "
                    f"Proxy: {mask_proxy(proxy) if proxy else 'No Proxy'}"
                )

                for state, label, method in PIPELINE_STEPS:
                    if state is PipelineState.NODE_STOPPED and not result.steps.get(
                        PipelineState.STATUS_CHECKED
                    ):
                        continue
                    log_progress(logger, result.address, label, "processing")
                    result.steps[state] = await getattr(client, method)()
                    result.state = state

            result.state = PipelineState.COMPLETE
            log_progress(logger, result.address, "Wallet Processing Complete", "success")
        except Exception as e:
            result.state = PipelineState.FAILED
            result.error = f"{type(e).__name__}: {e}"
            logger.error(
                f"Failed processing wallet {result.address}: {result.error}",
                exc_info=self.settings.verbose,
            )
            log_progress(logger, result.address, "Wallet Processing Failed", "failed")
            await self._sleep(self.settings.wallet_failure_delay_seconds)

        return result

    async def run_cycle(self) -> List[WalletRunResult]:
        """One pass over every wallet, in configured order."""
        results = []
        for index, profile in enumerate(self.wallets):
            results.append(await self.run_wallet(index, profile))
        self.cycles_completed += 1
        return results

    async def run_forever(self, max_cycles: Optional[int] = None) -> None:
        """Repeat :meth:`run_cycle` with a fixed pause in between.

        Args:
            max_cycles: Stop after this many cycles (``None`` = forever).
        """
        logger.info(
            f"Starting loop: {len(self.wallets)} wallets, {len(self.proxies)} proxies"
        )
        while max_cycles is None or self.cycles_completed < max_cycles:
            results = await self.run_cycle()
            completed = sum(1 for r in results if r.state is PipelineState.COMPLETE)
            logger.info(
                f"Cycle {self.cycles_completed} finished: "
                f"{completed}/{len(results)} wallets completed"
            )
            if max_cycles is not None and self.cycles_completed >= max_cycles:
                break

            interval = self.settings.cycle_interval_seconds
            logger.warning(
                f"Cycle Complete - waiting {interval / 60:g} minutes before next run..."
            )
            await self._sleep(interval)
