"""
LayerEdge Node Bot - Main Entry Point

Loads wallets and proxies, then runs every wallet's light-node pipeline
(check-in, proof, node restart, point claims) once per cycle, forever.

Usage:
    python main.py                  # Run continuously (1 cycle per hour)
    python main.py --once           # Run a single cycle and exit
    python main.py --quiet          # Hide per-request diagnostics
    python main.py --wallets w.json --proxies p.txt
"""
from dotenv import load_dotenv

# Load environment variables from .env file into os.environ
load_dotenv()

import argparse
import asyncio
import logging
import sys
from typing import List, Optional

from core.config import BotSettings, ConfigurationError
from core.logging_setup import setup_logging
from core.orchestrator import WalletOrchestrator
from core.proxy_manager import load_proxies
from core.wallet_manager import load_wallet_profiles

logger = logging.getLogger(__name__)


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="LayerEdge light-node automation")
    parser.add_argument("--once", action="store_true", help="Run one cycle and exit")
    parser.add_argument("--quiet", action="store_true", help="Disable verbose request logging")
    parser.add_argument("--wallets", type=str, help="Path to wallets.json")
    parser.add_argument("--proxies", type=str, help="Path to proxy list")
    return parser.parse_args(argv)


async def run(settings: BotSettings, max_cycles: Optional[int] = None) -> None:
    """
    Load inputs and run the orchestrator.

    Raises:
        ConfigurationError: If no wallets are configured.
    """
    logger.info("Starting LayerEdge Node Bot - Initializing...")

    proxies = load_proxies(settings.proxies_file)
    if not proxies:
        logger.warning("No Proxies - Running without proxy support")

    wallets = load_wallet_profiles(settings.wallets_file)
    if not wallets:
        raise ConfigurationError("No wallets configured")

    logger.info(f"Configuration loaded - Wallets: {len(wallets)}, Proxies: {len(proxies)}")

    orchestrator = WalletOrchestrator(settings, wallets, proxies)
    await orchestrator.run_forever(max_cycles=max_cycles)


def main(argv: Optional[List[str]] = None) -> int:
    """
    Entry point.

    Returns the process exit status: ``1`` on a fatal startup error,
    ``0`` otherwise.
    """
    args = parse_args(argv)

    settings = BotSettings()
    if args.quiet:
        settings.verbose = False
    if args.wallets:
        settings.wallets_file = args.wallets
    if args.proxies:
        settings.proxies_file = args.proxies

    setup_logging(settings.log_level, verbose=settings.verbose, log_file=settings.log_file)

    try:
        asyncio.run(run(settings, max_cycles=1 if args.once else None))
    except ConfigurationError as e:
        logger.error(f"Fatal error occurred: {e}")
        return 1
    except KeyboardInterrupt:
        logger.info("👋 Stopping bot (KeyboardInterrupt)...")
    return 0


if __name__ == "__main__":
    sys.exit(main())
