"""
Core module for the LayerEdge node bot.

This package contains the orchestration loop, configuration, request retry
policy, proxy resolution and wallet identity components that drive the
light-node automation.

Submodules:
    config: Application settings (``BotSettings``, ``WalletProfile``) via Pydantic.
    orchestrator: ``WalletOrchestrator`` cycle loop and per-wallet pipeline.
    request_handler: ``RequestHandler`` bounded retry with two backoff classes.
    proxy_manager: Proxy list loading, round-robin assignment and dialers.
    wallet_manager: ``WalletIdentity`` message signing and wallets.json loading.
    logging_setup: Compressed rotating file + safe console logging.
    utils: Corruption-tolerant JSON and line readers.
"""
