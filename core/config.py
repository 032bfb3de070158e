"""Application configuration for the LayerEdge node bot.

Central configuration module powered by Pydantic v2.  Settings are loaded from
environment variables (with ``.env`` file support).  Wallet and proxy lists
live in plain files next to the project and are loaded by
:mod:`core.wallet_manager` and :mod:`core.proxy_manager`.

Key exports:
    BotSettings: Root settings model (instantiate once in ``main.py``).
    WalletProfile: Per-wallet address + key model.
    ConfigurationError: Raised for fatal startup conditions.
    BASE_DIR / LOGS_DIR: Canonical project paths.
"""

from pathlib import Path
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# ---------------------------------------------------------------------------
# Base Paths
# ---------------------------------------------------------------------------
BASE_DIR: Path = Path(__file__).parent.parent
"""Project root directory (parent of ``core/``)."""

LOGS_DIR: Path = BASE_DIR / "logs"
"""Directory for log output files."""


class ConfigurationError(RuntimeError):
    """Fatal configuration problem (e.g. no wallets configured)."""


class WalletProfile(BaseModel):
    """Address and private key for a single wallet.

    Attributes:
        address: Public address as recorded in ``wallets.json``.  Optional,
            the signing identity derives its own address from the key.
        private_key: Hex private key (``privateKey`` in the JSON file).
            ``None`` generates a fresh random identity.
    """

    model_config = ConfigDict(populate_by_name=True)

    address: Optional[str] = None
    private_key: Optional[str] = Field(default=None, alias="privateKey")

    @property
    def label(self) -> str:
        """Address used in log lines before the identity is built."""
        return self.address or "<new wallet>"


class BotSettings(BaseSettings):
    """Root configuration model.

    All fields can be set via environment variables or a ``.env`` file.

    Section overview:
        * **Core** -- log level, verbosity, log file.
        * **Inputs** -- wallet and proxy file locations, referral code.
        * **Requests** -- retry count, backoff base, timeouts, UA.
        * **Schedule** -- cycle interval and per-wallet failure pause.
    """

    # Core
    log_level: str = "INFO"
    # Emit per-request diagnostics (DEBUG) and error details
    verbose: bool = True
    log_file: str = str(LOGS_DIR / "layeredge_bot.log")

    # Inputs
    wallets_file: str = str(BASE_DIR / "wallets.json")
    # One proxy per line (http://, socks4://, socks5://)
    proxies_file: str = str(BASE_DIR / "proxy.txt")
    referral_code: str = "knYyWnsE"

    # Requests
    max_retries: int = Field(default=30, ge=1)
    # Server errors wait backoff_base * 1.5^attempt seconds
    backoff_base_seconds: float = Field(default=2.0, ge=0)
    # Network errors wait a flat delay
    transient_retry_delay_seconds: float = Field(default=2.0, ge=0)
    request_timeout_seconds: float = Field(default=60.0, gt=0)
    user_agent: str = (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
        "AppleWebKit/537.36 (KHTML, like Gecko) "
        "Chrome/121.0.0.0 Safari/537.36"
    )

    # Schedule
    cycle_interval_seconds: float = Field(default=3600, ge=0)
    wallet_failure_delay_seconds: float = Field(default=5, ge=0)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )
