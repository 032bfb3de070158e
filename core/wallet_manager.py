import logging
import os
from typing import List, Optional

from eth_account import Account
from eth_account.messages import encode_defunct

from core.config import WalletProfile
from core.utils import safe_json_read

logger = logging.getLogger(__name__)


class WalletIdentity:
    """
    Signing identity for one wallet.

    Wraps an ``eth_account`` local account and exposes only what the node
    client needs: the public address and EIP-191 message signing.
    """

    def __init__(self, private_key: Optional[str] = None):
        """
        Initialize the identity.

        Args:
            private_key: Hex private key.  When omitted a fresh random
                key pair is generated for the lifetime of the process.
        """
        if private_key:
            self._account = Account.from_key(private_key)
        else:
            self._account = Account.create()

    @property
    def address(self) -> str:
        return self._account.address

    def sign(self, message: str) -> str:
        """Sign *message* as a personal message and return ``0x``-prefixed hex."""
        signed = self._account.sign_message(encode_defunct(text=message))
        signature = signed.signature.hex()
        if not signature.startswith("0x"):
            signature = "0x" + signature
        return signature

    def __repr__(self) -> str:
        return f"WalletIdentity({self.address})"


def load_wallet_profiles(path: str) -> List[WalletProfile]:
    """Load ``[{"address": ..., "privateKey": ...}]`` from *path*.

    A missing file is reported and yields an empty list; deciding whether
    that is fatal is the caller's job.  Malformed entries are skipped.
    """
    if not os.path.exists(path):
        logger.info(f"No wallets found in {path}")
        return []

    data = safe_json_read(path)
    if not isinstance(data, list):
        logger.error(f"Wallet file {path} must contain a JSON list")
        return []

    profiles: List[WalletProfile] = []
    for i, entry in enumerate(data):
        if not isinstance(entry, dict):
            logger.warning(f"Skipping wallet entry #{i + 1}: not an object")
            continue
        try:
            profiles.append(WalletProfile.model_validate(entry))
        except ValueError as e:
            logger.warning(f"Skipping invalid wallet entry #{i + 1}: {e}")
    return profiles
