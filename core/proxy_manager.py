"""Proxy list loading and resolution for the LayerEdge node bot.

Proxies come from a plain text file, one URL per line.  Each wallet gets a
proxy by round-robin position, and the proxy string is resolved once per
wallet client into a *dialer*: the object that tells aiohttp how to route
the connection.

Supported schemes::

    http://[user:pass@]host:port      -> HttpProxyDialer
    https://[user:pass@]host:port     -> HttpProxyDialer
    socks4://[user:pass@]host:port    -> SocksProxyDialer
    socks5://[user:pass@]host:port    -> SocksProxyDialer

Anything else is logged and falls back to a direct connection.
"""

import logging
import os
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Union
from urllib.parse import urlparse

from aiohttp_socks import ProxyConnector

from core.utils import read_lines

logger = logging.getLogger(__name__)

HTTP_SCHEMES = ("http://", "https://")
SOCKS_SCHEMES = ("socks4://", "socks5://")


@dataclass(frozen=True)
class HttpProxyDialer:
    """HTTP(S) tunnelling proxy, passed to aiohttp per request.

    Attributes:
        url: Full proxy URL including any credentials.
    """

    url: str

    def connector(self) -> None:
        return None

    def request_kwargs(self) -> Dict[str, Any]:
        return {"proxy": self.url}


@dataclass(frozen=True)
class SocksProxyDialer:
    """SOCKS4/5 proxy, installed as the session connector.

    Attributes:
        url: Full proxy URL including any credentials.
    """

    url: str

    def connector(self) -> ProxyConnector:
        return ProxyConnector.from_url(self.url)

    def request_kwargs(self) -> Dict[str, Any]:
        return {}


Dialer = Union[HttpProxyDialer, SocksProxyDialer]


def mask_proxy(proxy: Optional[str]) -> str:
    """Return *proxy* with its password hidden, for log output."""
    if not proxy:
        return "None"
    parsed = urlparse(proxy)
    if not parsed.password:
        return proxy
    netloc = f"{parsed.username}:***@{parsed.hostname}"
    if parsed.port:
        netloc = f"{netloc}:{parsed.port}"
    return parsed._replace(netloc=netloc).geturl()


def resolve_proxy(proxy: Optional[str]) -> Optional[Dialer]:
    """Map a proxy URL to a dialer.

    Args:
        proxy: Proxy URL or ``None``.

    Returns:
        A dialer bound to the full proxy URL, or ``None`` for a direct
        connection (no proxy, or an unsupported scheme).
    """
    if not proxy:
        return None

    lowered = proxy.lower()
    if lowered.startswith(HTTP_SCHEMES):
        return HttpProxyDialer(proxy)
    if lowered.startswith(SOCKS_SCHEMES):
        return SocksProxyDialer(proxy)

    # TODO: decide with the operator whether an unsupported scheme should
    # fail the wallet instead of silently going direct.
    logger.warning(f"Unsupported proxy type: {mask_proxy(proxy)}")
    return None


def assign_proxy(index: int, proxies: Sequence[str]) -> Optional[str]:
    """Round-robin proxy for the wallet at position *index*."""
    if not proxies:
        return None
    return proxies[index % len(proxies)]


def load_proxies(path: str) -> List[str]:
    """Load proxy URLs from *path*, one per line.

    A missing file is not an error: the bot then runs every wallet
    without a proxy.
    """
    if not os.path.exists(path):
        logger.warning(f"Proxy file not found: {path}")
        return []

    proxies = read_lines(path)
    logger.info(f"Loaded {len(proxies)} proxies from {path}")
    return proxies
