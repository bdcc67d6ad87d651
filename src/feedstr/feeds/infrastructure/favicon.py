import asyncio
import re
from typing import Optional
from urllib.parse import urljoin, urlparse

import aiohttp

from feedstr.main.logging import get_logger

logger = get_logger(__name__)

# Larger, modern formats first
ICON_PATHS = (
    "/apple-touch-icon.png",
    "/apple-touch-icon-precomposed.png",
    "/icon.svg",
    "/favicon.png",
    "/favicon.ico",
)

_ICON_LINK_PATTERNS = (
    re.compile(
        r"""<link[^>]+rel=["'](?:apple-touch-icon|icon|shortcut icon)["'][^>]+href=["']([^"']+)["']""",
        re.IGNORECASE,
    ),
    re.compile(
        r"""<link[^>]+href=["']([^"']+)["'][^>]+rel=["'](?:apple-touch-icon|icon|shortcut icon)["']""",
        re.IGNORECASE,
    ),
)


def site_origin(feed_url: str) -> Optional[str]:
    parsed = urlparse(feed_url)
    if not parsed.scheme or not parsed.netloc:
        return None
    return f"{parsed.scheme}://{parsed.netloc}"


def pick_icon(html: str, origin: str) -> Optional[str]:
    """Pick an icon from the page's <link> tags.

    A 192px or 180px icon wins outright; otherwise the last match is used.
    """
    best = None
    for pattern in _ICON_LINK_PATTERNS:
        for match in pattern.finditer(html):
            icon_url = urljoin(origin + "/", match.group(1))
            if "192" in icon_url or "180" in icon_url:
                return icon_url
            best = icon_url
    return best


class FaviconFinder:
    def __init__(self, client_session_factory, timeout: float, default_image: str):
        self._client_session_factory = client_session_factory
        self.timeout = timeout
        self.default_image = default_image

    async def find(self, feed_url: str) -> str:
        """Best icon for the feed's site, falling back to the default image. Never raises."""
        origin = site_origin(feed_url)
        if origin is None:
            return self.default_image

        session: aiohttp.ClientSession = self._client_session_factory()
        timeout = aiohttp.ClientTimeout(total=self.timeout)

        for path in ICON_PATHS:
            candidate = origin + path
            try:
                async with session.head(
                    candidate, timeout=timeout, allow_redirects=True
                ) as response:
                    if response.status == 200:
                        return candidate
            except (aiohttp.ClientError, asyncio.TimeoutError):
                continue

        try:
            async with session.get(origin, timeout=timeout) as response:
                if response.status != 200:
                    return self.default_image
                if "text/html" not in response.headers.get("Content-Type", ""):
                    return self.default_image
                html = await response.text(errors="replace")
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            logger.debug(f"Favicon lookup failed: {exc}", extra={"feed_url": feed_url})
            return self.default_image

        return pick_icon(html, origin) or self.default_image
