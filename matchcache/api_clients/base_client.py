"""Shared aiohttp session handling for HTTP service clients"""

import logging
from typing import Dict, Optional

import aiohttp

logger = logging.getLogger(__name__)

_STATUS_LABELS = {
    401: "authentication failed",
    403: "authentication failed",
    429: "rate limited",
}


class APIError(Exception):
    """Non-2xx response from a remote service."""

    def __init__(self, platform: str, status_code: int, body: str = ""):
        self.platform = platform
        self.status_code = status_code
        self.body = body
        label = _STATUS_LABELS.get(status_code) or ("server error" if status_code >= 500 else "request rejected")
        message = f"[{platform}] {label} (HTTP {status_code})"
        if body:
            message += f": {body}"
        super().__init__(message)


class BaseAPIClient:
    """
    Owns one ``aiohttp.ClientSession`` per ``async with`` block.

    Subclasses build requests with ``_headers()`` and call
    ``_raise_for_status()`` before reading a response body.
    """

    def __init__(self, platform_name: str, api_key: Optional[str] = None, base_url: str = "", timeout: float = 30):
        self.platform_name = platform_name
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.timeout_seconds = timeout
        self.session: Optional[aiohttp.ClientSession] = None

    async def __aenter__(self):
        self.session = aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=self.timeout_seconds))
        logger.debug(f"✅ Opened {self.platform_name} session")
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        if self.session:
            await self.session.close()
            self.session = None
            logger.debug(f"Closed {self.platform_name} session")

    def _require_session(self) -> aiohttp.ClientSession:
        if not self.session:
            raise RuntimeError("Session not initialized. Use 'async with' context manager.")
        return self.session

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json", "Accept": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    async def _raise_for_status(self, response: aiohttp.ClientResponse) -> None:
        """Raise APIError carrying the first 200 characters of the body for any 4xx/5xx."""
        if response.status < 400:
            return
        body = (await response.text())[:200]
        raise APIError(self.platform_name, response.status, body)
