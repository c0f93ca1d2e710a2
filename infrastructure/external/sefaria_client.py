"""
Sefaria client adapter.
Fetch-by-canonical-path only; one HTTP attempt per call, retry policy lives in the resilience layer.
"""

from typing import Any, Dict, Optional

import httpx

from infrastructure.config.settings import get_config
from infrastructure.monitoring.logging_service import get_logger
from infrastructure.resilience.retry_service import TransientError


TRANSIENT_STATUS_CODES = (429, 500, 502, 503, 504)


class ReferenceProviderError(Exception):
    """Non-retriable provider failure (bad request, unexpected payload)"""
    pass


class ReferenceTextNotFoundError(ReferenceProviderError):
    """The provider has no text at this path"""
    pass


class TransientProviderError(TransientError):
    """Rate limiting or a server-side failure; worth retrying"""

    def __init__(self, status_code: int, path: str):
        super().__init__(f"Sefaria returned {status_code} for {path}")
        self.status_code = status_code
        self.path = path


class SefariaClient:
    """
    Async adapter for the Sefaria texts API.
    """

    def __init__(self, config=None, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.logger = get_logger(__name__)
        self.config = config or get_config()
        self._transport = transport
        self._http: Optional[httpx.AsyncClient] = None

    @property
    def http(self) -> httpx.AsyncClient:
        """Shared client and connection pool, created on first use"""
        if self._http is None or self._http.is_closed:
            self._http = httpx.AsyncClient(
                base_url=self.config.references.base_url,
                timeout=self.config.references.timeout_seconds,
                headers={"User-Agent": self.config.references.user_agent, "Accept": "application/json"},
                transport=self._transport,
            )
        return self._http

    async def aclose(self):
        if self._http is not None:
            await self._http.aclose()
            self._http = None

    async def fetch_by_canonical_path(self, path: str) -> Dict[str, Any]:
        """
        Fetch the text at a canonical path such as ``Genesis.1.1-3``

        Returns:
            Dict with ``text`` and optional ``he`` entries as sent by the provider

        Raises:
            ReferenceTextNotFoundError: 404 or an error payload
            TransientProviderError: 429 or 5xx
            httpx.TransportError: connection problems and timeouts
            ReferenceProviderError: any other unexpected response
        """
        response = await self.http.get(f"/texts/{path}", params={"context": 0})

        if response.status_code in TRANSIENT_STATUS_CODES:
            raise TransientProviderError(response.status_code, path)

        if response.status_code == 404:
            raise ReferenceTextNotFoundError(f"No text found for {path}")

        if response.status_code >= 400:
            raise ReferenceProviderError(f"Sefaria returned {response.status_code} for {path}")

        try:
            payload = response.json()
        except ValueError as e:
            raise ReferenceProviderError(f"Invalid JSON from Sefaria for {path}") from e

        if not isinstance(payload, dict):
            raise ReferenceProviderError(f"Unexpected payload type from Sefaria for {path}")

        # Sefaria reports unknown refs as 200 with an error field
        if payload.get("error"):
            raise ReferenceTextNotFoundError(f"No text found for {path}")

        return payload
