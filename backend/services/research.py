"""HTTP client for research lookups opened from the render surface."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from backend import config

logger = logging.getLogger(__name__)


class ResearchUnavailableError(Exception):
    """Raised when research lookups are not configured."""


class HttpResearchClient:
    """Looks up a query at RESEARCH_URL and returns the JSON result."""

    def __init__(self, url: str | None = None, timeout: float | None = None) -> None:
        self._url = url if url is not None else config.settings.RESEARCH_URL
        self._timeout = timeout if timeout is not None else config.settings.REMOTE_TIMEOUT_SECONDS

    async def lookup(self, query: str) -> dict[str, Any]:
        """
        Run one research query.

        Raises:
            ResearchUnavailableError: If no research endpoint is configured
            httpx.HTTPError: If the endpoint is unreachable or returns an error
        """
        if not self._url:
            raise ResearchUnavailableError("RESEARCH_URL is not configured")

        async with httpx.AsyncClient(timeout=self._timeout) as client:
            response = await client.get(self._url, params={"q": query})
            response.raise_for_status()
            data = response.json()

        if not isinstance(data, dict):
            return {"query": query, "results": data}
        logger.debug("research: %r → %d keys", query, len(data))
        return data
