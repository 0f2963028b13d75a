"""HTTP client for the remote intent executor."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from backend import config
from engine.kernel.types import IntentOutcome

logger = logging.getLogger(__name__)


class IntentExecutionError(Exception):
    """Raised when the intent executor is unreachable or returns an error."""


class HttpIntentExecutor:
    """HTTP client for the intent execution endpoint.

    POSTs ``{intentId, params, siteId}`` and maps the JSON reply onto an
    IntentOutcome. Bookings, leads, subscriptions and checkouts all go
    through here.
    """

    def __init__(self, url: str | None = None, site_id: str | None = None, timeout: float | None = None) -> None:
        self._url = url if url is not None else config.settings.INTENT_EXEC_URL
        self._site_id = site_id if site_id is not None else config.settings.SITE_ID
        self._timeout = timeout if timeout is not None else config.settings.REMOTE_TIMEOUT_SECONDS

    async def execute(self, intent: str, payload: dict[str, Any]) -> IntentOutcome:
        """
        Execute one intent remotely.

        Args:
            intent: Namespaced intent (e.g. "booking.create")
            payload: Structured fields collected in the surface

        Returns:
            IntentOutcome from the executor's reply

        Raises:
            IntentExecutionError: If the executor is unreachable, returns a
                non-2xx status, or returns a body that is not a JSON object
        """
        body: dict[str, Any] = {"intentId": intent, "params": payload}
        if self._site_id:
            body["siteId"] = self._site_id

        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                response = await client.post(self._url, json=body)
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPError as e:
            logger.warning("intent_executor: %s failed: %s", intent, e)
            raise IntentExecutionError(f"Intent {intent} could not be completed") from e
        except ValueError as e:
            raise IntentExecutionError(f"Intent {intent} returned an invalid response") from e

        if not isinstance(data, dict):
            raise IntentExecutionError(f"Intent {intent} returned an invalid response")

        success = data.get("success") is not False and not data.get("error")
        result = data.get("data")
        return IntentOutcome(
            success=success,
            data=result if isinstance(result, dict) else None,
            error=str(data["error"]) if data.get("error") else None,
            message=data.get("message") if isinstance(data.get("message"), str) else None,
        )


class OfflineIntentExecutor:
    """Accepts every intent without a network call (development and tests)."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, dict[str, Any]]] = []

    async def execute(self, intent: str, payload: dict[str, Any]) -> IntentOutcome:
        self.calls.append((intent, payload))
        logger.info("intent_executor: offline accept %s", intent)
        return IntentOutcome(success=True, data={"intent": intent, "accepted": True})


def create_intent_executor(settings: config.Settings) -> HttpIntentExecutor | OfflineIntentExecutor:
    """Remote executor when INTENT_EXEC_URL is set, offline executor otherwise."""
    if settings.INTENT_EXEC_URL:
        return HttpIntentExecutor(
            url=settings.INTENT_EXEC_URL,
            site_id=settings.SITE_ID,
            timeout=settings.REMOTE_TIMEOUT_SECONDS,
        )
    return OfflineIntentExecutor()
