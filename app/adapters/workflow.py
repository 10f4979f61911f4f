"""Outbound HTTP adapter — talks to the workflow engine's own webhook.

Two calls only:
  - validate: GET probe with bounded retries before the chat unlocks
  - send: POST a user message; success is status 200, the body is ignored
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from datetime import datetime, timezone

import httpx

logger = logging.getLogger(__name__)

OK = 200


class WorkflowClient:
    """httpx wrapper implementing the outbound side of the chat protocol."""

    def __init__(
        self,
        http: httpx.AsyncClient | None = None,
        *,
        max_attempts: int = 3,
        retry_delay: float = 1.5,
        timeout: float = 10.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._http = http or httpx.AsyncClient(timeout=timeout)
        self._owns_http = http is None
        self.max_attempts = max_attempts
        self.retry_delay = retry_delay
        self._sleep = sleep

    async def aclose(self) -> None:
        if self._owns_http:
            await self._http.aclose()

    async def validate(
        self,
        url: str,
        on_attempt_failed: Callable[[int, str], None] | None = None,
    ) -> bool:
        """Probe ``url`` until it answers 200 or the attempt budget runs out."""
        for attempt in range(1, self.max_attempts + 1):
            logger.info("[GET] Connection attempt %d/%d to %s", attempt, self.max_attempts, url)
            try:
                resp = await self._http.get(url, headers={"Accept": "application/json"})
                if resp.status_code == OK:
                    return True
                reason = f"Status {resp.status_code}"
            except (httpx.HTTPError, httpx.InvalidURL) as exc:
                reason = str(exc) or type(exc).__name__

            logger.warning("[GET] Attempt %d failed: %s", attempt, reason)
            if on_attempt_failed is not None:
                on_attempt_failed(attempt, reason)
            if attempt < self.max_attempts:
                await self._sleep(self.retry_delay)
        return False

    async def send(self, url: str, text: str, chat_id: str) -> int | None:
        """POST a chat message. Returns the status code, or None on transport error."""
        body = {
            "message": text,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "chatId": chat_id,
        }
        logger.info("[POST] Sending message to %s", url)
        try:
            resp = await self._http.post(url, json=body, headers={"Content-Type": "application/json"})
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            logger.error("[POST] Network error: %s", exc)
            return None
        if resp.status_code == OK:
            logger.info("[POST] Success, status 200 received")
        else:
            logger.warning("[POST] Server responded with status %d", resp.status_code)
        return resp.status_code
