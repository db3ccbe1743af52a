"""
Recipient notifications.

Delivery is best-effort and fire-and-forget from the dispatcher's point of
view: NotificationSender schedules notify() on the loop, logs any failure and
discards it. A transfer result is final before its notification is attempted.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from typing import Any

import httpx

from backend_octra.octra_logging import get_logger

logger = get_logger(__name__)

TELEGRAM_API_URL = "https://api.telegram.org"
DEFAULT_TIMEOUT_SEC = 10.0


class Notifier(ABC):
    @abstractmethod
    async def notify(self, user_id: str, message: str) -> None:
        """Deliver message to user_id. May raise; callers discard failures."""


class NullNotifier(Notifier):
    async def notify(self, user_id: str, message: str) -> None:
        logger.debug("notification_skipped", user_id=user_id)


class TelegramNotifier(Notifier):
    """Sends chat messages through the Telegram Bot API sendMessage method."""

    def __init__(
        self,
        token: str,
        *,
        api_url: str = TELEGRAM_API_URL,
        timeout_sec: float = DEFAULT_TIMEOUT_SEC,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        if not token.strip():
            raise ValueError("token must be non-empty")
        self._url = f"{api_url.rstrip('/')}/bot{token}/sendMessage"
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout_sec)

    async def notify(self, user_id: str, message: str) -> None:
        response = await self._client.post(
            self._url,
            json={"chat_id": user_id, "text": message, "parse_mode": "HTML"},
        )
        response.raise_for_status()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()


class NotificationSender:
    """Runs notifications as background tasks; keeps references until they finish."""

    def __init__(self, notifier: Notifier | None = None) -> None:
        self._notifier = notifier or NullNotifier()
        self._pending: set[asyncio.Task[Any]] = set()

    def send(self, user_id: str, message: str) -> None:
        task = asyncio.get_running_loop().create_task(self._deliver(str(user_id), message))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _deliver(self, user_id: str, message: str) -> None:
        try:
            await self._notifier.notify(user_id, message)
        except Exception as e:
            logger.info("notification_failed", user_id=user_id, error=str(e))

    async def drain(self) -> None:
        """Wait for queued notifications (shutdown and tests)."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
