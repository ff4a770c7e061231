"""Chat notifications for package events.

``TelegramNotifier`` posts to one preconfigured chat through the Bot API
``sendMessage`` method. Messages use Telegram's HTML parse mode, so any
user-controlled text interpolated into them must go through ``html.escape``.
"""

from __future__ import annotations

import html
import logging
from typing import Any, Protocol

import httpx

from pkgtracker.errors import NotifyError

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 10.0


class Notifier(Protocol):
    """Sends one text message to a fixed destination. Raises ``NotifyError``."""

    async def send_message(self, text: str) -> None: ...


def mention_link(alias: str, tg_uid: int) -> str:
    """HTML mention that pings *tg_uid* while displaying *alias*."""
    return f'<a href="tg://user?id={int(tg_uid)}">{html.escape(alias)}</a>'


class TelegramNotifier:
    """Notifier backed by the Telegram Bot API.

    Pass *client* to share an ``httpx.AsyncClient`` (tests inject one built
    on ``httpx.MockTransport``); otherwise one is created lazily and closed
    by :meth:`aclose`.
    """

    def __init__(
        self,
        bot_token: str,
        chat_id: str | int,
        *,
        api_base: str = "https://api.telegram.org",
        timeout: float = DEFAULT_TIMEOUT,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._url = f"{api_base.rstrip('/')}/bot{bot_token}/sendMessage"
        self.chat_id = chat_id
        self._timeout = timeout
        self._client = client
        self._owns_client = client is None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout)
        return self._client

    async def send_message(self, text: str) -> None:
        payload: dict[str, Any] = {
            "chat_id": self.chat_id,
            "text": text,
            "parse_mode": "HTML",
            "disable_web_page_preview": True,
        }
        try:
            resp = await self._get_client().post(self._url, json=payload)
        except httpx.TimeoutException as e:
            raise NotifyError(f"Telegram request timed out: {e}") from e
        except httpx.HTTPError as e:
            raise NotifyError(f"Telegram request failed: {e}") from e

        try:
            body = resp.json()
        except ValueError:
            body = None
        if not isinstance(body, dict):
            raise NotifyError(f"Telegram returned HTTP {resp.status_code} with a non-JSON body")
        if not body.get("ok", False) or resp.is_error:
            description = body.get("description") or f"HTTP {resp.status_code}"
            raise NotifyError(f"Telegram rejected the message: {description}")
        logger.debug("Sent message to chat %s", self.chat_id)

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None
