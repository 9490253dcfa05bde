"""Telegram alerts for whale signals."""

from __future__ import annotations

import asyncio
import time
from collections import deque
from typing import Optional

import httpx

from config import settings
from utils.logger import get_logger

logger = get_logger("notifier")

TELEGRAM_API_BASE = "https://api.telegram.org"
MAX_MESSAGES_PER_MINUTE = 20


class NotifierError(Exception):
    """Alert could not be delivered."""


def _escape_md(text: str) -> str:
    """Escape special characters for Telegram MarkdownV2."""
    special = r"\_*[]()~`>#+=|{}.!-"
    escaped: list[str] = []
    for ch in str(text):
        if ch in special:
            escaped.append(f"\\{ch}")
        else:
            escaped.append(ch)
    return "".join(escaped)


def _bold(text: str) -> str:
    return f"*{text}*"


def format_alert(whale_name: str, protocol: str, dashboard_url: str) -> str:
    # Inside a MarkdownV2 link target only ')' and '\' need escaping
    url = str(dashboard_url).replace("\\", "\\\\").replace(")", "\\)")
    return "\n".join(
        [
            f"🚨 {_bold(_escape_md('Whale Activity Detected'))} 🚨",
            "",
            f"{_bold('Whale:')} {_escape_md(whale_name)}",
            f"{_bold('Protocol:')} {_escape_md(protocol)}",
            "",
            f"🔗 [View Dashboard]({url})",
            "",
            f"_{_escape_md('Powered by Allium')}_",
        ]
    )


class TelegramNotifier:
    """Queues whale alerts and delivers them through the Telegram Bot API.

    ``send_alert`` only enqueues; a background worker drains the queue under
    the per-minute message budget so callers never wait on Telegram.
    """

    def __init__(
        self,
        bot_token: Optional[str] = None,
        chat_id: Optional[str] = None,
        *,
        http_client: Optional[httpx.AsyncClient] = None,
        max_per_minute: int = MAX_MESSAGES_PER_MINUTE,
    ) -> None:
        self._bot_token = bot_token if bot_token is not None else settings.TELEGRAM_BOT_TOKEN
        self._chat_id = chat_id if chat_id is not None else settings.TELEGRAM_CHAT_ID
        self._http_client = http_client
        self._max_per_minute = max_per_minute
        self._send_timestamps: deque[float] = deque()
        self._message_queue: asyncio.Queue[str] = asyncio.Queue()
        self._queue_task: Optional[asyncio.Task] = None
        self.stats = {"queued": 0, "sent": 0, "failed": 0}

    @property
    def configured(self) -> bool:
        return bool(self._bot_token and self._chat_id)

    @property
    def pending(self) -> int:
        return self.stats["queued"] - self.stats["sent"] - self.stats["failed"]

    def _ensure_worker(self) -> None:
        if self._queue_task is None or self._queue_task.done():
            self._queue_task = asyncio.create_task(self._queue_worker(), name="telegram-notifier")

    async def flush(self) -> None:
        """Wait until every queued alert has been delivered or has failed."""
        await self._message_queue.join()

    async def shutdown(self) -> None:
        if self._queue_task and not self._queue_task.done():
            self._queue_task.cancel()
            await asyncio.gather(self._queue_task, return_exceptions=True)
        self._queue_task = None
        if self.pending:
            logger.warning("Dropping undelivered alerts", count=self.pending)
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None

    def _can_send_now(self) -> bool:
        now = time.monotonic()
        while self._send_timestamps and now - self._send_timestamps[0] > 60:
            self._send_timestamps.popleft()
        return len(self._send_timestamps) < self._max_per_minute

    async def _wait_for_budget(self) -> None:
        if not self._can_send_now():
            wait = 60 - (time.monotonic() - self._send_timestamps[0])
            logger.debug("Telegram budget exhausted, waiting", seconds=round(wait, 1), pending=self.pending)
            while not self._can_send_now():
                await asyncio.sleep(min(max(wait, 0.01), 1.0))
        self._send_timestamps.append(time.monotonic())

    async def send_alert(self, whale_name: str, protocol: str, dashboard_url: Optional[str] = None) -> None:
        """Queue a whale alert. Raises ``NotifierError`` when credentials are missing."""
        if not self.configured:
            raise NotifierError("TELEGRAM_BOT_TOKEN or TELEGRAM_CHAT_ID is not set")

        text = format_alert(whale_name, protocol, dashboard_url or settings.DASHBOARD_URL)
        await self._message_queue.put(text)
        self.stats["queued"] += 1
        self._ensure_worker()
        logger.debug("Telegram alert queued", whale=whale_name, protocol=protocol, pending=self.pending)

    async def _queue_worker(self) -> None:
        while True:
            text = await self._message_queue.get()
            try:
                await self._wait_for_budget()
                await self._send_telegram(text)
                self.stats["sent"] += 1
            except Exception as exc:
                self.stats["failed"] += 1
                logger.warning("Alert delivery failed", error=str(exc))
            finally:
                self._message_queue.task_done()

    async def _send_telegram(self, text: str) -> None:
        if not self._http_client:
            self._http_client = httpx.AsyncClient(timeout=15.0)

        payload = {
            "chat_id": self._chat_id,
            "text": text,
            "parse_mode": "MarkdownV2",
            "disable_web_page_preview": True,
        }
        try:
            resp = await self._http_client.post(
                f"{TELEGRAM_API_BASE}/bot{self._bot_token}/sendMessage",
                json=payload,
            )
        except httpx.HTTPError as exc:
            raise NotifierError(f"Telegram request failed: {exc}") from exc

        if resp.status_code != 200:
            raise NotifierError(f"Telegram API error: {resp.status_code} {resp.text[:300]}")
        logger.debug("Telegram alert sent")
