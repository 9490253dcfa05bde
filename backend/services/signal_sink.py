"""Consumer callback wired into the polling engine: persist, then alert."""

from __future__ import annotations

from typing import Callable, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from models.signal import Signal
from services.notifier import TelegramNotifier
from services.signal_store import save_signal
from utils.logger import get_logger

logger = get_logger("signal_sink")


class SignalSink:
    """Stores each signal (deduplicated by transaction hash) and alerts on new rows.

    Never raises: store and notifier failures are logged so the poll loop
    keeps going.
    """

    def __init__(
        self,
        session_factory: Callable[[], AsyncSession],
        notifier: Optional[TelegramNotifier] = None,
        dashboard_url: Optional[str] = None,
    ):
        self._session_factory = session_factory
        self._notifier = notifier
        self._dashboard_url = dashboard_url or settings.DASHBOARD_URL
        self.stats = {"stored": 0, "duplicates": 0, "store_errors": 0, "alerts_queued": 0, "alert_errors": 0}

    async def __call__(self, signal: Signal) -> None:
        try:
            async with self._session_factory() as session:
                inserted = await save_signal(session, signal)
        except Exception as exc:
            self.stats["store_errors"] += 1
            logger.error("Failed to store signal", tx=signal.transaction_hash, error=str(exc))
            return

        if not inserted:
            self.stats["duplicates"] += 1
            return
        self.stats["stored"] += 1

        if self._notifier is None or not self._notifier.configured:
            return
        whale_name = signal.display_name or signal.context.wallet_label
        protocol = signal.context.contract_protocol or signal.vertical_tag or "Unknown protocol"
        try:
            await self._notifier.send_alert(whale_name, protocol, self._dashboard_url)
            self.stats["alerts_queued"] += 1
        except Exception as exc:
            self.stats["alert_errors"] += 1
            logger.warning("Alert not queued", tx=signal.transaction_hash, error=str(exc))
