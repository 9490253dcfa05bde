"""Wiring of the long-running components from configuration."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from config import Settings, resolve_allium_credentials, settings as default_settings
from models.database import AsyncSessionLocal
from services.allium_client import AlliumClient
from services.lookups import ProtocolDirectory, SocialDirectory
from services.notifier import TelegramNotifier
from services.polling_engine import PollingEngine
from services.roster import Watchlist, load_wallets
from services.signal_evaluator import SignalEvaluator
from services.signal_sink import SignalSink
from utils.logger import get_logger
from utils.request_queue import PriorityRequestQueue

logger = get_logger("runtime")


@dataclass
class Runtime:
    client: AlliumClient
    engine: PollingEngine
    sink: SignalSink
    notifier: TelegramNotifier
    watchlist: Watchlist
    queue: PriorityRequestQueue

    async def shutdown(self) -> None:
        await self.engine.shutdown()
        await self.client.close()
        await self.queue.close()
        await self.notifier.shutdown()


def build_runtime(config: Optional[Settings] = None) -> Runtime:
    """Load static configuration and build the engine.

    Raises ``ConfigurationError`` for missing credentials, an empty or
    malformed roster, or unreadable lookup files; nothing is fetched yet.
    """
    config = config or default_settings
    credentials = resolve_allium_credentials(config)
    wallets = load_wallets(config.WALLETS_PATH)
    protocols = ProtocolDirectory.load(config.CONTRACTS_PATH)
    socials = SocialDirectory.load(config.SOCIAL_PATH)
    watchlist = Watchlist.load(config.WATCHLIST_PATH)

    queue = PriorityRequestQueue(
        min_interval=config.RATE_LIMIT_MIN_INTERVAL_SECONDS,
        max_retries=config.RATE_LIMIT_MAX_RETRIES,
    )
    client = AlliumClient(
        credentials,
        queue=queue,
        base_url=config.ALLIUM_API_URL,
        chain=config.CHAIN,
        query_poll_interval=config.QUERY_POLL_INTERVAL_SECONDS,
        query_max_attempts=config.QUERY_MAX_ATTEMPTS,
    )
    notifier = TelegramNotifier(config.TELEGRAM_BOT_TOKEN, config.TELEGRAM_CHAT_ID)
    if not notifier.configured:
        logger.info("Telegram credentials not configured, alerts disabled")

    sink = SignalSink(AsyncSessionLocal, notifier, config.DASHBOARD_URL)
    evaluator = SignalEvaluator(wallets, protocols, socials)
    engine = PollingEngine(
        client,
        evaluator,
        sink,
        poll_interval=config.POLL_INTERVAL_SECONDS,
        first_poll_delay=config.FIRST_POLL_DELAY_SECONDS,
    )
    engine.set_wallets(wallets)

    for wallet in wallets:
        volume = f"${wallet.volume_30d_usd / 1e6:.0f}M" if wallet.volume_30d_usd else None
        logger.info(
            "Tracking wallet",
            vertical=wallet.vertical.value,
            label=wallet.label,
            address=wallet.address,
            volume_30d=volume,
        )

    return Runtime(
        client=client,
        engine=engine,
        sink=sink,
        notifier=notifier,
        watchlist=watchlist,
        queue=queue,
    )
