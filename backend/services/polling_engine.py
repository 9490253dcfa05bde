"""Warm-up and steady-state polling of the tracked wallet roster.

Startup fetches recent history for every wallet and seeds its known
contracts, then a recurring timer starts a poll cycle every
``poll_interval`` seconds. A cycle walks the roster sequentially (one
transaction fetch per wallet, all through the shared request queue),
evaluates each batch and hands every emitted signal to the consumer
callback.
"""

from __future__ import annotations

import asyncio
import inspect
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, Union

from config import settings
from models.signal import Signal
from models.wallet import TrackedWallet
from services.allium_client import AlliumClient
from services.signal_evaluator import SignalEvaluator
from utils.logger import get_logger
from utils.request_queue import is_rate_limited

logger = get_logger("polling_engine")

SignalConsumer = Callable[[Signal], Union[None, Awaitable[Any]]]


class EngineState(str, Enum):
    IDLE = "idle"
    WARMING_UP = "warming_up"
    RUNNING = "running"
    STOPPED = "stopped"


class EngineStoppedError(RuntimeError):
    """A stopped engine cannot be restarted; build a new one."""


class PollingEngine:
    def __init__(
        self,
        client: AlliumClient,
        evaluator: Optional[SignalEvaluator] = None,
        on_signal: Optional[SignalConsumer] = None,
        *,
        poll_interval: Optional[float] = None,
        first_poll_delay: Optional[float] = None,
    ):
        self.client = client
        self.evaluator = evaluator or SignalEvaluator()
        self.on_signal = on_signal
        self.poll_interval = settings.POLL_INTERVAL_SECONDS if poll_interval is None else poll_interval
        self.first_poll_delay = settings.FIRST_POLL_DELAY_SECONDS if first_poll_delay is None else first_poll_delay

        self._wallets: list[TrackedWallet] = []
        self._state = EngineState.IDLE
        self._warmed = False
        self._timer_task: Optional[asyncio.Task] = None
        self._cycle_task: Optional[asyncio.Task] = None
        self._cycle_count = 0
        self._skipped_ticks = 0
        self._signals_emitted = 0

    @property
    def state(self) -> EngineState:
        return self._state

    @property
    def running(self) -> bool:
        return self._state == EngineState.RUNNING

    @property
    def wallets(self) -> list[TrackedWallet]:
        return self._wallets

    def set_wallets(self, wallets: list[TrackedWallet]) -> None:
        self._wallets = wallets
        self.evaluator.set_wallets(wallets)

    async def warm_up(self) -> None:
        """Seed every wallet's known contracts from recent history.

        A wallet whose history fetch fails is logged and left unseeded; the
        others are unaffected. Only an idle engine moves to ``WARMING_UP``;
        re-seeding a running engine leaves its state alone.
        """
        if self._state == EngineState.STOPPED:
            raise EngineStoppedError("engine already stopped")
        if self._state == EngineState.IDLE:
            self._state = EngineState.WARMING_UP
        logger.info("Pre-warming known contracts", wallets=len(self._wallets))

        for wallet in self._wallets:
            if self._state == EngineState.STOPPED:
                logger.info("Warm-up interrupted by stop", wallet_label=wallet.label)
                return
            try:
                transactions = await self.client.get_wallet_transactions(wallet.address)
            except Exception as exc:
                logger.warning(
                    "Warm-up failed",
                    wallet_label=wallet.label,
                    address=wallet.address,
                    error=str(exc),
                    error_type=type(exc).__name__,
                )
                continue

            if not transactions:
                logger.info("No transaction history", wallet_label=wallet.label)
                continue
            count = self.evaluator.warm_up(wallet, transactions)
            logger.info("Known contracts loaded", wallet_label=wallet.label, contracts=count)

        self._warmed = True
        logger.info(
            "Warm-up complete",
            total_known_contracts=sum(len(w.known_contracts) for w in self._wallets),
        )

    async def start(self) -> None:
        """Warm up (if not done yet) and begin the recurring poll timer."""
        if self._state == EngineState.RUNNING:
            return
        if self._state == EngineState.STOPPED:
            raise EngineStoppedError("engine already stopped")
        if not self._warmed:
            await self.warm_up()
            if self._state == EngineState.STOPPED:
                return

        self._state = EngineState.RUNNING
        self._timer_task = asyncio.create_task(self._timer_loop(), name="polling-engine-timer")
        logger.info(
            "Polling engine started",
            wallets=len(self._wallets),
            interval_seconds=self.poll_interval,
            calls_per_cycle=len(self._wallets),
        )

    def stop(self) -> None:
        """Cancel the recurring timer. A cycle in progress finishes its current wallet and exits."""
        if self._state == EngineState.STOPPED:
            return
        self._state = EngineState.STOPPED
        if self._timer_task and not self._timer_task.done():
            self._timer_task.cancel()
        logger.info(
            "Polling engine stopped",
            cycles=self._cycle_count,
            signals=self._signals_emitted,
            api_stats=self.client.get_stats(),
        )

    async def shutdown(self) -> None:
        """Stop and wait for any in-flight cycle to wind down."""
        self.stop()
        tasks = [t for t in (self._timer_task, self._cycle_task) if t is not None]
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    async def _timer_loop(self) -> None:
        await asyncio.sleep(self.first_poll_delay)
        while self._state == EngineState.RUNNING:
            if self._cycle_task is not None and not self._cycle_task.done():
                self._skipped_ticks += 1
                logger.warning("Previous poll cycle still running, skipping tick", cycle=self._cycle_count)
            else:
                self._cycle_task = asyncio.create_task(self.poll_cycle(), name="polling-engine-cycle")
            await asyncio.sleep(self.poll_interval)

    async def poll_cycle(self) -> list[Signal]:
        """Fetch and evaluate every wallet once, strictly one wallet at a time."""
        self._cycle_count += 1
        logger.debug("Poll cycle", cycle=self._cycle_count)
        emitted: list[Signal] = []

        for wallet in self._wallets:
            if self._state == EngineState.STOPPED:
                break

            try:
                transactions = await self.client.get_wallet_transactions(wallet.address)
            except Exception as exc:
                if is_rate_limited(exc):
                    # Queue already retried with backoff; try again next cycle
                    logger.debug("Wallet throttled, skipping this cycle", wallet_label=wallet.label)
                else:
                    logger.warning(
                        "Wallet poll failed",
                        wallet_label=wallet.label,
                        error=str(exc),
                        error_type=type(exc).__name__,
                    )
                continue

            if not transactions:
                continue

            for signal in self.evaluator.evaluate(wallet, transactions):
                emitted.append(signal)
                await self._emit(signal)

        return emitted

    async def _emit(self, signal: Signal) -> None:
        self._signals_emitted += 1
        if self.on_signal is None:
            return
        try:
            result = self.on_signal(signal)
            if inspect.isawaitable(result):
                await result
        except Exception as exc:
            logger.error(
                "Signal consumer failed",
                signal_id=signal.id,
                tx=signal.transaction_hash,
                error=str(exc),
            )

    def get_signal_log(self) -> list[Signal]:
        return self.evaluator.get_signal_log()

    def get_status(self) -> dict:
        return {
            "running": self.running,
            "state": self._state.value,
            "poll_count": self._cycle_count,
            "skipped_ticks": self._skipped_ticks,
            "signal_count": self._signals_emitted,
            "wallets": [
                {
                    "label": w.label,
                    "vertical": w.vertical.value,
                    "address": w.address,
                    "known_contracts": len(w.known_contracts),
                }
                for w in self._wallets
            ],
            "api_stats": self.client.get_stats(),
        }
