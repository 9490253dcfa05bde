"""New-contract signal detection.

A signal fires when a tracked wallet sends a transaction to a contract it
has never interacted with before. Each wallet's ``known_contracts`` set is
append-only, so a (wallet, contract) pair can fire at most once for the
lifetime of the roster. ``warm_up`` seeds the sets from history so the first
live poll does not report every contract in the recent window as new.
"""

from __future__ import annotations

from typing import Iterable, Optional, Union

from models.signal import Signal, SignalContext
from models.wallet import TrackedWallet, Transaction, normalize_address
from services.lookups import ProtocolDirectory, SocialDirectory
from utils.logger import get_logger

logger = get_logger("signal_evaluator")

# (exclusive lower bound on 30d USD volume, score), highest first
VOLUME_TIERS: tuple[tuple[float, int], ...] = (
    (5e9, 5),
    (1e9, 4),
    (5e8, 3),
    (1e8, 2),
)

TransactionLike = Union[Transaction, dict]


def actionability_score(volume_30d_usd: Optional[float]) -> int:
    """1-5 score from a wallet's trailing 30-day volume."""
    volume = volume_30d_usd or 0.0
    for threshold, score in VOLUME_TIERS:
        if volume > threshold:
            return score
    return 1


def _coerce(transactions: Iterable[TransactionLike]) -> list[Transaction]:
    parsed: list[Transaction] = []
    for tx in transactions or []:
        if isinstance(tx, Transaction):
            parsed.append(tx)
        else:
            candidate = Transaction.from_api(tx)
            if candidate is not None:
                parsed.append(candidate)
    return parsed


class SignalEvaluator:
    """Stateful detector over the wallet roster.

    The evaluator holds the roster by reference and mutates each wallet's
    ``known_contracts`` and ``cursor`` as it evaluates. It also keeps the
    process-wide set of every contract any tracked wallet has touched, used
    for the first-mover flag.
    """

    def __init__(
        self,
        wallets: Optional[list[TrackedWallet]] = None,
        protocols: Optional[ProtocolDirectory] = None,
        socials: Optional[SocialDirectory] = None,
    ):
        self._wallets: list[TrackedWallet] = wallets if wallets is not None else []
        self._protocols = protocols or ProtocolDirectory()
        self._socials = socials or SocialDirectory()
        self._global_seen: set[str] = set()
        self._emitted_hashes: set[str] = set()
        self._signal_log: list[Signal] = []
        self._signal_counter = 0

    def set_wallets(self, wallets: list[TrackedWallet]) -> None:
        self._wallets = wallets

    @property
    def signal_count(self) -> int:
        return len(self._signal_log)

    @property
    def global_seen_count(self) -> int:
        return len(self._global_seen)

    def has_seen(self, contract: str) -> bool:
        return normalize_address(contract) in self._global_seen

    def get_signal_log(self) -> list[Signal]:
        return list(self._signal_log)

    def warm_up(self, wallet: TrackedWallet, transactions: Iterable[TransactionLike]) -> int:
        """Seed ``wallet.known_contracts`` from history. Returns how many contracts were added."""
        batch = _coerce(transactions)
        before = len(wallet.known_contracts)
        for tx in batch:
            target = normalize_address(tx.to_address)
            if not target:
                continue
            wallet.known_contracts.add(target)
            self._global_seen.add(target)

        if batch:
            wallet.cursor = batch[0].hash
        return len(wallet.known_contracts) - before

    def evaluate(self, wallet: TrackedWallet, transactions: Iterable[TransactionLike]) -> list[Signal]:
        """Return signals for contracts new to ``wallet`` in a newest-first batch.

        Scanning stops at the wallet's cursor (already processed). Whether
        or not anything fired, the cursor moves to the newest hash in the
        batch. A batch that does not contain the cursor is scanned in full;
        known contracts still cannot fire again.
        """
        batch = _coerce(transactions)
        signals: list[Signal] = []

        for tx in batch:
            if wallet.cursor and tx.hash == wallet.cursor:
                break
            target = normalize_address(tx.to_address)
            if not target or target in wallet.known_contracts:
                continue

            is_first_mover = target not in self._global_seen
            wallet.known_contracts.add(target)
            self._global_seen.add(target)

            if tx.hash in self._emitted_hashes:
                continue

            signal = self._build_signal(wallet, tx, target, is_first_mover)
            self._emitted_hashes.add(tx.hash)
            self._signal_log.append(signal)
            signals.append(signal)
            logger.info(
                "New contract signal",
                wallet_label=wallet.label,
                display_name=signal.display_name,
                contract=target,
                protocol=signal.context.contract_protocol,
                score=signal.actionability_score,
                first_mover=is_first_mover,
                common_neighbors=signal.common_neighbors,
                tx=tx.hash,
            )

        if batch:
            wallet.cursor = batch[0].hash
        return signals

    def _common_neighbors(self, wallet: TrackedWallet, contract: str) -> int:
        return sum(
            1
            for other in self._wallets
            if other.address != wallet.address and contract in other.known_contracts
        )

    def _build_signal(
        self,
        wallet: TrackedWallet,
        tx: Transaction,
        target: str,
        is_first_mover: bool,
    ) -> Signal:
        self._signal_counter += 1
        protocol = self._protocols.identify(target)
        identity = self._socials.resolve(wallet.address)
        tokens = [t.symbol for t in tx.token_transfers if t.symbol]

        return Signal(
            id=f"sig-{self._signal_counter}",
            wallet=wallet.address,
            vertical=wallet.vertical,
            transaction_hash=tx.hash,
            target_contract=target,
            timestamp=tx.block_timestamp,
            actionability_score=actionability_score(wallet.volume_30d_usd),
            is_first_mover=is_first_mover,
            vertical_tag=protocol or wallet.vertical.value,
            common_neighbors=self._common_neighbors(wallet, target),
            display_name=identity.name,
            persona=identity.persona,
            context=SignalContext(
                wallet_label=wallet.label,
                contract_protocol=protocol,
                tokens_involved=tokens or None,
                method_name=tx.method_name,
            ),
        )
