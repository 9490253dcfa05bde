"""Persistence for emitted signals and lookalike audiences."""

from __future__ import annotations

import uuid
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from models.database import SignalRecord, TargetAudience
from models.signal import Signal
from models.wallet import normalize_address
from utils.logger import get_logger
from utils.utcnow import utcnow

logger = get_logger("signal_store")


async def save_signal(session: AsyncSession, signal: Signal, *, commit: bool = True) -> bool:
    """Insert ``signal`` unless a row with the same transaction hash exists.

    Returns True when a new row was written.
    """
    for pending in session.new:
        if isinstance(pending, SignalRecord) and pending.transaction_hash == signal.transaction_hash:
            return False

    with session.no_autoflush:
        existing = (
            await session.execute(
                select(SignalRecord.id).where(SignalRecord.transaction_hash == signal.transaction_hash)
            )
        ).scalar_one_or_none()
    if existing is not None:
        logger.debug("Duplicate signal skipped", tx=signal.transaction_hash)
        return False

    session.add(
        SignalRecord(
            id=uuid.uuid4().hex,
            signal_id=signal.id,
            type=signal.type,
            wallet=signal.wallet,
            vertical=signal.vertical.value,
            transaction_hash=signal.transaction_hash,
            target_contract=signal.target_contract,
            timestamp=signal.timestamp,
            actionability_score=signal.actionability_score,
            is_first_mover=signal.is_first_mover,
            vertical_tag=signal.vertical_tag,
            common_neighbors=signal.common_neighbors,
            display_name=signal.display_name,
            persona=signal.persona,
            context_json=signal.context.model_dump(mode="json"),
            created_at=utcnow(),
        )
    )
    if commit:
        await session.commit()
    return True


async def list_signals(
    session: AsyncSession,
    *,
    wallet: Optional[str] = None,
    limit: int = 100,
    offset: int = 0,
) -> list[SignalRecord]:
    query = select(SignalRecord)
    if wallet:
        query = query.where(SignalRecord.wallet == normalize_address(wallet))
    query = query.order_by(SignalRecord.created_at.desc()).offset(offset).limit(limit)
    return list((await session.execute(query)).scalars().all())


def signal_record_to_dict(row: SignalRecord) -> dict[str, Any]:
    return {
        "id": row.signal_id,
        "type": row.type,
        "wallet": row.wallet,
        "vertical": row.vertical,
        "transaction_hash": row.transaction_hash,
        "target_contract": row.target_contract,
        "timestamp": row.timestamp,
        "actionability_score": row.actionability_score,
        "is_first_mover": row.is_first_mover,
        "vertical_tag": row.vertical_tag,
        "common_neighbors": row.common_neighbors,
        "display_name": row.display_name,
        "persona": row.persona,
        "context": row.context_json or {},
        "created_at": row.created_at.isoformat() if row.created_at else None,
    }


async def save_target_audience(
    session: AsyncSession,
    target_contract: str,
    wallets: list[dict[str, Any]],
) -> int:
    """Upsert lookalike wallets for a contract. Returns the number of rows written."""
    contract = normalize_address(target_contract)
    existing = {
        row.wallet_address: row
        for row in (
            await session.execute(select(TargetAudience).where(TargetAudience.target_contract == contract))
        ).scalars()
    }

    written = 0
    now = utcnow()
    for entry in wallets:
        address = normalize_address(entry.get("wallet_address"))
        if not address:
            continue
        try:
            volume = float(entry.get("total_volume_usd") or 0.0)
        except (TypeError, ValueError):
            volume = 0.0

        row = existing.get(address)
        if row is None:
            row = TargetAudience(target_contract=contract, wallet_address=address)
            session.add(row)
            existing[address] = row
        row.total_volume_usd = volume
        row.timestamp = now
        written += 1

    await session.commit()
    return written


async def list_target_audience(session: AsyncSession, target_contract: str) -> list[TargetAudience]:
    query = (
        select(TargetAudience)
        .where(TargetAudience.target_contract == normalize_address(target_contract))
        .order_by(TargetAudience.total_volume_usd.desc())
    )
    return list((await session.execute(query)).scalars().all())
