"""Lookalike-audience discovery for a contract a tracked whale just touched."""

from __future__ import annotations

from typing import Any

from models.database import AsyncSessionLocal
from services.allium_client import AlliumClient
from services.signal_store import save_target_audience
from services.sql_templates import build_lookalike_sql
from utils.logger import get_logger

logger = get_logger("audience")


async def find_lookalike_audience(
    client: AlliumClient,
    target_contract: str,
    *,
    persist: bool = True,
) -> list[dict[str, Any]]:
    """Run the lookalike query for ``target_contract`` and optionally store the rows.

    The query is submitted through the client's queue at CRITICAL priority,
    so it shares the global rate budget with the poll loop. Query failures
    propagate to the caller; the poll loop is not affected.
    """
    sql = build_lookalike_sql(target_contract)
    logger.info("Finding lookalike audience", contract=target_contract)

    rows = await client.run_sql(sql)
    audience = []
    for row in rows:
        address = row.get("wallet_address")
        if not address:
            continue
        try:
            volume = float(row.get("total_volume_usd") or 0.0)
        except (TypeError, ValueError):
            volume = 0.0
        audience.append({"wallet_address": str(address).lower(), "total_volume_usd": volume})

    if persist and audience:
        async with AsyncSessionLocal() as session:
            written = await save_target_audience(session, target_contract, audience)
        logger.info("Saved lookalike wallets", contract=target_contract, wallets=written)

    return audience
