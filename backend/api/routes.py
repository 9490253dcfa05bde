"""Dashboard API: signal feed, engine status, watchlist, lookalike audiences."""

from __future__ import annotations

from typing import Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from models.database import get_db_session
from services.allium_client import AlliumAPIError, QueryFailedError, QueryTimeoutError
from services.audience import find_lookalike_audience
from services.runtime import Runtime
from services.signal_store import list_signals, list_target_audience, signal_record_to_dict
from utils.logger import get_logger
from utils.request_queue import RetriesExhaustedError

router = APIRouter()
logger = get_logger("routes")


class WatchlistUpdate(BaseModel):
    address: str
    action: Literal["add", "remove"]


class AudienceRequest(BaseModel):
    target_contract: str


def get_runtime(request: Request) -> Runtime:
    runtime: Optional[Runtime] = getattr(request.app.state, "runtime", None)
    if runtime is None:
        raise HTTPException(status_code=503, detail="Engine not initialized")
    return runtime


@router.get("/signals")
async def get_signals(
    wallet: Optional[str] = Query(default=None),
    limit: int = Query(default=100, ge=1, le=1000),
    offset: int = Query(default=0, ge=0),
    session: AsyncSession = Depends(get_db_session),
):
    rows = await list_signals(session, wallet=wallet, limit=limit, offset=offset)
    return [signal_record_to_dict(row) for row in rows]


@router.get("/status")
async def get_status(runtime: Runtime = Depends(get_runtime)):
    status = runtime.engine.get_status()
    status["sink"] = dict(runtime.sink.stats)
    status["alerts_enabled"] = runtime.notifier.configured
    status["alerts"] = dict(runtime.notifier.stats)
    return status


@router.get("/watchlist")
async def get_watchlist(runtime: Runtime = Depends(get_runtime)):
    return runtime.watchlist.items()


@router.post("/watchlist")
async def update_watchlist(update: WatchlistUpdate, runtime: Runtime = Depends(get_runtime)):
    if not update.address.strip():
        raise HTTPException(status_code=400, detail="Invalid payload")
    if update.action == "add":
        items = runtime.watchlist.add(update.address)
    else:
        items = runtime.watchlist.remove(update.address)
    return {"success": True, "watchlist": items}


@router.post("/audience")
async def create_lookalike_audience(request: AudienceRequest, runtime: Runtime = Depends(get_runtime)):
    try:
        wallets = await find_lookalike_audience(runtime.client, request.target_contract)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    except QueryTimeoutError as exc:
        logger.warning("Lookalike query timed out", contract=request.target_contract, error=str(exc))
        raise HTTPException(status_code=504, detail=str(exc))
    except (QueryFailedError, AlliumAPIError, RetriesExhaustedError) as exc:
        logger.warning("Lookalike query failed", contract=request.target_contract, error=str(exc))
        raise HTTPException(status_code=502, detail=str(exc))
    return {"target_contract": request.target_contract.lower(), "wallets": wallets}


@router.get("/audience/{target_contract}")
async def get_lookalike_audience(target_contract: str, session: AsyncSession = Depends(get_db_session)):
    rows = await list_target_audience(session, target_contract)
    return [
        {
            "wallet_address": row.wallet_address,
            "total_volume_usd": row.total_volume_usd,
            "timestamp": row.timestamp.isoformat() if row.timestamp else None,
        }
        for row in rows
    ]
