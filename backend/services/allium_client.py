"""Client for the Allium developer and explorer APIs.

Every request is routed through the shared ``PriorityRequestQueue`` so the
provider's 1 req/s limit holds across the poll loop, warm-up and any
on-demand query. Response envelopes differ per endpoint (bare arrays,
``{"items": [...]}``, ``{"data": [...]}``, bare status strings); they are
normalized here so callers always get lists of typed records.
"""

from __future__ import annotations

import asyncio
import time
from typing import Any, Optional

import httpx
from pydantic import BaseModel

from config import AlliumCredentials, resolve_allium_credentials, settings
from models.wallet import Transaction, WalletBalance, normalize_address
from utils.logger import get_logger
from utils.request_queue import Priority, PriorityRequestQueue

logger = get_logger("allium")

WALLET_TRANSACTIONS_PATH = "/api/v1/developer/wallet/transactions"
WALLET_BALANCES_PATH = "/api/v1/developer/wallet/balances"
PRICES_PATH = "/api/v1/developer/prices"
PRICE_AT_TIMESTAMP_PATH = "/api/v1/developer/prices/at-timestamp"
SUPPORTED_CHAINS_PATH = "/api/v1/supported-chains/realtime-apis/simple"

QUERY_PENDING_STATUSES = frozenset({"created", "queued", "running"})
QUERY_SUCCESS_STATUS = "success"


class AlliumAPIError(Exception):
    """Non-2xx response from the provider."""

    def __init__(self, status: int, body: str = "", endpoint: str = ""):
        super().__init__(f"Allium API {status} on {endpoint}: {body[:200]}")
        self.status = status
        self.body = body
        self.endpoint = endpoint

    @property
    def is_rate_limited(self) -> bool:
        return self.status == 429


class QueryError(Exception):
    """Explorer SQL run did not finish successfully."""

    def __init__(self, message: str, run_id: str, status: str, elapsed_seconds: float):
        super().__init__(message)
        self.run_id = run_id
        self.status = status
        self.elapsed_seconds = elapsed_seconds


class QueryFailedError(QueryError):
    """The run reached a terminal status other than success."""


class QueryTimeoutError(QueryError):
    """The run was still pending when the poll budget ran out."""


class TokenPrice(BaseModel):
    chain: str = ""
    token_address: str = ""
    price: Optional[float] = None
    timestamp: Optional[str] = None

    @classmethod
    def from_api(cls, data: Any) -> Optional["TokenPrice"]:
        if not isinstance(data, dict):
            return None
        raw_price = data.get("price", data.get("usd_price", data.get("value")))
        try:
            price = float(raw_price) if raw_price is not None else None
        except (TypeError, ValueError):
            price = None
        timestamp = data.get("timestamp")
        return cls(
            chain=str(data.get("chain") or ""),
            token_address=normalize_address(data.get("token_address") or data.get("address")),
            price=price,
            timestamp=str(timestamp) if timestamp is not None else None,
        )


def unwrap_rows(payload: Any, key: str) -> list:
    """Return the row list from a bare array or a ``{key: [...]}`` envelope.

    Anything else (null, string, dict without the key, non-list value) is
    treated as an empty result.
    """
    if isinstance(payload, list):
        return payload
    if isinstance(payload, dict) and key in payload:
        rows = payload.get(key)
        return rows if isinstance(rows, list) else []
    if payload not in (None, "", {}):
        logger.debug("Unexpected response shape", expected_key=key, type=type(payload).__name__)
    return []


def normalize_status(payload: Any) -> str:
    """Status endpoint returns a bare (sometimes quoted) string, or occasionally ``{"status": ...}``."""
    if isinstance(payload, dict):
        payload = payload.get("status", "")
    return str(payload or "").strip().strip('"').strip().lower()


class AlliumClient:
    """Typed wrapper around the provider endpoints used by the poller."""

    def __init__(
        self,
        credentials: Optional[AlliumCredentials] = None,
        *,
        queue: Optional[PriorityRequestQueue] = None,
        base_url: Optional[str] = None,
        chain: Optional[str] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        query_poll_interval: Optional[float] = None,
        query_max_attempts: Optional[int] = None,
    ):
        creds = credentials or resolve_allium_credentials()
        self.api_key = creds.api_key
        self.query_id = creds.query_id
        self.base_url = (base_url or settings.ALLIUM_API_URL).rstrip("/")
        self.chain = chain or settings.CHAIN
        self._owns_queue = queue is None
        self.queue = queue or PriorityRequestQueue(
            min_interval=settings.RATE_LIMIT_MIN_INTERVAL_SECONDS,
            max_retries=settings.RATE_LIMIT_MAX_RETRIES,
        )
        self.query_poll_interval = (
            settings.QUERY_POLL_INTERVAL_SECONDS if query_poll_interval is None else query_poll_interval
        )
        self.query_max_attempts = query_max_attempts or settings.QUERY_MAX_ATTEMPTS
        self._client: Optional[httpx.AsyncClient] = http_client

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=settings.HTTP_TIMEOUT_SECONDS)
        return self._client

    async def close(self):
        if self._owns_queue:
            await self.queue.close()
        if self._client and not self._client.is_closed:
            await self._client.aclose()

    def get_stats(self) -> dict:
        return self.queue.get_stats()

    async def _send(
        self,
        method: str,
        endpoint: str,
        json_body: Any = None,
        params: Optional[dict] = None,
    ) -> Any:
        client = await self._get_client()
        response = await client.request(
            method,
            f"{self.base_url}{endpoint}",
            json=json_body,
            params=params,
            headers={"X-API-KEY": self.api_key, "Content-Type": "application/json"},
        )
        if not response.is_success:
            raise AlliumAPIError(response.status_code, response.text, endpoint)
        try:
            return response.json()
        except ValueError:
            return response.text

    async def _request(
        self,
        method: str,
        endpoint: str,
        json_body: Any = None,
        *,
        params: Optional[dict] = None,
        priority: Priority = Priority.MEDIUM,
        label: Optional[str] = None,
    ) -> Any:
        return await self.queue.submit(
            lambda: self._send(method, endpoint, json_body, params),
            priority,
            label,
        )

    # ==================== WALLET ====================

    async def get_wallet_transactions(self, address: str, chain: Optional[str] = None) -> list[Transaction]:
        """Recent transactions for a wallet, newest first."""
        payload = await self._request(
            "POST",
            WALLET_TRANSACTIONS_PATH,
            [{"chain": chain or self.chain, "address": address}],
            priority=Priority.MEDIUM,
            label=f"tx:{address[:8]}",
        )
        transactions = []
        for row in unwrap_rows(payload, "items"):
            tx = Transaction.from_api(row)
            if tx is not None:
                transactions.append(tx)
        return transactions

    async def get_wallet_balances(self, address: str, chain: Optional[str] = None) -> list[WalletBalance]:
        payload = await self._request(
            "POST",
            WALLET_BALANCES_PATH,
            [{"chain": chain or self.chain, "address": address}],
            priority=Priority.LOW,
            label=f"bal:{address[:8]}",
        )
        balances = []
        for row in unwrap_rows(payload, "items"):
            balance = WalletBalance.from_api(row)
            if balance is not None:
                balances.append(balance)
        return balances

    # ==================== PRICES ====================

    async def get_price(self, token_address: str, chain: Optional[str] = None) -> list[TokenPrice]:
        payload = await self._request(
            "POST",
            PRICES_PATH,
            [{"chain": chain or self.chain, "token_address": token_address}],
            priority=Priority.HIGH,
            label=f"price:{token_address[:8]}",
        )
        return [p for p in (TokenPrice.from_api(row) for row in unwrap_rows(payload, "items")) if p]

    async def get_price_at_timestamp(
        self,
        token_address: str,
        timestamp: int,
        chain: Optional[str] = None,
    ) -> Optional[TokenPrice]:
        payload = await self._request(
            "POST",
            PRICE_AT_TIMESTAMP_PATH,
            {"chain": chain or self.chain, "token_address": token_address, "timestamp": timestamp},
            priority=Priority.HIGH,
            label=f"price-at:{token_address[:8]}",
        )
        if isinstance(payload, dict) and "items" not in payload:
            return TokenPrice.from_api(payload)
        rows = unwrap_rows(payload, "items")
        return TokenPrice.from_api(rows[0]) if rows else None

    async def get_supported_chains(self) -> dict[str, list[str]]:
        """Endpoint path -> chains supported by the realtime APIs."""
        payload = await self._request(
            "GET",
            SUPPORTED_CHAINS_PATH,
            priority=Priority.LOW,
            label="supported-chains",
        )
        if not isinstance(payload, dict):
            return {}
        return {
            str(endpoint): [str(c).lower() for c in chains]
            for endpoint, chains in payload.items()
            if isinstance(chains, list)
        }

    # ==================== EXPLORER SQL ====================

    async def run_sql(self, sql: str) -> list[dict]:
        """Run an explorer SQL query and return its rows.

        Starts an async run, polls its status every ``query_poll_interval``
        seconds while it is created/queued/running, then fetches results.
        Raises ``QueryTimeoutError`` if the run is still pending after
        ``query_max_attempts`` polls and ``QueryFailedError`` for any other
        non-success terminal status.
        """
        started = time.monotonic()
        run = await self._request(
            "POST",
            f"/api/v1/explorer/queries/{self.query_id}/run-async",
            {"parameters": {"sql_query": sql}},
            priority=Priority.CRITICAL,
            label="sql:start",
        )
        run_id = str(run.get("run_id") or "") if isinstance(run, dict) else ""
        if not run_id:
            raise QueryFailedError("SQL query did not return a run id", "", "", 0.0)
        logger.info("Query started", run_id=run_id)

        status = ""
        attempts = 0
        while True:
            await asyncio.sleep(self.query_poll_interval)
            status = normalize_status(
                await self._request(
                    "GET",
                    f"/api/v1/explorer/query-runs/{run_id}/status",
                    priority=Priority.CRITICAL,
                    label=f"sql:poll:{attempts}",
                )
            )
            attempts += 1
            if status not in QUERY_PENDING_STATUSES or attempts >= self.query_max_attempts:
                break
            if attempts % 3 == 0:
                logger.info("Query still running", run_id=run_id, elapsed=round(time.monotonic() - started, 1))

        elapsed = time.monotonic() - started
        if status != QUERY_SUCCESS_STATUS:
            message = f"SQL query {run_id} failed: status={status!r} after {elapsed:.1f}s ({attempts} polls)"
            if status in QUERY_PENDING_STATUSES:
                raise QueryTimeoutError(message, run_id, status, elapsed)
            raise QueryFailedError(message, run_id, status, elapsed)

        payload = await self._request(
            "GET",
            f"/api/v1/explorer/query-runs/{run_id}/results",
            params={"f": "json"},
            priority=Priority.CRITICAL,
            label="sql:results",
        )
        rows = [row for row in unwrap_rows(payload, "data") if isinstance(row, dict)]
        logger.info("Query completed", run_id=run_id, rows=len(rows), elapsed=round(elapsed, 1))
        return rows
