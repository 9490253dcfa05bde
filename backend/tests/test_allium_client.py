import json
import sys
from pathlib import Path

import httpx
import pytest

BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
    sys.path.insert(0, str(BACKEND_ROOT))

from config import AlliumCredentials  # noqa: E402
from services.allium_client import (  # noqa: E402
    AlliumAPIError,
    AlliumClient,
    QueryFailedError,
    QueryTimeoutError,
    normalize_status,
    unwrap_rows,
)
from utils.request_queue import PriorityRequestQueue, RetriesExhaustedError  # noqa: E402

WALLET = "0x83d55acdc72027ed339d267eebaf9a41e47490d5"


def _client(handler, **kwargs):
    queue = PriorityRequestQueue(min_interval=0.0, backoff_unit=0.001)
    client = AlliumClient(
        AlliumCredentials(api_key="test-key", query_id="q-123"),
        queue=queue,
        base_url="https://api.allium.test",
        chain="base",
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
        query_poll_interval=0,
        query_max_attempts=kwargs.pop("query_max_attempts", 3),
    )
    return client, queue


async def _close(client, queue):
    await client.close()
    await queue.close()


def test_unwrap_rows_handles_envelopes():
    assert unwrap_rows([{"a": 1}], "items") == [{"a": 1}]
    assert unwrap_rows({"items": [{"a": 1}]}, "items") == [{"a": 1}]
    assert unwrap_rows({"data": [{"a": 1}]}, "data") == [{"a": 1}]
    assert unwrap_rows({"data": [{"a": 1}]}, "items") == []
    assert unwrap_rows({"items": None}, "items") == []
    assert unwrap_rows(None, "items") == []
    assert unwrap_rows("oops", "items") == []


def test_normalize_status_accepts_bare_and_quoted_strings():
    assert normalize_status("success") == "success"
    assert normalize_status('"running"') == "running"
    assert normalize_status(" Queued \n") == "queued"
    assert normalize_status({"status": "failed"}) == "failed"
    assert normalize_status(None) == ""


@pytest.mark.asyncio
async def test_wallet_transactions_sends_key_and_parses_items():
    seen = {}

    def handler(request: httpx.Request):
        seen["path"] = request.url.path
        seen["key"] = request.headers.get("X-API-KEY")
        seen["body"] = json.loads(request.content)
        return httpx.Response(
            200,
            json={
                "items": [
                    {
                        "hash": "0xh2",
                        "from_address": WALLET.upper().replace("0X", "0x"),
                        "to_address": "0xCF77A3BA9A5CA399B7C97C74D54E5B1BEB874E43",
                        "block_number": "123",
                        "token_transfers": [{"token_symbol": "AERO", "amount": "1.5"}],
                    },
                    {"to_address": "0xmissinghash"},
                    {"hash": "0xh1", "to_address": None},
                ]
            },
        )

    client, queue = _client(handler)
    txs = await client.get_wallet_transactions(WALLET)

    assert seen["path"] == "/api/v1/developer/wallet/transactions"
    assert seen["key"] == "test-key"
    assert seen["body"] == [{"chain": "base", "address": WALLET}]
    assert [tx.hash for tx in txs] == ["0xh2", "0xh1"]
    assert txs[0].to_address == "0xcf77a3ba9a5ca399b7c97c74d54e5b1beb874e43"
    assert txs[0].from_address == WALLET
    assert txs[0].block_number == 123
    assert txs[0].token_transfers[0].symbol == "AERO"
    assert txs[1].to_address == ""
    await _close(client, queue)


@pytest.mark.asyncio
async def test_wallet_transactions_accepts_bare_array():
    def handler(request: httpx.Request):
        return httpx.Response(200, json=[{"hash": "0xh1", "to_address": "0xabc"}])

    client, queue = _client(handler)
    txs = await client.get_wallet_transactions(WALLET)

    assert [tx.hash for tx in txs] == ["0xh1"]
    await _close(client, queue)


@pytest.mark.asyncio
async def test_balances_and_prices_are_parsed():
    def handler(request: httpx.Request):
        if request.url.path.endswith("/wallet/balances"):
            return httpx.Response(
                200,
                json=[{"chain": "base", "address": WALLET, "tokens": [{"symbol": "USDC", "balance": "10"}]}],
            )
        if request.url.path.endswith("/prices/at-timestamp"):
            return httpx.Response(200, json={"token_address": "0xABC", "price": "2.5", "timestamp": 1700000000})
        return httpx.Response(200, json={"items": [{"token_address": "0xABC", "price": 1.25}]})

    client, queue = _client(handler)

    [balance] = await client.get_wallet_balances(WALLET)
    [price] = await client.get_price("0xABC")
    at = await client.get_price_at_timestamp("0xABC", 1700000000)

    assert balance.tokens[0].symbol == "USDC"
    assert balance.tokens[0].balance == 10.0
    assert price.price == 1.25
    assert price.token_address == "0xabc"
    assert at.price == 2.5
    assert at.timestamp == "1700000000"
    await _close(client, queue)


@pytest.mark.asyncio
async def test_non_success_status_raises_api_error():
    def handler(request: httpx.Request):
        return httpx.Response(500, text="internal error")

    client, queue = _client(handler)

    with pytest.raises(AlliumAPIError) as exc_info:
        await client.get_wallet_transactions(WALLET)

    assert exc_info.value.status == 500
    assert exc_info.value.endpoint == "/api/v1/developer/wallet/transactions"
    assert not exc_info.value.is_rate_limited
    await _close(client, queue)


@pytest.mark.asyncio
async def test_throttled_requests_are_retried_by_queue():
    attempts = 0

    def handler(request: httpx.Request):
        nonlocal attempts
        attempts += 1
        if attempts <= 2:
            return httpx.Response(429, text="Too Many Requests")
        return httpx.Response(200, json={"items": []})

    client, queue = _client(handler)

    assert await client.get_wallet_transactions(WALLET) == []
    assert attempts == 3
    assert client.get_stats()["rate_limited"] == 2
    await _close(client, queue)


@pytest.mark.asyncio
async def test_persistent_throttling_surfaces_retries_exhausted():
    def handler(request: httpx.Request):
        return httpx.Response(429, text="Too Many Requests")

    client, queue = _client(handler)

    with pytest.raises(RetriesExhaustedError) as exc_info:
        await client.get_wallet_transactions(WALLET)

    assert isinstance(exc_info.value.last_error, AlliumAPIError)
    await _close(client, queue)


def _sql_handler(statuses, rows=None):
    calls = []

    def handler(request: httpx.Request):
        path = request.url.path
        calls.append(path)
        if path.endswith("/run-async"):
            assert json.loads(request.content) == {"parameters": {"sql_query": "SELECT 1"}}
            return httpx.Response(200, json={"run_id": "run-1"})
        if path.endswith("/status"):
            status = statuses.pop(0) if len(statuses) > 1 else statuses[0]
            # Status endpoint answers with a JSON string literal
            return httpx.Response(200, text=json.dumps(status))
        if path.endswith("/results"):
            assert request.url.params.get("f") == "json"
            return httpx.Response(200, json={"data": rows or []})
        return httpx.Response(404)

    return handler, calls


@pytest.mark.asyncio
async def test_run_sql_polls_until_success_and_returns_rows():
    handler, calls = _sql_handler(["created", "running", "success"], rows=[{"wallet_address": "0xabc"}])
    client, queue = _client(handler, query_max_attempts=5)

    rows = await client.run_sql("SELECT 1")

    assert rows == [{"wallet_address": "0xabc"}]
    assert calls[0] == "/api/v1/explorer/queries/q-123/run-async"
    assert calls.count("/api/v1/explorer/query-runs/run-1/status") == 3
    assert calls[-1] == "/api/v1/explorer/query-runs/run-1/results"
    await _close(client, queue)


@pytest.mark.asyncio
async def test_run_sql_times_out_while_pending():
    handler, calls = _sql_handler(["running"])
    client, queue = _client(handler, query_max_attempts=3)

    with pytest.raises(QueryTimeoutError) as exc_info:
        await client.run_sql("SELECT 1")

    assert exc_info.value.status == "running"
    assert exc_info.value.run_id == "run-1"
    assert "running" in str(exc_info.value)
    assert calls.count("/api/v1/explorer/query-runs/run-1/status") == 3
    assert not any(path.endswith("/results") for path in calls)
    await _close(client, queue)


@pytest.mark.asyncio
async def test_run_sql_reports_failed_run():
    handler, _ = _sql_handler(["queued", "failed"])
    client, queue = _client(handler)

    with pytest.raises(QueryFailedError) as exc_info:
        await client.run_sql("SELECT 1")

    assert exc_info.value.status == "failed"
    assert exc_info.value.elapsed_seconds >= 0
    await _close(client, queue)


@pytest.mark.asyncio
async def test_supported_chains_lowercases_chain_names():
    def handler(request: httpx.Request):
        return httpx.Response(
            200,
            json={"/api/v1/developer/prices": ["Base", "ethereum"], "note": "ignored"},
        )

    client, queue = _client(handler)

    assert await client.get_supported_chains() == {"/api/v1/developer/prices": ["base", "ethereum"]}
    await _close(client, queue)
