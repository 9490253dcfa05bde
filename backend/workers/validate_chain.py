"""Check that the configured chain is served by every provider endpoint we call.

Run from backend/ with:
    python -m workers.validate_chain

Exits 0 when every required endpoint supports the chain, 1 otherwise.
"""

from __future__ import annotations

import asyncio
import os
import sys
from dataclasses import dataclass

_BACKEND = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if _BACKEND not in sys.path:
    sys.path.insert(0, _BACKEND)

from config import ConfigurationError, settings
from services.allium_client import AlliumClient
from utils.logger import get_logger, setup_logging

logger = get_logger("validate_chain")

REQUIRED_ENDPOINTS = (
    "/api/v1/developer/wallet/balances",
    "/api/v1/developer/wallet/transactions",
    "/api/v1/developer/wallet/balances/history",
    "/api/v1/developer/prices",
    "/api/v1/developer/prices/history",
    "/api/v1/developer/prices/at-timestamp",
    "/api/v1/developer/tokens",
    "/api/v1/developer/tokens/search",
)

OPTIONAL_ENDPOINTS = ("/api/v1/developer/wallet/pnl",)


@dataclass
class ChainSupportReport:
    chain: str
    supported: list[str]
    missing_required: list[str]
    missing_optional: list[str]

    @property
    def ok(self) -> bool:
        return not self.missing_required


def check_chain_support(supported_chains: dict[str, list[str]], chain: str) -> ChainSupportReport:
    chain = chain.lower()
    supported: list[str] = []
    missing_required: list[str] = []
    missing_optional: list[str] = []

    for endpoint in REQUIRED_ENDPOINTS:
        if chain in supported_chains.get(endpoint, []):
            supported.append(endpoint)
        else:
            missing_required.append(endpoint)
    for endpoint in OPTIONAL_ENDPOINTS:
        if chain in supported_chains.get(endpoint, []):
            supported.append(endpoint)
        else:
            missing_optional.append(endpoint)

    return ChainSupportReport(chain, supported, missing_required, missing_optional)


async def validate(client: AlliumClient, chain: str) -> ChainSupportReport:
    report = check_chain_support(await client.get_supported_chains(), chain)
    for endpoint in report.supported:
        logger.info("Endpoint supports chain", endpoint=endpoint, chain=chain)
    for endpoint in report.missing_required:
        logger.error("Required endpoint does not support chain", endpoint=endpoint, chain=chain)
    for endpoint in report.missing_optional:
        # Derived from other endpoints when unavailable
        logger.warning("Optional endpoint does not support chain", endpoint=endpoint, chain=chain)
    return report


async def main() -> int:
    setup_logging(level=settings.LOG_LEVEL, json_format=settings.LOG_JSON)
    try:
        client = AlliumClient()
    except ConfigurationError as e:
        logger.error("Configuration error", error=str(e))
        return 1

    try:
        report = await validate(client, settings.CHAIN)
    except Exception as e:
        logger.error("Validation failed", error=str(e), error_type=type(e).__name__)
        return 1
    finally:
        await client.close()

    if report.ok:
        logger.info("All required endpoints support chain", chain=report.chain)
    else:
        logger.error("Some required endpoints do not support chain", chain=report.chain)
    return 0 if report.ok else 1


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
