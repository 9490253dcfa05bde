"""Shared fixtures for whale signal tests."""

import sys
from pathlib import Path

BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
    sys.path.insert(0, str(BACKEND_ROOT))

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker

from models.database import Base
from models.wallet import TrackedWallet, Vertical
from services.lookups import ProtocolDirectory, SocialDirectory, SocialIdentity


DEFI_WHALE = "0x83d55acdc72027ed339d267eebaf9a41e47490d5"
AI_WHALE = "0x3f0296bf652e19bca772ec3df08b32732f93014a"
AERODROME_ROUTER = "0xcf77a3ba9a5ca399b7c97c74d54e5b1beb874e43"


def make_tx(tx_hash, to_address, **extra):
    """Raw provider transaction dict."""
    return {
        "hash": tx_hash,
        "from_address": extra.pop("from_address", DEFI_WHALE),
        "to_address": to_address,
        "value": "0",
        "block_timestamp": extra.pop("block_timestamp", "2025-01-01T00:00:00Z"),
        "block_number": extra.pop("block_number", 1),
        **extra,
    }


# ---------------------------------------------------------------------------
# Roster and lookups
# ---------------------------------------------------------------------------


@pytest.fixture
def defi_wallet():
    return TrackedWallet(
        address=DEFI_WHALE,
        vertical=Vertical.DEFI,
        label="DeFi Whale #1",
        volume_30d_usd=6_200_000_000,
    )


@pytest.fixture
def ai_wallet():
    return TrackedWallet(
        address=AI_WHALE,
        vertical=Vertical.AI,
        label="AI Whale #1",
        volume_30d_usd=150_000_000,
    )


@pytest.fixture
def protocols():
    return ProtocolDirectory({AERODROME_ROUTER: "Aerodrome"})


@pytest.fixture
def socials():
    return SocialDirectory({DEFI_WHALE: SocialIdentity(name="vitalik.eth", persona="DeFi Architect & OG")})


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def session_factory(tmp_path):
    """Session factory bound to a throwaway SQLite file with the schema created."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'signals.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    await engine.dispose()
