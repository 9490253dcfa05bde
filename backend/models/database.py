from pathlib import Path

from sqlalchemy import (
    Column,
    String,
    Float,
    Integer,
    Boolean,
    DateTime,
    JSON,
    Index,
    UniqueConstraint,
    event,
)
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession
from sqlalchemy.orm import declarative_base, sessionmaker

from config import settings
from utils.utcnow import utcnow

Base = declarative_base()


class SignalRecord(Base):
    """Persisted new-contract signal. ``transaction_hash`` is the dedup key."""

    __tablename__ = "signals"

    id = Column(String, primary_key=True)  # uuid hex
    signal_id = Column(String, nullable=False)  # evaluator id (sig-N)
    type = Column(String, nullable=False, default="NEW_CONTRACT")
    wallet = Column(String, nullable=False, index=True)
    vertical = Column(String, nullable=False, index=True)
    transaction_hash = Column(String, nullable=False)
    target_contract = Column(String, nullable=False, index=True)
    timestamp = Column(String, nullable=False)
    actionability_score = Column(Integer, nullable=False)
    is_first_mover = Column(Boolean, nullable=False, default=False)
    vertical_tag = Column(String, nullable=True)
    common_neighbors = Column(Integer, nullable=False, default=0)
    display_name = Column(String, nullable=True)
    persona = Column(String, nullable=True)
    context_json = Column(JSON, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint("transaction_hash", name="uq_signals_transaction_hash"),
        Index("idx_signals_created", "created_at"),
    )


class TargetAudience(Base):
    """Lookalike wallet found for a target contract."""

    __tablename__ = "target_audiences"

    id = Column(Integer, primary_key=True, autoincrement=True)
    target_contract = Column(String, nullable=False, index=True)
    wallet_address = Column(String, nullable=False)
    total_volume_usd = Column(Float, nullable=False, default=0.0)
    timestamp = Column(DateTime, default=utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint("target_contract", "wallet_address", name="uq_target_audience_wallet"),
    )


# ==================== DATABASE SETUP ====================

_engine_kw: dict = {"echo": False}
if "sqlite" in settings.DATABASE_URL:
    _engine_kw["connect_args"] = {"timeout": 30}  # Wait up to 30s when DB is locked

async_engine = create_async_engine(settings.DATABASE_URL, **_engine_kw)


def _set_sqlite_pragma(dbapi_connection, connection_record):
    """Configure SQLite for concurrent readers (WAL mode, busy timeout)."""
    if "sqlite" not in settings.DATABASE_URL:
        return
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA busy_timeout=30000")
    cursor.close()


event.listens_for(async_engine.sync_engine, "connect")(_set_sqlite_pragma)

AsyncSessionLocal = sessionmaker(
    async_engine, class_=AsyncSession, expire_on_commit=False
)


def _ensure_sqlite_dir(url: str) -> None:
    prefix = "sqlite+aiosqlite:///"
    if not url.startswith(prefix):
        return
    path_part = url[len(prefix) :]
    if path_part and path_part != ":memory:":
        Path(path_part).parent.mkdir(parents=True, exist_ok=True)


async def init_database():
    """Create tables if they do not exist."""
    _ensure_sqlite_dir(str(async_engine.url))
    async with async_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def get_db_session() -> AsyncSession:
    """Get database session"""
    async with AsyncSessionLocal() as session:
        yield session
