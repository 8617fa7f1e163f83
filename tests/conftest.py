import random
from collections.abc import AsyncGenerator
from datetime import datetime

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from backend.models import Base, WordBankEntry
from backend.srs.clock import ManualClock
from backend.srs.ledger import ErrorLedger
from backend.srs.scheduler import ReviewScheduler
from backend.srs.session import SessionEngine
from backend.storage import Storage

START = datetime(2024, 3, 1, 9, 0, 0)


def make_words(count: int, prefix: str = "w") -> list[WordBankEntry]:
    return [
        WordBankEntry(id=f"{prefix}{i}", word=f"字{i}", pinyin=f"zi{i}", unit=1)
        for i in range(1, count + 1)
    ]


@pytest_asyncio.fixture
async def sessionmaker() -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    """In-memory SQLite shared across connections for one test."""
    db_engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with db_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)
    await db_engine.dispose()


@pytest.fixture
def storage(sessionmaker: async_sessionmaker[AsyncSession]) -> Storage:
    return Storage(sessionmaker, write_attempts=1)


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock(START)


@pytest.fixture
def ledger(storage: Storage, clock: ManualClock) -> ErrorLedger:
    return ErrorLedger(storage, clock)


@pytest.fixture
def scheduler(storage: Storage, ledger: ErrorLedger, clock: ManualClock) -> ReviewScheduler:
    return ReviewScheduler(storage, ledger, clock)


@pytest.fixture
def engine(
    storage: Storage,
    scheduler: ReviewScheduler,
    ledger: ErrorLedger,
    clock: ManualClock,
) -> SessionEngine:
    return SessionEngine(storage, scheduler, ledger, clock, random.Random(7))
