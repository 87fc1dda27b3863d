import os
from datetime import datetime, timedelta
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from mongomock_motor import AsyncMongoMockClient

os.environ.setdefault("MONGODB_DB_NAME", "baji_ledger_test")
os.environ.setdefault("BUSINESS_TIMEZONE", "Asia/Kolkata")


class FrozenClock:
    """Controls app.core.clock.utcnow; naive UTC like stored timestamps."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock(monkeypatch) -> FrozenClock:
    from app.core import clock as clock_module
    # Wednesday 2026-10-14 12:00 IST
    frozen = FrozenClock(datetime(2026, 10, 14, 6, 30, 0))
    monkeypatch.setattr(clock_module, "utcnow", frozen)
    return frozen


@pytest_asyncio.fixture
async def db(clock):
    from app.db.init import init_db
    client = AsyncMongoMockClient()
    await init_db(client["baji_ledger_test"])
    yield client


@pytest_asyncio.fixture
async def client(db) -> AsyncGenerator[AsyncClient, None]:
    from app.main import app
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac


async def fund(user_id: str, amount) -> int:
    """Deposit and verify amount (rupees). Returns the balance in paise."""
    from app.services import ledger as ledger_service
    entry = await ledger_service.submit_deposit(user_id, amount, "9990001111", "upi", f"txn-{user_id}")
    return await ledger_service.verify_deposit(user_id, amount, entry.requested_at)


@pytest.fixture
def funded():
    return fund
