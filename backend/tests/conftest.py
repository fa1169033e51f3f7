import os, tempfile, uuid

# Settings are read at import time, so the environment is fixed before any elderpoints import
_db_path = os.path.join(tempfile.mkdtemp(prefix="elderpoints-tests-"), "test.db")
os.environ["DATABASE_URL"] = os.getenv("TEST_DATABASE_URL") or f"sqlite+aiosqlite:///{_db_path}"
os.environ.setdefault("NOTIFY_BACKEND", "log")
os.environ.setdefault("SETTLEMENT_PARALLELISM", "4")
os.environ.setdefault("LINE_CHANNEL_ACCESS_TOKEN", "")

import pytest
import pytest_asyncio

from elderpoints.db import Base, engine, SessionLocal
from elderpoints.models.account import Account
import elderpoints.models.wallet  # noqa: F401  register tables
import elderpoints.models.transaction  # noqa: F401
import elderpoints.models.match  # noqa: F401
import elderpoints.models.notification  # noqa: F401

STORE = "store-tokyo-1"
OTHER_STORE = "store-osaka-2"
EVIDENCE = "https://media.example.com/house/end.jpg"


@pytest_asyncio.fixture(autouse=True)
async def fresh_schema():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    yield
    await engine.dispose()


@pytest.fixture
def make_account():
    async def _make(role="participant", store_id=STORE, **kw) -> Account:
        async with SessionLocal() as session:
            acct = Account(
                role=role,
                store_id=store_id,
                display_name=kw.pop("display_name", f"{role}-{uuid.uuid4().hex[:6]}"),
                **kw,
            )
            session.add(acct)
            await session.commit()
            return acct
    return _make


class RecordingChannel:
    def __init__(self):
        self.sent = []

    async def dispatch(self, recipient_id, title, message, metadata):
        self.sent.append({"recipient_id": recipient_id, "title": title, "message": message, "metadata": metadata})


class FailingChannel(RecordingChannel):
    """Raises for the given recipients (or everyone when none are given)."""

    def __init__(self, fail_for=None):
        super().__init__()
        self.fail_for = set(fail_for or [])

    async def dispatch(self, recipient_id, title, message, metadata):
        if not self.fail_for or recipient_id in self.fail_for:
            raise ConnectionError("push gateway unavailable")
        await super().dispatch(recipient_id, title, message, metadata)


@pytest.fixture
def channel():
    return RecordingChannel()


def rounds(*scores, evidence=EVIDENCE):
    from elderpoints.schemas.match import RoundIn
    return [RoundIn(red_score=r, yellow_score=y, evidence_url=evidence) for r, y in scores]
