"""
Shared fixtures: an isolated SQLite profile store and in-memory ledger fakes.
"""

import asyncio
import os
import tempfile
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional

_TEST_DIR = Path(tempfile.mkdtemp(prefix="subsidy_admin_"))
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("LOG_FORMAT", "console")
os.environ["DATABASE_URL"] = f"sqlite:///{_TEST_DIR / 'test.db'}"

import pytest

from subsidy_admin.core.database import DatabaseManager, close_database, init_database
from subsidy_admin.core.exceptions import DatabaseError, MutationRejectedError
from subsidy_admin.services.ledger_mutation import LedgerAction, MutationHandle, MutationReceipt
from subsidy_admin.services.notification_service import NotificationService
from subsidy_admin.services.profile_store import ProfileStore
from subsidy_admin.services.types import DailyClaim, LedgerRecord
from subsidy_admin.services.write_coordinator import WriteCoordinator


ADDR_A = "0x" + "a" * 40
ADDR_B = "0x" + "b" * 40
ADDR_C = "0x" + "c" * 40
ADDR_ANA = "0x" + "abc" + "0" * 37

DAY = 86400
ETHER = 10 ** 18


def ledger_record(
    address: str,
    date_added: int = 1_700_000_000,
    date_removed: Optional[int] = None,
    is_active: bool = True,
    total_claimed: int = 0,
) -> LedgerRecord:
    return LedgerRecord(
        address=address,
        date_added=date_added,
        date_removed=date_removed,
        is_active=is_active,
        total_claimed=total_claimed,
    )


@pytest.fixture
async def database():
    """Fresh tables for every test."""
    await init_database()
    await DatabaseManager.drop_tables()
    await DatabaseManager.create_tables()
    yield
    await close_database()


class FakeLedgerClient:
    """In-memory stand-in for the subgraph client."""

    def __init__(self, records: Optional[List[LedgerRecord]] = None, daily_claims: Optional[List[DailyClaim]] = None):
        self.records: List[LedgerRecord] = list(records or [])
        self.daily_claims: List[DailyClaim] = list(daily_claims or [])
        self.error: Optional[Exception] = None

    async def list_beneficiaries(self) -> List[LedgerRecord]:
        if self.error:
            raise self.error
        return list(self.records)

    async def get_beneficiary(self, address: str) -> Optional[LedgerRecord]:
        if self.error:
            raise self.error
        return next((r for r in self.records if r.address == address), None)

    async def list_daily_claims(self) -> List[DailyClaim]:
        if self.error:
            raise self.error
        return list(self.daily_claims)


class FakeMutationClient:
    """
    Ledger mutation fake.

    ``reject_submit`` / ``reject_confirm`` make the respective step fail;
    ``hold`` keeps confirmation pending until ``release()``, ``hold_submit``
    does the same for submission; ``confirm_errors`` are raised by the first
    confirmation attempts, one per call.
    """

    def __init__(self, ledger: Optional[FakeLedgerClient] = None):
        self.ledger = ledger
        self.reject_submit = False
        self.reject_confirm = False
        self.hold = False
        self.hold_submit = False
        self.confirm_errors: List[Exception] = []
        self.confirm_attempts = 0
        self.submitted: List[MutationHandle] = []
        self._released = asyncio.Event()

    def release(self) -> None:
        self._released.set()

    async def submit(self, action: LedgerAction, address: str) -> MutationHandle:
        if self.hold_submit:
            await self._released.wait()
        if self.reject_submit:
            raise MutationRejectedError("Transaction reverted: caller is not admin", {"address": address})
        handle = MutationHandle(
            action=action,
            address=address,
            tx_hash="0x" + f"{len(self.submitted) + 1:064x}",
            submitted_at=datetime.now(timezone.utc),
        )
        self.submitted.append(handle)
        return handle

    async def wait_for_confirmation(self, handle: MutationHandle) -> MutationReceipt:
        self.confirm_attempts += 1
        if self.confirm_errors:
            raise self.confirm_errors.pop(0)
        if self.hold:
            await self._released.wait()
        if self.reject_confirm:
            raise MutationRejectedError("Transaction reverted on-chain", {"tx_hash": handle.tx_hash})
        if self.ledger is not None:
            self._apply(handle)
        return MutationReceipt(tx_hash=handle.tx_hash, block_number=1, success=True, gas_used=21000)

    def _apply(self, handle: MutationHandle) -> None:
        existing = {r.address: r for r in self.ledger.records}
        record = existing.get(handle.address)
        if handle.action == LedgerAction.ADD:
            if record is None:
                self.ledger.records.append(ledger_record(handle.address))
        elif record is not None:
            self.ledger.records = [
                ledger_record(r.address, r.date_added, 1_700_000_000 + DAY, False, r.total_claimed)
                if r.address == handle.address else r
                for r in self.ledger.records
            ]


class FakeReferralReporter:
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.reported: List[str] = []

    async def report(self, tx_hash: str) -> bool:
        self.reported.append(tx_hash)
        if self.fail:
            raise RuntimeError("referral endpoint down")
        return True


class FailingProfileStore:
    """Profile store whose writes always fail; reads see nothing."""

    def __init__(self):
        self.writes = 0

    async def get(self, address: str):
        return None

    async def create(self, payload):
        self.writes += 1
        raise DatabaseError("Failed to create beneficiary", {"error": "connection reset"})

    async def update(self, address: str, **fields):
        self.writes += 1
        raise DatabaseError("Failed to update beneficiary", {"error": "connection reset"})


def failing_scope(store: FailingProfileStore):
    @asynccontextmanager
    async def scope():
        yield store
    return scope


class RecordingScope:
    """Counts how often the coordinator opens a profile store."""

    def __init__(self, inner):
        self.inner = inner
        self.opened = 0

    @asynccontextmanager
    async def __call__(self):
        self.opened += 1
        async with self.inner() as store:
            yield store


@pytest.fixture
def fake_ledger() -> FakeLedgerClient:
    return FakeLedgerClient()


@pytest.fixture
def mutation_client(fake_ledger) -> FakeMutationClient:
    return FakeMutationClient(fake_ledger)


@pytest.fixture
def notifier() -> NotificationService:
    return NotificationService()


@pytest.fixture
def referral_reporter() -> FakeReferralReporter:
    return FakeReferralReporter()


@pytest.fixture
def coordinator(database, mutation_client, notifier, referral_reporter) -> WriteCoordinator:
    return WriteCoordinator(
        mutation_client=mutation_client,
        notifier=notifier,
        referral_reporter=referral_reporter,
        confirm_retry_interval=0,
    )


@pytest.fixture
async def store(database):
    """Profile store over a session that is committed after the test body."""
    from subsidy_admin.core.database import get_async_session

    async with get_async_session() as session:
        yield ProfileStore(session)
