"""Shared test fixtures for the push gateway test suite."""

import asyncio
import pytest
from datetime import datetime, timedelta, timezone
from config.constants import ReceiptStatus
from push.dedupe import DedupeCache
from push.dispatcher import PushDispatcher
from push.janitor import TokenJanitor
from push.ledger import evaluate_claim
from push.preferences import PreferenceResolver
from push.registry import DeviceTokenRegistry
from push.types import ClaimDecision, PushPayload, Receipt, ReceiptMeta, SendOutcome, SendResult


# ── Database Pool Mock ──


class FakeRecord(dict):
    """Mimics asyncpg.Record: supports both dict-style and attribute access."""
    def __getattr__(self, key):
        try:
            return self[key]
        except KeyError:
            raise AttributeError(key)


class FakeConnection:
    """Mock asyncpg connection with configurable return values."""

    def __init__(self):
        self.execute_results: list[str] = ["DELETE 1"]
        self.fetch_results: list[list[dict]] = [[]]
        self.fetchrow_result: dict | None = None
        self.fetchval_results: list = [1]
        self.execute_error: Exception | None = None
        self._execute_calls: list[tuple] = []
        self._fetch_calls: list[tuple] = []
        self._fetchrow_calls: list[tuple] = []
        self._fetchval_calls: list[tuple] = []
        self.transactions = 0

    async def execute(self, query, *args):
        self._execute_calls.append((query, args))
        if self.execute_error is not None:
            raise self.execute_error
        return self.execute_results[0] if self.execute_results else "UPDATE 0"

    async def fetch(self, query, *args):
        self._fetch_calls.append((query, args))
        result = self.fetch_results.pop(0) if self.fetch_results else []
        return [FakeRecord(r) for r in result]

    async def fetchrow(self, query, *args):
        self._fetchrow_calls.append((query, args))
        return FakeRecord(self.fetchrow_result) if self.fetchrow_result else None

    async def fetchval(self, query, *args):
        self._fetchval_calls.append((query, args))
        if len(self.fetchval_results) > 1:
            return self.fetchval_results.pop(0)
        return self.fetchval_results[0] if self.fetchval_results else None

    def transaction(self):
        self.transactions += 1
        return FakeTransaction()


class FakeTransaction:
    async def __aenter__(self):
        return self

    async def __aexit__(self, *args):
        pass


class FakePool:
    """Mock asyncpg.Pool that yields a FakeConnection."""

    def __init__(self):
        self.conn = FakeConnection()

    def acquire(self):
        return FakePoolContext(self.conn)


class FakePoolContext:
    def __init__(self, conn):
        self.conn = conn

    async def __aenter__(self):
        return self.conn

    async def __aexit__(self, *args):
        pass


@pytest.fixture
def fake_pool():
    """Provide a mock database pool."""
    return FakePool()


@pytest.fixture
def fake_conn(fake_pool):
    """Direct access to the underlying FakeConnection."""
    return fake_pool.conn


# ── In-memory collaborators ──


class InMemoryUserRepository:
    def __init__(self):
        self.profiles: dict[str, dict] = {}
        self.reads = 0

    async def get_push_preferences(self, user_id):
        self.reads += 1
        if user_id not in self.profiles:
            return None
        return self.profiles[user_id]


class InMemoryTokenRepository:
    def __init__(self):
        self.rows: list[dict] = []
        self._next_id = 1
        self.reads = 0
        self.delete_error: Exception | None = None

    def add(self, user_id, token, device_id=None, updated_at=None):
        row = {
            "id": self._next_id,
            "token": token,
            "user_id": user_id,
            "device_id": device_id,
            "platform": "android",
            "last_used_at": None,
            "updated_at": updated_at,
            "created_at": None,
        }
        self._next_id += 1
        self.rows.append(row)
        return row

    async def get_for_user(self, user_id):
        self.reads += 1
        return [dict(r) for r in self.rows if r["user_id"] == user_id]

    async def delete_many(self, token_ids):
        if self.delete_error is not None:
            raise self.delete_error
        before = len(self.rows)
        self.rows = [r for r in self.rows if r["id"] not in set(token_ids)]
        return before - len(self.rows)


class InMemoryLedger:
    """Ledger with the same claim rules, serialized by a lock like a row lock."""

    def __init__(self, clock, stale_window=timedelta(seconds=60)):
        self.receipts: dict[str, dict] = {}
        self.transitions: list[tuple[str, str]] = []
        self.stale_window = stale_window
        self._clock = clock
        self._lock = asyncio.Lock()

    async def claim(self, key: str, meta: ReceiptMeta) -> ClaimDecision:
        async with self._lock:
            await asyncio.sleep(0)
            now = self._clock()
            row = self.receipts.get(key)
            receipt = None
            if row is not None:
                receipt = Receipt(key, ReceiptStatus(row["status"]), row["updated_at"], row["trace_id"])
            decision = evaluate_claim(receipt, now, self.stale_window)
            if decision.proceed:
                self.receipts[key] = {
                    "status": "pending",
                    "trace_id": meta.trace_id,
                    "recipient_id": meta.recipient_id,
                    "event_kind": meta.event_kind,
                    "related_id": meta.related_id,
                    "payload_hash": meta.payload_hash,
                    "success_count": 0,
                    "failure_count": 0,
                    "last_error_code": None,
                    "created_at": row["created_at"] if row else now,
                    "updated_at": now,
                }
                self.transitions.append((key, "pending"))
            return decision

    def _held_by(self, key: str, trace_id: str) -> dict | None:
        row = self.receipts.get(key)
        if row and row["status"] == "pending" and row["trace_id"] == trace_id:
            return row
        return None

    async def finalize(self, key: str, trace_id: str, outcome: SendOutcome) -> ReceiptStatus | None:
        status = ReceiptStatus.SENT if outcome.success_count > 0 else ReceiptStatus.FAILED
        row = self._held_by(key, trace_id)
        if row is None:
            return None
        row.update(
            status=status.value,
            success_count=outcome.success_count,
            failure_count=outcome.failure_count,
            last_error_code=outcome.error_code,
            updated_at=self._clock(),
        )
        self.transitions.append((key, status.value))
        return status

    async def mark_failed(self, key, trace_id, error_code, error_message):
        row = self._held_by(key, trace_id)
        if row is not None:
            row.update(status="failed", last_error_code=error_code, updated_at=self._clock())
            self.transitions.append((key, "failed"))


class FakeTransport:
    """Records sends; per-token results come from `errors` (token -> error code)."""

    def __init__(self):
        self.calls: list[tuple[list[str], PushPayload]] = []
        self.errors: dict[str, str] = {}
        self.raise_error: Exception | None = None
        self.delay = 0.0

    async def send(self, tokens, payload):
        self.calls.append((list(tokens), payload))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.raise_error is not None:
            raise self.raise_error
        results = []
        for i, token in enumerate(tokens):
            code = self.errors.get(token)
            if code:
                results.append(SendResult(success=False, error_code=code, error_message=code))
            else:
                results.append(SendResult(success=True, message_id=f"msg-{i}"))
        return results


class FakeClock:
    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now = self.now + timedelta(seconds=seconds)


@pytest.fixture
def clock():
    return FakeClock(datetime(2025, 6, 1, 12, 0, 5, tzinfo=timezone.utc))


@pytest.fixture
def user_repo():
    repo = InMemoryUserRepository()
    repo.profiles["U1"] = {}
    return repo


@pytest.fixture
def token_repo():
    repo = InMemoryTokenRepository()
    repo.add("U1", "token-aaaaaaaaaaaa-1", device_id="phone")
    repo.add("U1", "token-bbbbbbbbbbbb-2", device_id="tablet")
    return repo


@pytest.fixture
def ledger(clock):
    return InMemoryLedger(clock)


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def make_dispatcher(user_repo, token_repo, ledger, transport, clock):
    """Factory so tests can choose whether the advisory cache is present."""
    def _make(cache: DedupeCache | None = None) -> PushDispatcher:
        return PushDispatcher(
            preferences=PreferenceResolver(user_repo),
            registry=DeviceTokenRegistry(token_repo),
            ledger=ledger,
            transport=transport,
            janitor=TokenJanitor(token_repo),
            dedupe_cache=cache,
            deep_link_scheme="partiu",
            clock=clock,
        )
    return _make


@pytest.fixture
def dispatcher(make_dispatcher):
    return make_dispatcher()

