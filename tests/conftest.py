"""
Pytest configuration and fixtures for testing.

The Supabase client is replaced by an in-memory fake that understands the
small slice of the PostgREST query builder the app uses.
"""
import operator
import uuid
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import httpx
import pytest
from fastapi.testclient import TestClient
from postgrest.exceptions import APIError

from app.core.config import settings
from app.integrations.lemonsqueezy import CheckoutSession, get_lemonsqueezy_client
from app.integrations.supabase_connect import get_supabase_client
from app.services.upload_tracker import UploadStatusTracker, get_upload_tracker
from main import app

UNIQUE_KEYS = {
    "users": ("id",),
    "subscriptions": ("id", "lemonsqueezy_subscription_id"),
}

WEBHOOK_SECRET = "test-webhook-secret"


class FakeQuery:
    def __init__(self, db, table):
        self.db = db
        self.table = table
        self.op = "select"
        self.values = None
        self.filters = []
        self._order = None
        self._limit = None

    def select(self, *columns):
        self.op = "select"
        return self

    def insert(self, values):
        self.op = "insert"
        self.values = values
        return self

    def update(self, values):
        self.op = "update"
        self.values = values
        return self

    def delete(self):
        self.op = "delete"
        return self

    def eq(self, column, value):
        self.filters.append((column, operator.eq, value))
        return self

    def gt(self, column, value):
        self.filters.append((column, operator.gt, value))
        return self

    def lt(self, column, value):
        self.filters.append((column, operator.lt, value))
        return self

    def order(self, column, desc=False):
        self._order = (column, desc)
        return self

    def limit(self, count):
        self._limit = count
        return self

    def _matches(self, row):
        for column, compare, value in self.filters:
            current = row.get(column)
            if compare is not operator.eq and current is None:
                return False
            if not compare(current, value):
                return False
        return True

    def execute(self):
        if self.db.unreachable:
            raise httpx.ConnectError("connection refused")

        hook = self.db.hooks.get((self.table, self.op))
        if hook:
            hook()

        rows = self.db.tables.setdefault(self.table, [])

        if self.op == "insert":
            row = dict(self.values)
            row.setdefault("id", str(uuid.uuid4()))
            for key in UNIQUE_KEYS.get(self.table, ()):
                if any(existing.get(key) == row.get(key) for existing in rows):
                    raise APIError({
                        "code": "23505",
                        "message": f"duplicate key value violates unique constraint on {key}",
                        "details": None,
                        "hint": None,
                    })
            rows.append(row)
            return SimpleNamespace(data=[dict(row)])

        matched = [row for row in rows if self._matches(row)]

        if self.op == "delete":
            self.db.tables[self.table] = [row for row in rows if not self._matches(row)]
            return SimpleNamespace(data=[dict(row) for row in matched])

        if self.op == "update":
            for row in matched:
                row.update(self.values)
            return SimpleNamespace(data=[dict(row) for row in matched])

        if self._order:
            column, desc = self._order
            matched = sorted(matched, key=lambda row: row.get(column) or "", reverse=desc)
        if self._limit is not None:
            matched = matched[: self._limit]
        return SimpleNamespace(data=[dict(row) for row in matched])


class FakeAuth:
    def __init__(self):
        self.tokens = {}

    def get_user(self, jwt):
        return SimpleNamespace(user=self.tokens.get(jwt))


class FakeBucket:
    def __init__(self, storage, name):
        self.storage = storage
        self.name = name

    def upload(self, path, file, file_options=None):
        if self.storage.fail:
            raise RuntimeError("storage is down")
        self.storage.objects[(self.name, path)] = file
        self.storage.options[(self.name, path)] = file_options
        return SimpleNamespace(path=path)

    def create_signed_url(self, path, expires_in):
        url = f"https://storage.example/{self.name}/{path}?token=signed&expires={expires_in}"
        return {"signedURL": url, "signedUrl": url}

    def remove(self, paths):
        if self.storage.fail:
            raise RuntimeError("storage is down")
        for path in paths:
            self.storage.objects.pop((self.name, path), None)
        return [{"name": path} for path in paths]


class FakeStorage:
    def __init__(self):
        self.objects = {}
        self.options = {}
        self.fail = False

    def from_(self, bucket):
        return FakeBucket(self, bucket)


class FakeSupabase:
    def __init__(self):
        self.tables = {"users": [], "subscriptions": [], "user_files": []}
        self.hooks = {}
        self.unreachable = False
        self.auth = FakeAuth()
        self.storage = FakeStorage()

    def table(self, name):
        return FakeQuery(self, name)

    from_ = table

    def rows(self, table):
        return self.tables[table]

    def user_row(self, user_id):
        return next((row for row in self.tables["users"] if row["id"] == user_id), None)

    def add_user(self, user_id, plan="free", conversion_count=0, last_reset=None, email=None):
        last_reset = last_reset or datetime.now(timezone.utc)
        row = {
            "id": user_id,
            "email": email or f"{user_id}@example.com",
            "plan": plan,
            "conversion_count": conversion_count,
            "last_reset": last_reset.isoformat(),
        }
        self.tables["users"].append(row)
        return row

    def add_user_file(self, user_id, file_name="a.png", status="ready", expires_in=timedelta(hours=24), **fields):
        now = datetime.now(timezone.utc)
        row = {
            "id": str(uuid.uuid4()),
            "user_id": user_id,
            "file_name": file_name,
            "file_path": f"{user_id}/{file_name}",
            "content_type": "image/png",
            "file_size": 3,
            "status": status,
            "expires_at": (now + expires_in).isoformat(),
            "created_at": now.isoformat(),
            **fields,
        }
        self.tables["user_files"].append(row)
        self.storage.objects[(settings.SUPABASE_UPLOAD_BUCKET_NAME, row["file_path"])] = b"abc"
        return row

    def add_token(self, token, user_id, email=None, full_name=None):
        self.auth.tokens[token] = SimpleNamespace(
            id=user_id,
            email=email or f"{user_id}@example.com",
            user_metadata={"full_name": full_name} if full_name else {},
        )


class FakeLemonSqueezy:
    def __init__(self):
        self.calls = []
        self.error = None

    async def create_checkout(self, variant_id, user_id, email=None, redirect_url=None):
        self.calls.append({"variant_id": variant_id, "user_id": user_id, "email": email, "redirect_url": redirect_url})
        if self.error:
            raise self.error
        return CheckoutSession(checkout_id="chk_123", url="https://convertor.lemonsqueezy.com/checkout/chk_123")


def days_ago(days):
    return datetime.now(timezone.utc) - timedelta(days=days)


@pytest.fixture
def fake_supabase():
    return FakeSupabase()


@pytest.fixture
def tracker():
    return UploadStatusTracker(ttl_seconds=3600, max_entries=100)


@pytest.fixture
def fake_lemonsqueezy():
    return FakeLemonSqueezy()


@pytest.fixture
def client(fake_supabase, tracker, fake_lemonsqueezy):
    """
    TestClient wired to the fakes through dependency overrides.
    The lifespan is not run, so no real Supabase connection is attempted.
    """
    app.dependency_overrides[get_supabase_client] = lambda: fake_supabase
    app.dependency_overrides[get_upload_tracker] = lambda: tracker
    app.dependency_overrides[get_lemonsqueezy_client] = lambda: fake_lemonsqueezy

    yield TestClient(app, raise_server_exceptions=False)

    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers(fake_supabase):
    fake_supabase.add_token("token-u1", "u1", email="u1@example.com", full_name="User One")
    return {"Authorization": "Bearer token-u1"}


@pytest.fixture
def webhook_secret(monkeypatch):
    monkeypatch.setattr(settings, "LEMON_SQUEEZY_WEBHOOK_SECRET", WEBHOOK_SECRET)
    return WEBHOOK_SECRET
