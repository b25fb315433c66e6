"""
Shared pytest fixtures — in-memory SQLite, fake storage/extraction, FastAPI TestClient.
"""
import itertools
import json
from datetime import datetime, timedelta, timezone

import jwt
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from grocery_receipts.config import Settings
from grocery_receipts.container import Services
from grocery_receipts.database import Base, get_db
from grocery_receipts.errors import UpstreamError
from grocery_receipts.lifecycle.controller import ReceiptLifecycle
from grocery_receipts.models import ReceiptModel  # noqa: F401  register models
from grocery_receipts.main import app
from grocery_receipts.services.auth import TokenVerifier
from grocery_receipts.services.extraction import parse_extraction_payload

TEST_SECRET = "test-secret"

# StaticPool ensures all connections share the same in-memory database
_ENGINE = create_engine(
    "sqlite:///:memory:",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
_Session = sessionmaker(autocommit=False, autoflush=False, bind=_ENGINE)


def receipt_json(store="Fresh Market", total="12.50", date="2024-03-05", items=None):
    """Extraction output in the shape the AI service returns."""
    if items is None:
        items = [{"name": "Milk", "code": "100", "size": "1L", "price": "2.50", "purchase_date": date}]
    return json.dumps({
        "store_name": store,
        "purchase_date": date,
        "total_amount": total,
        "total_items": len(items),
        "items": items,
    })


class FakeBlobStore:
    """Dict-backed blob store with switchable failures."""

    def __init__(self):
        self.blobs: dict[str, bytes] = {}
        self.content_types: dict[str, str] = {}
        self.fail_upload_for: set[str] = set()
        self.fail_copy_for: set[str] = set()

    def upload(self, key, data, content_type, metadata=None):
        if any(name in key for name in self.fail_upload_for):
            raise UpstreamError(f"Upload of {key} failed")
        self.blobs[key] = data
        self.content_types[key] = content_type

    def download(self, key):
        if key not in self.blobs:
            raise UpstreamError(f"Blob not found: {key}")
        return self.blobs[key]

    def exists(self, key):
        return key in self.blobs

    def copy(self, source_key, target_key):
        if source_key in self.fail_copy_for:
            raise UpstreamError(f"Copy {source_key} failed")
        self.blobs[target_key] = self.blobs[source_key]

    def delete(self, key):
        self.blobs.pop(key, None)

    def signed_url(self, key, expires_in):
        return f"https://storage.test/{key}?expires={int(expires_in.total_seconds())}"


class FakeExtractor:
    """Returns canned extraction output keyed by the blob bytes."""

    def __init__(self):
        self.outputs: dict[bytes, object] = {}
        self.default = receipt_json()
        self.calls: list[bytes] = []
        self.insight_calls: list[list[dict]] = []

    def extract(self, data, mime_type, filename="receipt"):
        self.calls.append(data)
        output = self.outputs.get(data, self.default)
        if isinstance(output, Exception):
            raise output
        return parse_extraction_payload(output)

    def generate_insights(self, receipts):
        self.insight_calls.append(receipts)
        return f"You shopped {len(receipts)} time(s)."


def make_token(user_id="user-1", email="user1@example.com", secret=TEST_SECRET, expires_in=3600):
    now = datetime.now(timezone.utc)
    payload = {"sub": user_id, "iat": now, "exp": now + timedelta(seconds=expires_in)}
    if email:
        payload["email"] = email
    return jwt.encode(payload, secret, algorithm="HS256")


def auth_headers(user_id="user-1", email="user1@example.com"):
    return {"Authorization": f"Bearer {make_token(user_id, email)}"}


@pytest.fixture(autouse=True)
def _reset_tables():
    Base.metadata.create_all(bind=_ENGINE)
    yield
    Base.metadata.drop_all(bind=_ENGINE)


@pytest.fixture()
def db():
    session = _Session()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def blob_store():
    return FakeBlobStore()


@pytest.fixture()
def extractor():
    return FakeExtractor()


@pytest.fixture()
def lifecycle(db, blob_store, extractor):
    ticks = itertools.count(1_700_000_000_000)
    return ReceiptLifecycle(db, blob_store, extractor, clock=lambda: next(ticks))


@pytest.fixture()
def services(blob_store, extractor):
    settings = Settings(
        SECRET_KEY=TEST_SECRET,
        GCS_BUCKET_NAME="test-bucket",
        LLM_API_KEY="test-key",
    )
    return Services(
        settings=settings,
        engine=_ENGINE,
        session_factory=_Session,
        blob_store=blob_store,
        extractor=extractor,
        token_verifier=TokenVerifier(TEST_SECRET),
    )


@pytest.fixture()
def client(db, services):
    def _override():
        try:
            yield db
        finally:
            pass

    app.state.services = services
    app.dependency_overrides[get_db] = _override
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()
    app.state.services = None
