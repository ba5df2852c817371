"""
Pytest configuration and fixtures for backend tests.
"""

from datetime import datetime, timezone

import pytest
from pydantic import BaseModel, Field
from sqlalchemy import Column, DateTime, Integer, MetaData, String, Table, create_engine
from sqlalchemy.pool import StaticPool

from records_api.services.crud import (
    CRUDOptions,
    InMemoryIdempotencyStore,
    SqlAlchemyRecordStorage,
    StaticIdentityProvider,
    create_crud_operations,
)


# SQLite in-memory database for testing
SQLALCHEMY_DATABASE_URL = "sqlite:///:memory:"

engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

OWNER_A = "11111111-1111-1111-1111-111111111111"
OWNER_B = "22222222-2222-2222-2222-222222222222"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


metadata = MetaData()

contacts_table = Table(
    "contacts",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("owner_id", String(36), nullable=False),
    Column("name", String(200), nullable=False),
    Column("email", String(200), nullable=True),
    Column("company_id", String(36), nullable=True),
    Column("status", String(20), nullable=False, default="active"),
    Column("archived_at", DateTime(timezone=True), nullable=True),
    Column("created_at", DateTime(timezone=True), nullable=False, default=_utcnow),
)

# Hard-delete collection with a custom owner column
notes_table = Table(
    "notes",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("author_id", String(36), nullable=False),
    Column("title", String(200), nullable=False),
    Column("created_at", DateTime(timezone=True), nullable=False, default=_utcnow),
)

profiles_table = Table(
    "profiles",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("auth_user_id", String(36), nullable=False, unique=True),
)

counters_table = Table(
    "counters",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("owner_id", String(36), nullable=False),
    Column("value", Integer, nullable=False),
)


class ContactCreate(BaseModel):
    name: str = Field(min_length=1)
    email: str | None = None
    company_id: str | None = None
    owner_id: str


class ContactUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1)
    email: str | None = None
    company_id: str | None = None


class NoteCreate(BaseModel):
    title: str = Field(min_length=1)
    author_id: str


class NoteUpdate(BaseModel):
    title: str | None = Field(default=None, min_length=1)


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture(scope="function")
def storage():
    """
    Fresh record storage for each test.
    Uses SQLite in-memory for isolation.
    """
    metadata.create_all(bind=engine)
    try:
        yield SqlAlchemyRecordStorage(engine, metadata, reflect=False)
    finally:
        metadata.drop_all(bind=engine)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def idempotency_store(clock):
    return InMemoryIdempotencyStore(ttl_seconds=300, clock=clock)


@pytest.fixture
def revalidated():
    """Paths received by the revalidation notifier."""
    return []


@pytest.fixture
def make_contacts(storage, idempotency_store, revalidated):
    """Build a contacts operation set for a given owner and options."""

    class RecordingNotifier:
        def notify(self, paths):
            revalidated.append(list(paths))

    def factory(user_id: str | None = OWNER_A, **option_overrides):
        return create_crud_operations(
            "contacts",
            ContactCreate,
            ContactUpdate,
            storage=storage,
            identity=StaticIdentityProvider(user_id),
            options=CRUDOptions(**option_overrides),
            idempotency_store=idempotency_store,
            revalidator=RecordingNotifier(),
            development_mode=False,
        )

    return factory


@pytest.fixture
def contacts(make_contacts):
    """Contacts operations for OWNER_A with default options."""
    return make_contacts()


@pytest.fixture
def notes(storage):
    """Hard-delete notes operations for OWNER_A (owner column author_id)."""
    return create_crud_operations(
        "notes",
        NoteCreate,
        NoteUpdate,
        storage=storage,
        identity=StaticIdentityProvider(OWNER_A),
        options=CRUDOptions(owner_id_column="author_id", has_soft_delete=False),
        development_mode=False,
    )
