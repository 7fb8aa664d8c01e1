"""Shared test fixtures for opportunity-workflows test suite."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

import pytest
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from opportunity_workflows.config import Collaborators, EngineSettings
from opportunity_workflows.core.models import (
    AddressRecord,
    ContactRecord,
    OpportunityRecord,
    SubmissionArtifact,
    UserRecord,
)
from opportunity_workflows.db.engine import OpportunityWorkflowEngine
from opportunity_workflows.db.models import ProgressModel

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Mapping, Sequence
    from pathlib import Path

    from opportunity_workflows.core.types import ArchiveBucket, Outcome


ALICE = UserRecord(id="user-alice", external_id="ext-alice", email="alice@example.com", name="Alice")
BOB = UserRecord(id="user-bob", external_id="ext-bob", email="bob@example.com", name="Bob")
SYSTEM = UserRecord(id="user-system", name="System")


# =============================================================================
# Fake collaborators
# =============================================================================


class FakeUserDirectory:
    """In-memory user directory keyed by external id."""

    def __init__(self, users: Sequence[UserRecord] = (ALICE, BOB), extra: Sequence[UserRecord] = (SYSTEM,)) -> None:
        self.by_external = {u.external_id: u for u in users if u.external_id}
        self.by_id = {u.id: u for u in (*users, *extra)}
        self.fail_get_user = False

    async def resolve_user(self, external_id: str) -> UserRecord | None:
        return self.by_external.get(external_id)

    async def get_user(self, user_id: str) -> UserRecord | None:
        if self.fail_get_user:
            raise RuntimeError("user directory unavailable")
        return self.by_id.get(user_id)


class FakeCRM:
    """CRM client recording fetches and stage transitions."""

    def __init__(self) -> None:
        self.records: dict[str, OpportunityRecord] = {}
        self.fetch_calls: list[str] = []
        self.transitions: list[tuple[str, str]] = []
        self.fail_fetch = False
        self.fail_transition = False

    async def fetch_opportunity(self, opportunity_id: str) -> OpportunityRecord | None:
        self.fetch_calls.append(opportunity_id)
        if self.fail_fetch:
            raise ConnectionError("CRM unreachable")
        return self.records.get(opportunity_id)

    async def transition_stage(self, opportunity_id: str, target_stage: str) -> None:
        if self.fail_transition:
            raise ConnectionError("CRM unreachable")
        self.transitions.append((opportunity_id, target_stage))


@dataclass
class ArchiveCall:
    opportunity_id: str
    customer_name: str
    bucket: ArchiveBucket
    file_refs: dict[str, Any]
    postcode: str | None
    include_survey_images: bool


class FakeArchive:
    """Document archive recording every copy request."""

    def __init__(self) -> None:
        self.calls: list[ArchiveCall] = []
        self.fail = False

    async def copy_documents(
        self,
        opportunity_id: str,
        customer_name: str,
        bucket: ArchiveBucket,
        file_refs: Mapping[str, Any],
        *,
        postcode: str | None = None,
        include_survey_images: bool = False,
    ) -> None:
        if self.fail:
            raise OSError("archive volume not mounted")
        self.calls.append(
            ArchiveCall(opportunity_id, customer_name, bucket, dict(file_refs), postcode, include_survey_images)
        )


class FakeSignatures:
    def __init__(self) -> None:
        self.submissions: dict[str, list[SubmissionArtifact]] = {}
        self.fail = False

    async def fetch_completed_submissions(self, opportunity_id: str) -> list[SubmissionArtifact]:
        if self.fail:
            raise TimeoutError("signature service timed out")
        return self.submissions.get(opportunity_id, [])


@dataclass
class OutcomeCall:
    opportunity_id: str
    user_id: str
    outcome: Outcome
    value: float
    notes: str
    stage_at_outcome: str | None


class FakeOutcomes:
    def __init__(self) -> None:
        self.calls: list[OutcomeCall] = []
        self.fail = False

    async def record_outcome(
        self,
        opportunity_id: str,
        user_id: str,
        outcome: Outcome,
        value: float,
        notes: str,
        *,
        stage_at_outcome: str | None = None,
    ) -> None:
        if self.fail:
            raise RuntimeError("outcome store rejected the write")
        self.calls.append(OutcomeCall(opportunity_id, user_id, outcome, value, notes, stage_at_outcome))


class FakeSurveys:
    def __init__(self) -> None:
        self.statuses: dict[str, str] = {}
        self.documents: dict[str, dict[str, Any]] = {}
        self.fail = False

    async def get_status(self, opportunity_id: str) -> str | None:
        if self.fail:
            raise RuntimeError("survey store unavailable")
        return self.statuses.get(opportunity_id)

    async def get_many(self, opportunity_ids: Sequence[str]) -> dict[str, dict[str, Any]]:
        if self.fail:
            raise RuntimeError("survey store unavailable")
        return {i: self.documents[i] for i in opportunity_ids if i in self.documents}


class FakeCalculators:
    def __init__(self) -> None:
        self.documents: dict[str, dict[str, Any]] = {}
        self.fail = False

    async def get_many(self, opportunity_ids: Sequence[str]) -> dict[str, dict[str, Any]]:
        if self.fail:
            raise RuntimeError("calculator store unavailable")
        return {i: self.documents[i] for i in opportunity_ids if i in self.documents}


@dataclass
class RecordingEventBus:
    events: list[tuple[str, dict[str, Any]]] = field(default_factory=list)
    fail_on: set[str] = field(default_factory=set)

    async def emit(self, event: str, **payload: Any) -> None:
        self.events.append((event, payload))
        if event in self.fail_on:
            raise ConnectionError("broker down")

    @property
    def names(self) -> list[str]:
        return [name for name, _ in self.events]


def build_opportunity(
    opportunity_id: str = "opp-1",
    *,
    first_name: str | None = "Lisa",
    last_name: str | None = "Jones",
    postcode: str | None = "N12 9JA",
    **kwargs: Any,
) -> OpportunityRecord:
    """Build a CRM opportunity with a single-address contact."""
    return OpportunityRecord(
        id=opportunity_id,
        name=kwargs.pop("name", None),
        monetary_value=kwargs.pop("monetary_value", 12500.0),
        stage_name=kwargs.pop("stage_name", "Proposal Sent"),
        contact=ContactRecord(
            first_name=first_name,
            last_name=last_name,
            email=kwargs.pop("email", "lisa@example.com"),
            phone=kwargs.pop("phone", "+44 7700 900123"),
            addresses=[AddressRecord(address1="1 High Street", city="London", postal_code=postcode)],
            **kwargs,
        ),
    )


# =============================================================================
# Collaborator fixtures
# =============================================================================


@pytest.fixture
def users() -> FakeUserDirectory:
    return FakeUserDirectory()


@pytest.fixture
def crm() -> FakeCRM:
    return FakeCRM()


@pytest.fixture
def archive() -> FakeArchive:
    return FakeArchive()


@pytest.fixture
def signatures() -> FakeSignatures:
    return FakeSignatures()


@pytest.fixture
def outcomes() -> FakeOutcomes:
    return FakeOutcomes()


@pytest.fixture
def surveys() -> FakeSurveys:
    return FakeSurveys()


@pytest.fixture
def calculators() -> FakeCalculators:
    return FakeCalculators()


@pytest.fixture
def event_bus() -> RecordingEventBus:
    return RecordingEventBus()


@pytest.fixture
def collaborators(
    users: FakeUserDirectory,
    crm: FakeCRM,
    archive: FakeArchive,
    signatures: FakeSignatures,
    outcomes: FakeOutcomes,
    surveys: FakeSurveys,
    calculators: FakeCalculators,
    event_bus: RecordingEventBus,
) -> Collaborators:
    """Every collaborator wired to a recording fake."""
    return Collaborators(
        users=users,
        crm=crm,
        archive=archive,
        signatures=signatures,
        outcomes=outcomes,
        surveys=surveys,
        calculators=calculators,
        event_bus=event_bus,
    )


@pytest.fixture
def working_dir(tmp_path: Path) -> Path:
    """Directory holding generated presentation exports."""
    output = tmp_path / "presentations"
    output.mkdir()
    return output


@pytest.fixture
def settings(working_dir: Path) -> EngineSettings:
    return EngineSettings(working_output_dir=working_dir)


# =============================================================================
# Database fixtures
# =============================================================================


@pytest.fixture
async def async_engine():
    """Create an async SQLite in-memory engine for testing."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        echo=False,
        poolclass=StaticPool,
    )

    # Enable foreign keys for SQLite
    @event.listens_for(engine.sync_engine, "connect")
    def set_sqlite_pragma(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    # Create all tables
    async with engine.begin() as conn:
        await conn.run_sync(ProgressModel.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_maker(async_engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind=async_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


@pytest.fixture
async def async_session(session_maker: async_sessionmaker[AsyncSession]) -> AsyncIterator[AsyncSession]:
    """Create an async session for testing."""
    async with session_maker() as session:
        yield session
        await session.rollback()


@pytest.fixture
async def file_session_maker(tmp_path: Path) -> AsyncIterator[async_sessionmaker[AsyncSession]]:
    """Session factory over a file database so that sessions get separate connections."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'workflows.db'}", echo=False)

    @event.listens_for(engine.sync_engine, "connect")
    def set_sqlite_pragma(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    async with engine.begin() as conn:
        await conn.run_sync(ProgressModel.metadata.create_all)

    yield async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


@pytest.fixture
def workflow_engine(
    async_session: AsyncSession,
    collaborators: Collaborators,
    settings: EngineSettings,
) -> OpportunityWorkflowEngine:
    """Engine over the default twelve-step workflow with every collaborator faked."""
    return OpportunityWorkflowEngine(async_session, collaborators, settings=settings)


@pytest.fixture
def make_opportunity():
    """Factory for CRM opportunities, see :func:`build_opportunity`."""
    return build_opportunity
