"""Pytest fixtures for sponsor chain tests."""

from __future__ import annotations

from collections.abc import AsyncGenerator
from decimal import Decimal

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from sponsor_chain.calculators import CadreCatalog, FeeRuleEngine, FeeSchedule
from sponsor_chain.database import build_session_factory, create_schema, get_engine
from sponsor_chain.directory import InMemoryDirectory
from sponsor_chain.services import WorkflowService

# Agents known to the test directory
AGENT_A42 = "A42"
AGENT_A17 = "A17"
AGENT_A18 = "A18"
AGENT_A19 = "A19"
APPROVER = "7"

BRANCH_ID = "B1"
ACCOUNT_ID = "ACC1"
CATEGORY_ID = "CAT1"


@pytest_asyncio.fixture
async def engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    """File-backed SQLite so every session gets its own connection."""
    engine = get_engine(f"sqlite+aiosqlite:///{tmp_path / 'sponsor_chain.db'}")
    await create_schema(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return build_session_factory(engine)


@pytest_asyncio.fixture
async def session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    """Database session for store-level tests."""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def catalog() -> CadreCatalog:
    return CadreCatalog.default()


@pytest.fixture
def fee_engine(catalog: CadreCatalog) -> FeeRuleEngine:
    return FeeRuleEngine(catalog, FeeSchedule(Decimal("250"), Decimal("500")))


@pytest.fixture
def directory() -> InMemoryDirectory:
    directory = InMemoryDirectory()
    directory.agents.add(AGENT_A42, display_name="Ada Obi", code="AG-042", cadre="APM")
    directory.agents.add(AGENT_A17, display_name="Bola Ade", code="AG-017", cadre="PM")
    directory.agents.add(AGENT_A18, display_name="Chidi Eze", code="AG-018", cadre="SPM")
    directory.agents.add(AGENT_A19, display_name="Dayo Musa", code="AG-019", cadre="DO")
    directory.agents.add(APPROVER, display_name="Back Office", code="BO-007")
    directory.branches.add(BRANCH_ID, "B2")
    directory.accounts.add(ACCOUNT_ID, "ACC2")
    directory.billing_categories.add(
        CATEGORY_ID, "Registration", ["Joining Fee", "Promotion Fee"]
    )
    directory.billing_categories.add("CAT2", "Training", ["Workshop"])
    return directory


@pytest.fixture
def workflow(
    session_factory: async_sessionmaker[AsyncSession],
    directory: InMemoryDirectory,
    fee_engine: FeeRuleEngine,
) -> WorkflowService:
    return WorkflowService(
        session_factory,
        directory,
        fee_engine,
        retry_attempts=3,
        retry_base_delay=0,
    )


@pytest.fixture
def submit_joining(workflow: WorkflowService):
    """Submit a Joining Fee approval with default references."""

    async def _submit(agent_id: str = AGENT_A42, level: str = "APM", **kwargs):
        return await workflow.submit(
            agent_id=agent_id,
            purpose="Joining Fee",
            branch_id=BRANCH_ID,
            account_id=ACCOUNT_ID,
            joining_level=level,
            **kwargs,
        )

    return _submit


@pytest.fixture
def pay_for(workflow: WorkflowService, submit_joining):
    """Drive a fresh approval for an agent all the way to paid."""

    async def _pay(agent_id: str = AGENT_A42):
        approval = await submit_joining(agent_id)
        await workflow.approve(approval.approval_id, APPROVER)
        return await workflow.mark_paid(approval.approval_id)

    return _pay
