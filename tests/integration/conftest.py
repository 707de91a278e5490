"""API test fixtures: the FastAPI app over an in-memory directory."""

from collections.abc import AsyncGenerator

import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from sponsor_chain.api.app import create_app
from sponsor_chain.services import WorkflowService


@pytest_asyncio.fixture
async def client(workflow: WorkflowService) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client bound to an app wired with the test workflow."""
    app = create_app(workflow=workflow, session_factory=workflow.session_factory)
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
