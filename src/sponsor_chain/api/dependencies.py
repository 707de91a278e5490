"""FastAPI dependencies for dependency injection."""

from collections.abc import AsyncGenerator
from typing import Annotated

from fastapi import Depends, Header, Request
from sqlalchemy.ext.asyncio import AsyncSession

from sponsor_chain.services import WorkflowService


async def get_db_session(request: Request) -> AsyncGenerator[AsyncSession, None]:
    """Get database session dependency."""
    async with request.app.state.session_factory() as session:
        try:
            yield session
        finally:
            await session.close()


def get_workflow(request: Request) -> WorkflowService:
    """The application's workflow service."""
    return request.app.state.workflow


async def get_actor_id(
    x_actor_id: Annotated[str | None, Header()] = None
) -> str | None:
    """Optional acting user, forwarded by the surrounding API gateway."""
    if x_actor_id is None:
        return None
    return x_actor_id.strip() or None


# Type aliases for cleaner dependency injection
DbSession = Annotated[AsyncSession, Depends(get_db_session)]
Workflow = Annotated[WorkflowService, Depends(get_workflow)]
ActorId = Annotated[str | None, Depends(get_actor_id)]
