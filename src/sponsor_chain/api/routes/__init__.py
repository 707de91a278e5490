"""API route modules."""

from sponsor_chain.api.routes.approvals import router as approvals_router
from sponsor_chain.api.routes.health import router as health_router
from sponsor_chain.api.routes.hierarchy import router as hierarchy_router

__all__ = ["approvals_router", "health_router", "hierarchy_router"]
