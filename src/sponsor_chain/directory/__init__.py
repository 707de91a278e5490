"""External agent directory adapters."""

from sponsor_chain.directory.base import (
    AccountLookup,
    AgentProfileLookup,
    AgentSummary,
    BillingCategory,
    BillingCategoryLookup,
    BranchLookup,
    Directory,
)
from sponsor_chain.directory.memory import InMemoryDirectory
from sponsor_chain.directory.rest import build_rest_directory

__all__ = [
    "AccountLookup",
    "AgentProfileLookup",
    "AgentSummary",
    "BillingCategory",
    "BillingCategoryLookup",
    "BranchLookup",
    "Directory",
    "InMemoryDirectory",
    "build_rest_directory",
]
