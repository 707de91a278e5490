"""Protocols for the external agent directory.

Agent profiles, branches, accounts and billing categories are owned by the
surrounding back-office. The workflow only asks whether they exist and, for
display, how an agent is labelled.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Protocol


@dataclass(frozen=True)
class AgentSummary:
    """Display data for an agent profile."""

    agent_id: str
    code: str
    display_name: str
    cadre: str | None = None


@dataclass(frozen=True)
class BillingCategory:
    """A billing category and the fee purposes it allows."""

    category_id: str
    name: str
    purposes: tuple[str, ...] = field(default_factory=tuple)


class AgentProfileLookup(Protocol):
    """Existence and display lookups for agent profiles."""

    async def exists(self, agent_id: str) -> bool:
        ...

    async def summary(self, agent_id: str) -> AgentSummary | None:
        ...


class BranchLookup(Protocol):
    async def exists(self, branch_id: str) -> bool:
        ...


class AccountLookup(Protocol):
    async def exists(self, account_id: str) -> bool:
        ...


class BillingCategoryLookup(Protocol):
    async def get(self, category_id: str) -> BillingCategory | None:
        ...


@dataclass(frozen=True)
class Directory:
    """Bundle of the four lookups the workflow needs."""

    agents: AgentProfileLookup
    branches: BranchLookup
    accounts: AccountLookup
    billing_categories: BillingCategoryLookup
