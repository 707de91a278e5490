"""In-memory directory for local development and testing.

Replace with the REST directory when the back-office API is reachable.
"""

from __future__ import annotations

from collections.abc import Iterable

from sponsor_chain.directory.base import AgentSummary, BillingCategory, Directory


class InMemoryAgents:
    """Agent profiles held in a dict."""

    def __init__(self, agents: Iterable[AgentSummary] = ()):
        self._agents: dict[str, AgentSummary] = {a.agent_id: a for a in agents}

    def add(
        self,
        agent_id: str,
        display_name: str | None = None,
        code: str | None = None,
        cadre: str | None = None,
    ) -> AgentSummary:
        summary = AgentSummary(
            agent_id=agent_id,
            code=code or agent_id,
            display_name=display_name or f"Agent {agent_id}",
            cadre=cadre,
        )
        self._agents[agent_id] = summary
        return summary

    async def exists(self, agent_id: str) -> bool:
        return agent_id in self._agents

    async def summary(self, agent_id: str) -> AgentSummary | None:
        return self._agents.get(agent_id)


class InMemoryIds:
    """Existence-only lookup over a set of ids (branches, accounts)."""

    def __init__(self, ids: Iterable[str] = ()):
        self._ids = set(ids)

    def add(self, *ids: str) -> None:
        self._ids.update(ids)

    async def exists(self, entity_id: str) -> bool:
        return entity_id in self._ids


class InMemoryBillingCategories:
    def __init__(self, categories: Iterable[BillingCategory] = ()):
        self._categories = {c.category_id: c for c in categories}

    def add(self, category_id: str, name: str, purposes: Iterable[str] = ()) -> BillingCategory:
        category = BillingCategory(category_id, name, tuple(purposes))
        self._categories[category_id] = category
        return category

    async def get(self, category_id: str) -> BillingCategory | None:
        return self._categories.get(category_id)


class InMemoryDirectory(Directory):
    """Directory whose lookups are all in-memory and mutable."""

    agents: InMemoryAgents
    branches: InMemoryIds
    accounts: InMemoryIds
    billing_categories: InMemoryBillingCategories

    def __init__(self) -> None:
        super().__init__(
            agents=InMemoryAgents(),
            branches=InMemoryIds(),
            accounts=InMemoryIds(),
            billing_categories=InMemoryBillingCategories(),
        )
