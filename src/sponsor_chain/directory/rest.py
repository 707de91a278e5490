"""Directory adapter backed by the back-office REST API.

Resources are plain JSON endpoints:

    GET /profiles/{id}            -> {"id", "agent_code", "fullname", "surname", "cc"}
    GET /branches/{id}            -> {"id", ...}
    GET /accounts/{id}            -> {"id", ...}
    GET /billing-categories/{id}  -> {"id", "name", "purpose": str | [str]}

Ids are sent as a single percent-encoded path segment. A 404, or a record
whose ``id`` differs from the one requested, means "does not exist". Any
other error status or transport failure raises DirectoryUnavailable.
"""

from __future__ import annotations

from typing import Any
from urllib.parse import quote

import httpx

from sponsor_chain.directory.base import AgentSummary, BillingCategory, Directory
from sponsor_chain.errors import DirectoryUnavailable

# Segments a server or proxy would resolve instead of treating as an id
_DOT_SEGMENTS = frozenset({".", ".."})


class RestResource:
    """GET-by-id access to one REST collection."""

    def __init__(self, client: httpx.AsyncClient, collection: str):
        self.client = client
        self.collection = collection.strip("/")

    def path_for(self, entity_id: str) -> str | None:
        """Request path for ``entity_id``, or None if it cannot name a record."""
        raw = str(entity_id)
        if not raw.strip() or raw in _DOT_SEGMENTS:
            return None
        return f"/{self.collection}/{quote(raw, safe='')}"

    async def fetch(self, entity_id: str) -> dict[str, Any] | None:
        path = self.path_for(entity_id)
        if path is None:
            return None
        try:
            response = await self.client.get(path)
            if response.status_code == httpx.codes.NOT_FOUND:
                return None
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPError as exc:
            raise DirectoryUnavailable(self.collection, entity_id, str(exc)) from exc
        except ValueError as exc:
            raise DirectoryUnavailable(
                self.collection, entity_id, "response is not JSON"
            ) from exc
        if not isinstance(data, dict):
            raise DirectoryUnavailable(
                self.collection, entity_id, "response is not a JSON object"
            )
        if "id" in data and str(data["id"]) != str(entity_id):
            return None
        return data

    async def exists(self, entity_id: str) -> bool:
        return await self.fetch(entity_id) is not None


class RestAgents(RestResource):
    def __init__(self, client: httpx.AsyncClient):
        super().__init__(client, "profiles")

    async def summary(self, agent_id: str) -> AgentSummary | None:
        data = await self.fetch(agent_id)
        if data is None:
            return None
        name = " ".join(
            part for part in (data.get("fullname"), data.get("surname")) if part
        )
        return AgentSummary(
            agent_id=str(agent_id),
            code=str(data.get("agent_code") or agent_id),
            display_name=name or str(agent_id),
            cadre=data.get("cc") or data.get("level"),
        )


class RestBillingCategories(RestResource):
    def __init__(self, client: httpx.AsyncClient):
        super().__init__(client, "billing-categories")

    async def get(self, category_id: str) -> BillingCategory | None:
        data = await self.fetch(category_id)
        if data is None:
            return None
        raw = data.get("purpose") or data.get("purposes") or []
        purposes = (raw,) if isinstance(raw, str) else tuple(raw)
        return BillingCategory(
            category_id=str(category_id),
            name=str(data.get("name", "")),
            purposes=purposes,
        )


def build_rest_directory(
    base_url: str,
    timeout_seconds: float = 10.0,
    headers: dict[str, str] | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> tuple[Directory, httpx.AsyncClient]:
    """Create a REST-backed directory and the client it owns.

    The caller closes the client (``await client.aclose()``) on shutdown.
    """
    client = httpx.AsyncClient(
        base_url=base_url,
        timeout=timeout_seconds,
        headers={"Accept": "application/json", **(headers or {})},
        transport=transport,
    )
    directory = Directory(
        agents=RestAgents(client),
        branches=RestResource(client, "branches"),
        accounts=RestResource(client, "accounts"),
        billing_categories=RestBillingCategories(client),
    )
    return directory, client
