"""Tests for the agent directory adapters."""

from urllib.parse import unquote

import httpx
import pytest

from sponsor_chain.directory import InMemoryDirectory, build_rest_directory
from sponsor_chain.errors import DirectoryUnavailable

pytestmark = pytest.mark.asyncio


PROFILES = {
    "A42": {"id": "A42", "agent_code": "AG-042", "fullname": "Ada", "surname": "Obi", "cc": "APM"},
    "A17": {"id": "A17", "agent_code": "AG-017", "fullname": "Bola"},
}
CATEGORIES = {
    "CAT1": {"id": "CAT1", "name": "Registration", "purpose": "Joining Fee"},
    "CAT2": {"id": "CAT2", "name": "Mixed", "purposes": ["Joining Fee", "Promotion Fee"]},
}


REQUESTED_PATHS: list[str] = []


def handler(request: httpx.Request) -> httpx.Response:
    raw_path = request.url.raw_path.decode("ascii").split("?", 1)[0]
    REQUESTED_PATHS.append(raw_path)
    parts = raw_path.split("/")
    if len(parts) != 3:
        return httpx.Response(404, json={"detail": "not found"})
    _, collection, entity_id = parts
    entity_id = unquote(entity_id)
    if collection == "profiles" and entity_id in PROFILES:
        return httpx.Response(200, json=PROFILES[entity_id])
    if collection == "profiles" and entity_id == "alias":
        return httpx.Response(200, json=PROFILES["A42"])
    if collection == "billing-categories" and entity_id in CATEGORIES:
        return httpx.Response(200, json=CATEGORIES[entity_id])
    if collection == "branches" and entity_id == "B1":
        return httpx.Response(200, json={"id": "B1"})
    if collection == "branches" and entity_id == "B1/../B1":
        return httpx.Response(200, json={"id": "B1/../B1"})
    if collection == "accounts" and entity_id == "broken":
        return httpx.Response(500, json={"detail": "boom"})
    if collection == "accounts" and entity_id == "down":
        raise httpx.ConnectError("connection refused", request=request)
    if collection == "accounts" and entity_id == "garbled":
        return httpx.Response(200, content=b"<html>maintenance</html>")
    return httpx.Response(404, json={"detail": "not found"})


@pytest.fixture
async def rest_directory():
    directory, client = build_rest_directory(
        "http://backoffice.test",
        transport=httpx.MockTransport(handler),
    )
    yield directory
    await client.aclose()


class TestRestDirectory:
    """Test the REST-backed directory."""

    async def test_agent_exists(self, rest_directory):
        assert await rest_directory.agents.exists("A42") is True
        assert await rest_directory.agents.exists("A99") is False

    async def test_agent_summary(self, rest_directory):
        summary = await rest_directory.agents.summary("A42")
        assert summary.code == "AG-042"
        assert summary.display_name == "Ada Obi"
        assert summary.cadre == "APM"

    async def test_agent_summary_partial_name(self, rest_directory):
        summary = await rest_directory.agents.summary("A17")
        assert summary.display_name == "Bola"

    async def test_missing_summary(self, rest_directory):
        assert await rest_directory.agents.summary("A99") is None

    async def test_branch_lookup(self, rest_directory):
        assert await rest_directory.branches.exists("B1") is True
        assert await rest_directory.branches.exists("B9") is False

    async def test_server_error_raises_unavailable(self, rest_directory):
        with pytest.raises(DirectoryUnavailable) as exc_info:
            await rest_directory.accounts.exists("broken")
        assert exc_info.value.code == "DIRECTORY_UNAVAILABLE"
        assert exc_info.value.context == {"resource": "accounts", "entity_id": "broken"}
        assert isinstance(exc_info.value.__cause__, httpx.HTTPStatusError)

    async def test_transport_error_raises_unavailable(self, rest_directory):
        with pytest.raises(DirectoryUnavailable):
            await rest_directory.accounts.exists("down")

    async def test_non_json_body_raises_unavailable(self, rest_directory):
        with pytest.raises(DirectoryUnavailable):
            await rest_directory.accounts.exists("garbled")

    async def test_billing_category_single_purpose(self, rest_directory):
        category = await rest_directory.billing_categories.get("CAT1")
        assert category.purposes == ("Joining Fee",)

    async def test_billing_category_purpose_list(self, rest_directory):
        category = await rest_directory.billing_categories.get("CAT2")
        assert category.purposes == ("Joining Fee", "Promotion Fee")
        assert await rest_directory.billing_categories.get("CAT9") is None


class TestInMemoryDirectory:
    async def test_defaults(self):
        directory = InMemoryDirectory()
        summary = directory.agents.add("A42")
        assert summary.code == "A42"
        assert summary.display_name == "Agent A42"
        assert await directory.agents.exists("A42") is True
        assert await directory.branches.exists("B1") is False


class TestRestIdEncoding:
    """Ids always travel as one path segment of their own collection."""

    @pytest.fixture(autouse=True)
    def clear_paths(self):
        REQUESTED_PATHS.clear()

    async def test_traversal_stays_in_collection(self, rest_directory):
        assert await rest_directory.agents.exists("../branches/B1") is False
        assert REQUESTED_PATHS == ["/profiles/..%2Fbranches%2FB1"]

    async def test_query_and_fragment_are_encoded(self, rest_directory):
        assert await rest_directory.agents.exists("A42?x=1#top") is False
        assert REQUESTED_PATHS == ["/profiles/A42%3Fx%3D1%23top"]

    async def test_slash_inside_id_round_trips(self, rest_directory):
        assert await rest_directory.branches.exists("B1/../B1") is True
        assert REQUESTED_PATHS == ["/branches/B1%2F..%2FB1"]

    @pytest.mark.parametrize("entity_id", ["", "   ", ".", ".."])
    async def test_unaddressable_ids_are_missing(self, rest_directory, entity_id):
        assert await rest_directory.agents.exists(entity_id) is False
        assert REQUESTED_PATHS == []

    async def test_record_for_another_id_is_missing(self, rest_directory):
        assert await rest_directory.agents.exists("alias") is False
        assert await rest_directory.agents.summary("alias") is None
