"""Tests for the Zenodo endpoint wrappers."""

import json

import httpx
import pytest
import pytest_asyncio

from zenodo_cli.core.data_models import Metadata, RecordListParams
from zenodo_cli.core.errors import DecodeError, ValidationError
from zenodo_cli.core.http_client import ZenodoClient
from zenodo_cli.integrations.zenodo_api import ZenodoAPI

BASE_URL = "https://zenodo.test/api"


def record(record_id, title="Record"):
    return {"id": record_id, "metadata": {"title": title}}


def page(hits, total):
    return {"hits": {"hits": hits, "total": total}}


VALID_METADATA = {
    "title": "Ocean temperatures",
    "description": "Measurements",
    "upload_type": "dataset",
    "publication_date": "2024-03-01",
    "access_right": "open",
    "license": "cc-by-4.0",
    "creators": [{"name": "Doe, Jane"}],
}


class Router:
    """MockTransport handler dispatching on method and path."""

    def __init__(self):
        self.routes = {}
        self.requests = []

    def add(self, method, path, handler):
        self.routes[(method, path)] = handler

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        handler = self.routes.get((request.method, request.url.path))
        if handler is None:
            return httpx.Response(404, json={"status": 404, "message": "not found"})
        return handler(request)


@pytest.fixture
def router():
    return Router()


@pytest_asyncio.fixture
async def api(router):
    async with ZenodoClient(BASE_URL, token="tok", transport=httpx.MockTransport(router)) as client:
        yield ZenodoAPI(client)


class TestRecords:
    """Tests for record endpoints."""

    @pytest.mark.asyncio
    async def test_list_user_records(self, router, api):
        """Test listing the user's records."""
        router.add("GET", "/api/user/records", lambda r: httpx.Response(200, json=page([record(1)], 1)))

        result = await api.list_user_records(RecordListParams(status="draft"))

        assert result.total == 1
        assert result.hits[0].id == 1
        assert dict(router.requests[0].url.params) == {"size": "100", "status": "draft"}

    @pytest.mark.asyncio
    async def test_search_records(self, router, api):
        """Test query and community filters."""
        router.add("GET", "/api/records", lambda r: httpx.Response(200, json=page([record(2)], 1)))

        result = await api.search_records("climate", RecordListParams(community="oceans"))

        assert result.hits[0].id == 2
        assert dict(router.requests[0].url.params) == {
            "q": "climate",
            "size": "100",
            "communities": "oceans",
        }

    @pytest.mark.asyncio
    async def test_search_all_records(self, router, api):
        """Test fetching every page of a search."""

        def respond(request):
            page_no = int(request.url.params.get("page", "1"))
            count = 100 if page_no == 1 else 30
            hits = [record(page_no * 1000 + i) for i in range(count)]
            return httpx.Response(200, json=page(hits, 130))

        router.add("GET", "/api/records", respond)

        result = await api.search_all_records("q")

        assert len(result.hits) == 130
        assert result.total == 130
        assert result.error is None
        assert [r.url.params["page"] for r in router.requests] == ["1", "2"]

    @pytest.mark.asyncio
    async def test_get_record(self, router, api):
        """Test fetching one record."""
        router.add("GET", "/api/records/5", lambda r: httpx.Response(200, json=record(5, "Five")))
        rec = await api.get_record(5)
        assert rec.title == "Five"

    @pytest.mark.asyncio
    async def test_get_record_formatted(self, router, api):
        """Test citation export through content negotiation."""
        router.add("GET", "/api/records/5", lambda r: httpx.Response(200, content=b"@misc{x}"))

        data = await api.get_record_formatted(5, "bibtex")

        assert data == b"@misc{x}"
        assert router.requests[0].headers["Accept"] == "application/x-bibtex"

    @pytest.mark.asyncio
    async def test_get_record_formatted_unknown(self, router, api):
        """Test an unsupported citation format."""
        with pytest.raises(ValueError, match="unsupported record format"):
            await api.get_record_formatted(5, "ris")
        assert router.requests == []

    @pytest.mark.asyncio
    async def test_list_versions(self, router, api):
        """Test listing record versions."""
        router.add(
            "GET",
            "/api/records/5/versions",
            lambda r: httpx.Response(200, json=page([record(5), record(6)], 2)),
        )
        result = await api.list_versions(5)
        assert [r.id for r in result.hits] == [5, 6]


class TestDepositions:
    """Tests for deposition endpoints."""

    @pytest.mark.asyncio
    async def test_update_deposition(self, router, api):
        """Test that metadata is wrapped and sent with PUT."""
        router.add(
            "PUT",
            "/api/deposit/depositions/7",
            lambda r: httpx.Response(200, json={"id": 7, "metadata": json.loads(r.content)["metadata"]}),
        )

        dep = await api.update_deposition(7, Metadata.from_dict(VALID_METADATA))

        assert dep.id == 7
        sent = json.loads(router.requests[0].content)
        assert sent == {"metadata": VALID_METADATA}

    @pytest.mark.asyncio
    async def test_update_deposition_invalid(self, router, api):
        """Test that invalid metadata is rejected before any request."""
        with pytest.raises(ValidationError) as exc_info:
            await api.update_deposition(7, Metadata(title="Only a title"))
        assert "description is required" in exc_info.value.errors
        assert router.requests == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize("action", ["edit", "publish", "discard"])
    async def test_actions(self, router, api, action):
        """Test deposition actions."""
        router.add(
            "POST",
            f"/api/deposit/depositions/7/actions/{action}",
            lambda r: httpx.Response(202, json={"id": 7, "state": "done"}),
        )

        dep = await getattr(api, f"{action}_deposition")(7)

        assert dep.state == "done"
        assert router.requests[0].content == b""

    @pytest.mark.asyncio
    async def test_get_deposition(self, router, api):
        """Test fetching a deposition."""
        router.add(
            "GET",
            "/api/deposit/depositions/7",
            lambda r: httpx.Response(200, json={"id": 7, "metadata": VALID_METADATA}),
        )
        dep = await api.get_deposition(7)
        assert dep.metadata.title == "Ocean temperatures"


class TestVocabularies:
    """Tests for community, license and access link endpoints."""

    @pytest.mark.asyncio
    async def test_search_communities(self, router, api):
        """Test searching all communities."""
        router.add(
            "GET",
            "/api/communities",
            lambda r: httpx.Response(200, json=page([{"id": "c1", "slug": "oceans"}], 1)),
        )
        result = await api.search_communities("ocean")
        assert result.hits[0].slug == "oceans"
        assert dict(router.requests[0].url.params) == {"q": "ocean", "size": "100"}

    @pytest.mark.asyncio
    async def test_list_user_communities(self, router, api):
        """Test listing the user's communities."""
        router.add(
            "GET",
            "/api/user/communities",
            lambda r: httpx.Response(200, json=page([{"id": "c1", "slug": "mine"}], 1)),
        )
        result = await api.list_user_communities()
        assert result.hits[0].slug == "mine"

    @pytest.mark.asyncio
    async def test_search_licenses(self, router, api):
        """Test searching licenses."""
        router.add(
            "GET",
            "/api/licenses/",
            lambda r: httpx.Response(
                200, json=page([{"id": "mit", "title": {"en": "MIT License"}}], 1)
            ),
        )
        result = await api.search_licenses("mit")
        assert result.hits[0].title == "MIT License"

    @pytest.mark.asyncio
    async def test_community_metadata_not_an_object(self, router, api):
        """Test that a malformed community is reported as a decode error."""
        router.add(
            "GET",
            "/api/communities",
            lambda r: httpx.Response(200, json=page([{"id": "c", "metadata": "oops"}], 1)),
        )
        with pytest.raises(DecodeError, match="community metadata"):
            await api.search_communities("c")

    @pytest.mark.asyncio
    async def test_license_props_not_an_object(self, router, api):
        """Test that malformed license props are reported as a decode error."""
        router.add(
            "GET",
            "/api/licenses/",
            lambda r: httpx.Response(200, json=page([{"id": "mit", "props": ["x"]}], 1)),
        )
        with pytest.raises(DecodeError, match="license props"):
            await api.search_licenses("mit")

    @pytest.mark.asyncio
    async def test_list_access_links(self, router, api):
        """Test listing share links."""
        router.add(
            "GET",
            "/api/records/5/access/links",
            lambda r: httpx.Response(200, json=page([{"id": "l1", "permission": "view"}], 1)),
        )
        links = await api.list_access_links(5)
        assert [link.id for link in links] == ["l1"]

    @pytest.mark.asyncio
    async def test_list_access_links_empty_body(self, router, api):
        """Test a record without links."""
        router.add("GET", "/api/records/5/access/links", lambda r: httpx.Response(204))
        assert await api.list_access_links(5) == []
