"""Zenodo REST API endpoints.

Thin typed wrappers over :class:`~zenodo_cli.core.http_client.ZenodoClient`,
one method per endpoint the CLI uses.  Each method returns model objects
from :mod:`zenodo_cli.core.data_models`; errors propagate unchanged.

Search-scoped endpoints (``/records``, ``/communities``, ``/licenses``) are
charged against the stricter search quota by the client's rate limiter.
"""

from __future__ import annotations

import logging
from functools import partial
from typing import Dict, List, Optional

from zenodo_cli.core.data_models import (
    DEFAULT_PAGE_SIZE,
    AccessLink,
    Community,
    Deposition,
    License,
    Metadata,
    Record,
    RecordListParams,
    SearchResult,
)
from zenodo_cli.core.errors import ValidationError
from zenodo_cli.core.http_client import ZenodoClient
from zenodo_cli.core.pagination import PaginatedResult, paginate_all
from zenodo_cli.utils.validators import validate_metadata

logger = logging.getLogger(__name__)

# Citation formats served by content negotiation on /records/{id}
CITATION_FORMATS: Dict[str, str] = {
    "bibtex": "application/x-bibtex",
    "datacite": "application/vnd.datacite.datacite+xml",
    "csl": "application/vnd.citationstyles.csl+json",
}

DEPOSITION_ACTIONS = ("edit", "publish", "discard")


def _vocabulary_query(q: str, page: int, size: int) -> Dict[str, str]:
    query: Dict[str, str] = {}
    if q:
        query["q"] = q
    if page > 0:
        query["page"] = str(page)
    query["size"] = str(size if size > 0 else DEFAULT_PAGE_SIZE)
    return query


class ZenodoAPI:
    """Endpoint methods for records, depositions, communities and licenses."""

    def __init__(self, client: ZenodoClient) -> None:
        self.client = client
        self.logger = logging.getLogger(self.__class__.__name__)

    # Records

    async def list_user_records(
        self, params: Optional[RecordListParams] = None
    ) -> SearchResult[Record]:
        """Return the authenticated user's records and drafts."""
        params = params or RecordListParams()
        return await self.client.get(
            "/user/records",
            params=params.to_query(),
            decode=partial(SearchResult.from_dict, item_factory=Record.from_dict),
        )

    async def search_records(
        self, q: str = "", params: Optional[RecordListParams] = None
    ) -> SearchResult[Record]:
        """Search published records with an Elasticsearch query string."""
        query = (params or RecordListParams()).to_query()
        if q:
            query["q"] = q
        return await self.client.get(
            "/records",
            params=query,
            decode=partial(SearchResult.from_dict, item_factory=Record.from_dict),
        )

    async def search_all_records(
        self, q: str = "", params: Optional[RecordListParams] = None
    ) -> PaginatedResult[Record]:
        """Search published records, fetching every page up to the ceiling."""
        base = params or RecordListParams()

        async def fetch_page(page: int) -> SearchResult[Record]:
            page_params = RecordListParams(
                page=page,
                size=base.size,
                status=base.status,
                community=base.community,
                sort=base.sort,
            )
            return await self.search_records(q, page_params)

        return await paginate_all(fetch_page)

    async def get_record(self, record_id: int) -> Record:
        """Retrieve a single published record."""
        return await self.client.get(f"/records/{record_id}", decode=Record.from_dict)

    async def get_record_formatted(self, record_id: int, fmt: str) -> bytes:
        """Retrieve a record in a citation format such as BibTeX.

        Raises:
            ValueError: If ``fmt`` is not one of :data:`CITATION_FORMATS`
        """
        try:
            accept = CITATION_FORMATS[fmt]
        except KeyError:
            raise ValueError(
                f"unsupported record format {fmt!r}; "
                f"choose from: {', '.join(sorted(CITATION_FORMATS))}"
            ) from None
        return await self.client.get_raw(f"/records/{record_id}", accept)

    async def list_versions(self, record_id: int) -> SearchResult[Record]:
        """Return every version of a record."""
        return await self.client.get(
            f"/records/{record_id}/versions",
            params={"size": str(DEFAULT_PAGE_SIZE)},
            decode=partial(SearchResult.from_dict, item_factory=Record.from_dict),
        )

    # Depositions

    async def get_deposition(self, deposition_id: int) -> Deposition:
        """Retrieve a deposition by ID."""
        return await self.client.get(
            f"/deposit/depositions/{deposition_id}", decode=Deposition.from_dict
        )

    async def update_deposition(self, deposition_id: int, metadata: Metadata) -> Deposition:
        """Replace the metadata of a deposition.

        The metadata is validated locally first; nothing is sent when it is
        invalid.

        Raises:
            ValidationError: If required fields are missing or invalid
        """
        result = validate_metadata(metadata)
        if not result.valid:
            raise ValidationError(result.errors)
        return await self.client.put(
            f"/deposit/depositions/{deposition_id}",
            {"metadata": metadata.to_dict()},
            decode=Deposition.from_dict,
        )

    async def _deposition_action(self, deposition_id: int, action: str) -> Deposition:
        if action not in DEPOSITION_ACTIONS:
            raise ValueError(f"unknown deposition action {action!r}")
        self.logger.info("Deposition %d: %s", deposition_id, action)
        return await self.client.post(
            f"/deposit/depositions/{deposition_id}/actions/{action}",
            decode=Deposition.from_dict,
        )

    async def edit_deposition(self, deposition_id: int) -> Deposition:
        """Unlock a published deposition for editing."""
        return await self._deposition_action(deposition_id, "edit")

    async def publish_deposition(self, deposition_id: int) -> Deposition:
        """Publish (or re-publish) a deposition."""
        return await self._deposition_action(deposition_id, "publish")

    async def discard_deposition(self, deposition_id: int) -> Deposition:
        """Discard unpublished changes on a deposition."""
        return await self._deposition_action(deposition_id, "discard")

    # Communities, licenses, access links

    async def search_communities(
        self, q: str = "", page: int = 0, size: int = 0
    ) -> SearchResult[Community]:
        """Search all communities."""
        return await self.client.get(
            "/communities",
            params=_vocabulary_query(q, page, size),
            decode=partial(SearchResult.from_dict, item_factory=Community.from_dict),
        )

    async def list_user_communities(
        self, q: str = "", page: int = 0, size: int = 0
    ) -> SearchResult[Community]:
        """List the communities the authenticated user belongs to."""
        return await self.client.get(
            "/user/communities",
            params=_vocabulary_query(q, page, size),
            decode=partial(SearchResult.from_dict, item_factory=Community.from_dict),
        )

    async def search_licenses(
        self, q: str = "", page: int = 0, size: int = 0
    ) -> SearchResult[License]:
        """Search Zenodo's license vocabulary."""
        return await self.client.get(
            "/licenses/",
            params=_vocabulary_query(q, page, size),
            decode=partial(SearchResult.from_dict, item_factory=License.from_dict),
        )

    async def list_access_links(self, record_id: int) -> List[AccessLink]:
        """Return the share links of a record."""
        result = await self.client.get(
            f"/records/{record_id}/access/links",
            decode=partial(SearchResult.from_dict, item_factory=AccessLink.from_dict),
        )
        if result is None:
            return []
        return result.hits
