"""Data models used throughout zenodo-cli.

These dataclasses mirror the JSON documents returned by the Zenodo REST API.
Each model knows how to build itself from a decoded response (``from_dict``)
and how to render itself back to the API shape (``to_dict``), which is also
what the output formatters consume.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, fields
from typing import Any, Callable, Dict, Generic, List, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Largest page size Zenodo accepts for authenticated requests
DEFAULT_PAGE_SIZE = 100


def _str(value: Any) -> str:
    if value is None:
        return ""
    return str(value)


def _require_dict(data: Any, what: str) -> Dict[str, Any]:
    if not isinstance(data, dict):
        raise TypeError(f"expected a JSON object for {what}, got {type(data).__name__}")
    return data


@dataclass
class RecordListParams:
    """Query parameters for listing and searching records."""

    page: int = 0
    size: int = 0
    status: str = ""
    community: str = ""
    sort: str = ""

    def __post_init__(self) -> None:
        if self.page < 0:
            raise ValueError("page cannot be negative")
        if self.size < 0:
            raise ValueError("size cannot be negative")

    def to_query(self) -> Dict[str, str]:
        """Build the query string parameters, omitting unset fields."""
        query: Dict[str, str] = {}
        if self.page > 0:
            query["page"] = str(self.page)
        query["size"] = str(self.size if self.size > 0 else DEFAULT_PAGE_SIZE)
        if self.status:
            query["status"] = self.status
        if self.community:
            query["communities"] = self.community
        if self.sort:
            query["sort"] = self.sort
        return query


@dataclass
class Creator:
    """A record creator or contributor."""

    name: str
    affiliation: str = ""
    orcid: str = ""
    gnd: str = ""
    type: str = ""

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Creator":
        data = _require_dict(data, "creator")
        return cls(
            name=_str(data.get("name")),
            affiliation=_str(data.get("affiliation")),
            orcid=_str(data.get("orcid")),
            gnd=_str(data.get("gnd")),
            type=_str(data.get("type")),
        )

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"name": self.name}
        for key in ("affiliation", "orcid", "gnd", "type"):
            value = getattr(self, key)
            if value:
                out[key] = value
        return out


@dataclass
class CommunityRef:
    """Reference to a community.

    Depositions report ``identifier`` while records report ``id``.
    """

    identifier: str = ""
    id: str = ""

    @property
    def slug(self) -> str:
        return self.identifier or self.id

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CommunityRef":
        data = _require_dict(data, "community reference")
        return cls(identifier=_str(data.get("identifier")), id=_str(data.get("id")))

    def to_dict(self) -> Dict[str, Any]:
        out = {}
        if self.identifier:
            out["identifier"] = self.identifier
        if self.id:
            out["id"] = self.id
        return out


# Metadata keys modelled as attributes; everything else is kept in ``extra``
_METADATA_SCALARS = (
    "title",
    "description",
    "upload_type",
    "publication_type",
    "image_type",
    "publication_date",
    "access_right",
    "embargo_date",
    "access_conditions",
    "doi",
    "notes",
    "version",
    "language",
)


@dataclass
class Metadata:
    """Bibliographic metadata of a record or deposition."""

    title: str = ""
    description: str = ""
    upload_type: str = ""
    publication_type: str = ""
    image_type: str = ""
    publication_date: str = ""
    access_right: str = ""
    license: Any = None
    embargo_date: str = ""
    access_conditions: str = ""
    doi: str = ""
    notes: str = ""
    version: str = ""
    language: str = ""
    keywords: List[str] = field(default_factory=list)
    creators: List[Creator] = field(default_factory=list)
    contributors: List[Creator] = field(default_factory=list)
    communities: List[CommunityRef] = field(default_factory=list)
    extra: Dict[str, Any] = field(default_factory=dict)

    def license_id(self) -> str:
        """Return the license identifier.

        The API reports the license either as a plain string or as an object
        such as ``{"id": "cc-by-4.0"}``.
        """
        if not self.license:
            return ""
        if isinstance(self.license, str):
            return self.license
        if isinstance(self.license, dict):
            return _str(self.license.get("id"))
        return str(self.license)

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "Metadata":
        data = _require_dict(data or {}, "metadata")
        known = set(_METADATA_SCALARS) | {
            "license",
            "keywords",
            "creators",
            "contributors",
            "communities",
        }
        kwargs: Dict[str, Any] = {key: _str(data.get(key)) for key in _METADATA_SCALARS}
        return cls(
            license=data.get("license"),
            keywords=[_str(k) for k in data.get("keywords") or []],
            creators=[Creator.from_dict(c) for c in data.get("creators") or []],
            contributors=[Creator.from_dict(c) for c in data.get("contributors") or []],
            communities=[CommunityRef.from_dict(c) for c in data.get("communities") or []],
            extra={k: v for k, v in data.items() if k not in known},
            **kwargs,
        )

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = dict(self.extra)
        for key in _METADATA_SCALARS:
            value = getattr(self, key)
            if value:
                out[key] = value
        if self.license:
            out["license"] = self.license
        if self.keywords:
            out["keywords"] = list(self.keywords)
        if self.creators:
            out["creators"] = [c.to_dict() for c in self.creators]
        if self.contributors:
            out["contributors"] = [c.to_dict() for c in self.contributors]
        if self.communities:
            out["communities"] = [c.to_dict() for c in self.communities]
        return out


@dataclass
class Stats:
    """Download and view statistics for a record."""

    downloads: int = 0
    views: int = 0
    unique_downloads: int = 0
    unique_views: int = 0
    version_downloads: int = 0
    version_views: int = 0

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "Stats":
        data = _require_dict(data or {}, "stats")
        return cls(**{f.name: int(data.get(f.name) or 0) for f in fields(cls)})

    def to_dict(self) -> Dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self)}


@dataclass
class Record:
    """A published Zenodo record."""

    id: int
    conceptrecid: str = ""
    doi: str = ""
    conceptdoi: str = ""
    title: str = ""
    metadata: Metadata = field(default_factory=Metadata)
    stats: Stats = field(default_factory=Stats)
    links: Dict[str, str] = field(default_factory=dict)
    created: str = ""
    updated: str = ""
    revision: int = 0
    state: str = ""
    submitted: bool = False

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Record":
        data = _require_dict(data, "record")
        metadata = Metadata.from_dict(data.get("metadata"))
        return cls(
            id=int(data["id"]),
            conceptrecid=_str(data.get("conceptrecid")),
            doi=_str(data.get("doi")),
            conceptdoi=_str(data.get("conceptdoi")),
            title=_str(data.get("title")) or metadata.title,
            metadata=metadata,
            stats=Stats.from_dict(data.get("stats")),
            links=dict(data.get("links") or {}),
            created=_str(data.get("created")),
            updated=_str(data.get("updated")),
            revision=int(data.get("revision") or 0),
            state=_str(data.get("state")),
            submitted=bool(data.get("submitted", False)),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "conceptrecid": self.conceptrecid,
            "doi": self.doi,
            "conceptdoi": self.conceptdoi,
            "title": self.title,
            "metadata": self.metadata.to_dict(),
            "stats": self.stats.to_dict(),
            "links": dict(self.links),
            "created": self.created,
            "updated": self.updated,
            "revision": self.revision,
            "state": self.state,
            "submitted": self.submitted,
        }


@dataclass
class Deposition:
    """A Zenodo deposition (draft or published)."""

    id: int
    conceptrecid: str = ""
    doi: str = ""
    doi_url: str = ""
    title: str = ""
    metadata: Metadata = field(default_factory=Metadata)
    links: Dict[str, str] = field(default_factory=dict)
    state: str = ""
    submitted: bool = False
    created: str = ""
    modified: str = ""

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Deposition":
        data = _require_dict(data, "deposition")
        metadata = Metadata.from_dict(data.get("metadata"))
        return cls(
            id=int(data["id"]),
            conceptrecid=_str(data.get("conceptrecid")),
            doi=_str(data.get("doi")),
            doi_url=_str(data.get("doi_url")),
            title=_str(data.get("title")) or metadata.title,
            metadata=metadata,
            links=dict(data.get("links") or {}),
            state=_str(data.get("state")),
            submitted=bool(data.get("submitted", False)),
            created=_str(data.get("created")),
            modified=_str(data.get("modified")),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "conceptrecid": self.conceptrecid,
            "doi": self.doi,
            "doi_url": self.doi_url,
            "title": self.title,
            "metadata": self.metadata.to_dict(),
            "links": dict(self.links),
            "state": self.state,
            "submitted": self.submitted,
            "created": self.created,
            "modified": self.modified,
        }


def _localized(value: Any) -> str:
    # Vocabulary titles come back as {"en": "..."}
    if isinstance(value, dict):
        if "en" in value:
            return _str(value["en"])
        return _str(next(iter(value.values()), ""))
    return _str(value)


@dataclass
class Community:
    """A Zenodo community."""

    id: str
    slug: str = ""
    title: str = ""
    description: str = ""
    page: str = ""
    curation_policy: str = ""
    created: str = ""
    updated: str = ""
    links: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Community":
        data = _require_dict(data, "community")
        meta = _require_dict(data.get("metadata") or {}, "community metadata")
        return cls(
            id=_str(data.get("id")),
            slug=_str(data.get("slug")) or _str(data.get("id")),
            title=_str(data.get("title")) or _str(meta.get("title")),
            description=_str(data.get("description")) or _str(meta.get("description")),
            page=_str(data.get("page")) or _str(meta.get("page")),
            curation_policy=_str(data.get("curation_policy")) or _str(meta.get("curation_policy")),
            created=_str(data.get("created")),
            updated=_str(data.get("updated")),
            links=dict(data.get("links") or {}),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "slug": self.slug,
            "title": self.title,
            "description": self.description,
            "page": self.page,
            "curation_policy": self.curation_policy,
            "created": self.created,
            "updated": self.updated,
            "links": dict(self.links),
        }


@dataclass
class License:
    """A license from Zenodo's license vocabulary."""

    id: str
    title: str = ""
    url: str = ""
    family: str = ""
    osi_approved: bool = False

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "License":
        data = _require_dict(data, "license")
        props = _require_dict(data.get("props") or {}, "license props")
        return cls(
            id=_str(data.get("id")),
            title=_localized(data.get("title")),
            url=_str(data.get("url")) or _str(props.get("url")),
            family=_str(data.get("family")),
            osi_approved=bool(data.get("osi_approved") or props.get("osi_approved") is True),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "url": self.url,
            "family": self.family,
            "osi_approved": self.osi_approved,
        }


@dataclass
class AccessLink:
    """A share link granting access to a record."""

    id: str
    token: str = ""
    permission: str = ""
    created: str = ""
    expires_at: str = ""

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AccessLink":
        data = _require_dict(data, "access link")
        return cls(
            id=_str(data.get("id")),
            token=_str(data.get("token")),
            permission=_str(data.get("permission")),
            created=_str(data.get("created") or data.get("created_at")),
            expires_at=_str(data.get("expires_at")),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "token": self.token,
            "permission": self.permission,
            "created": self.created,
            "expires_at": self.expires_at,
        }


@dataclass
class SearchResult(Generic[T]):
    """A page of search results: ``hits`` plus the server-side ``total``."""

    hits: List[T] = field(default_factory=list)
    total: int = 0
    links: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_dict(
        cls,
        data: Dict[str, Any],
        item_factory: Callable[[Dict[str, Any]], T],
    ) -> "SearchResult[T]":
        """Parse a ``{"hits": {"hits": [...], "total": n}}`` envelope."""
        data = _require_dict(data, "search result")
        envelope = _require_dict(data.get("hits") or {}, "hits")
        total = envelope.get("total", 0)
        # Elasticsearch 7 reports {"value": n, "relation": "eq"}
        if isinstance(total, dict):
            total = total.get("value", 0)
        return cls(
            hits=[item_factory(item) for item in envelope.get("hits") or []],
            total=int(total or 0),
            links=dict(data.get("links") or {}),
        )
