"""Per-collection configuration tables.

Defines, for every CollectionId:
- the remote endpoint and optional response envelope key
- which mutations the remote supports (others yield not_implemented)
- how successful mutations are reconciled into the cache (patch or refetch)
- the view configuration: filters, searchable fields, sort options
- stat facets and the synthetic fallback record count

All behaviour that varies per entity type is declared here so the gateway,
cache, fallback generator and view controller stay generic.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from enum import Enum

from src.advisor_admin.sync.fields import parse_amount, parse_date, state_code
from src.advisor_admin.sync.filters import (
    AmountRange,
    ChoiceFilter,
    DerivedFilter,
    ExactFilter,
    GroupFilter,
    RangeFilter,
    SortOption,
    ViewConfig,
)
from src.advisor_admin.sync.schemas import CollectionId, MutationKind, Record


class UnknownCollectionError(KeyError):
    """Raised when a collection id has no registered configuration."""

    def __init__(self, collection_id: str) -> None:
        self.collection_id = collection_id
        super().__init__(f"Unknown collection: {collection_id!r}")


class ReconcileStrategy(str, Enum):
    """How a successful mutation is folded back into the cache."""

    PATCH = "patch"  # Apply the returned record locally
    REFETCH = "refetch"  # Invalidate and fetch the whole collection again


ALL_OPERATIONS = frozenset(MutationKind)


@dataclass(frozen=True)
class CollectionConfig:
    """Everything the sync layer needs to know about one collection."""

    collection_id: CollectionId
    endpoint: str
    view: ViewConfig
    envelope_key: str | None = None
    operations: frozenset[MutationKind] = ALL_OPERATIONS
    reconcile: ReconcileStrategy = ReconcileStrategy.PATCH
    required_fields: tuple[str, ...] = ("id",)
    facets: Mapping[str, Callable[[Record], bool]] = field(default_factory=dict)
    fallback_count: int = 10
    label: str = ""

    @property
    def key(self) -> str:
        return self.collection_id.value

    def supports(self, kind: MutationKind) -> bool:
        return kind in self.operations


# ── Shared Filter Tables ────────────────────────────────────────────────────

REGION_STATES: dict[str, frozenset[str]] = {
    "northeast": frozenset({"ME", "NH", "VT", "MA", "RI", "CT", "NY", "NJ", "PA"}),
    "southeast": frozenset(
        {"DE", "MD", "VA", "WV", "KY", "NC", "SC", "GA", "FL", "AL", "MS", "TN", "AR", "LA"}
    ),
    "midwest": frozenset(
        {"OH", "MI", "IN", "IL", "WI", "MN", "IA", "MO", "ND", "SD", "NE", "KS"}
    ),
    "southwest": frozenset({"TX", "OK", "NM", "AZ"}),
    "west": frozenset({"CO", "WY", "MT", "ID", "WA", "OR", "UT", "NV", "CA", "AK", "HI"}),
}

# AUM size buckets in millions of dollars
AUM_BUCKETS: dict[str, AmountRange] = {
    "under50": AmountRange(high=50, high_inclusive=False),
    "50to100": AmountRange(low=50, high=100),
    "100to250": AmountRange(low=100, high=250),
    "250to500": AmountRange(low=250, high=500),
    "over500": AmountRange(low=500, low_inclusive=False),
}

LISTING_STATUSES = ("Active", "Pending", "Sold")


def _text_key(value: object) -> str | None:
    return value.lower() if isinstance(value, str) else None


def _number_key(value: object) -> float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    return parse_amount(value)


def _date_sorts(date_field: str) -> tuple[SortOption, SortOption]:
    return (
        SortOption("newest", date_field, parse_date, descending=True),
        SortOption("oldest", date_field, parse_date),
    )


def _publication_filter() -> ChoiceFilter:
    return ChoiceFilter(
        "status",
        {
            "published": lambda r: r.get("published") is True,
            "drafts": lambda r: r.get("published") is False,
            "featured": lambda r: r.get("featured") is True,
        },
    )


_PUBLICATION_FACETS: dict[str, Callable[[Record], bool]] = {
    "published": lambda r: r.get("published") is True,
    "drafts": lambda r: r.get("published") is False,
    "featured": lambda r: r.get("featured") is True,
}


# ── Collection Table ────────────────────────────────────────────────────────

COLLECTIONS: dict[CollectionId, CollectionConfig] = {
    CollectionId.FIRM_DEALS: CollectionConfig(
        collection_id=CollectionId.FIRM_DEALS,
        label="Firm deal",
        endpoint="/api/firm-deals",
        required_fields=(
            "id", "firm", "upfrontMin", "upfrontMax", "backendMin", "backendMax",
            "totalDealMin", "totalDealMax", "notes",
        ),
        view=ViewConfig(
            name="firm-deals",
            filters=(ExactFilter("firm", "firm"),),
            search_fields=("firm", "notes"),
            sort_options=(
                SortOption("firm-az", "firm", _text_key),
                SortOption("firm-za", "firm", _text_key, descending=True),
                SortOption("total-high", "totalDealMax", _number_key, descending=True),
                SortOption("total-low", "totalDealMax", _number_key),
            ),
        ),
        fallback_count=12,
    ),
    CollectionId.FIRM_PARAMETERS: CollectionConfig(
        collection_id=CollectionId.FIRM_PARAMETERS,
        label="Firm parameter",
        endpoint="/api/firm-parameters",
        # The remote has no delete route for calculator parameters
        operations=frozenset({MutationKind.CREATE, MutationKind.UPDATE}),
        required_fields=("id", "firm", "paramName", "paramValue", "notes"),
        view=ViewConfig(
            name="firm-parameters",
            filters=(
                ExactFilter("firm", "firm"),
                ExactFilter("param_name", "paramName"),
            ),
            search_fields=("firm", "paramName", "notes"),
            sort_options=(
                SortOption("value-high", "paramValue", _number_key, descending=True),
                SortOption("value-low", "paramValue", _number_key),
            ),
        ),
        fallback_count=16,
    ),
    CollectionId.FIRM_PROFILES: CollectionConfig(
        collection_id=CollectionId.FIRM_PROFILES,
        label="Firm profile",
        endpoint="/api/firm-profiles",
        required_fields=("id", "firm", "ceo", "bio", "logoUrl", "founded", "headquarters"),
        view=ViewConfig(
            name="firm-profiles",
            filters=(
                ExactFilter("category", "category"),
                ChoiceFilter(
                    "has_logo",
                    {"yes": lambda r: bool(r.get("logoUrl")), "no": lambda r: not r.get("logoUrl")},
                ),
            ),
            search_fields=("firm", "ceo", "headquarters"),
            sort_options=(
                SortOption("firm-az", "firm", _text_key),
                SortOption("firm-za", "firm", _text_key, descending=True),
            ),
        ),
        facets={
            "with_logo": lambda r: bool(r.get("logoUrl")),
            "detailed_bio": lambda r: isinstance(r.get("bio"), str) and len(r["bio"]) > 100,
        },
        fallback_count=10,
    ),
    CollectionId.ADMIN_USERS: CollectionConfig(
        collection_id=CollectionId.ADMIN_USERS,
        label="User",
        endpoint="/api/admin/users",
        reconcile=ReconcileStrategy.REFETCH,
        required_fields=("id", "username", "fullName", "email", "isAdmin", "emailVerified"),
        view=ViewConfig(
            name="admin-users",
            filters=(
                ChoiceFilter(
                    "role",
                    {
                        "admin": lambda r: r.get("isAdmin") is True,
                        "verified": lambda r: r.get("emailVerified") is True and r.get("isAdmin") is not True,
                        "unverified": lambda r: r.get("emailVerified") is False and r.get("isAdmin") is not True,
                    },
                ),
                ExactFilter("state", "state"),
            ),
            search_fields=("username", "fullName", "email"),
            sort_options=(
                *_date_sorts("createdAt"),
                SortOption("username", "username", _text_key),
            ),
        ),
        facets={
            "admins": lambda r: r.get("isAdmin") is True,
            "verified": lambda r: r.get("emailVerified") is True,
            "unverified": lambda r: r.get("emailVerified") is False,
            "two_factor": lambda r: r.get("totpEnabled") is True,
        },
        fallback_count=20,
    ),
    CollectionId.BLOG_POSTS: CollectionConfig(
        collection_id=CollectionId.BLOG_POSTS,
        label="Blog post",
        endpoint="/api/admin/blog-posts",
        required_fields=("id", "title", "slug", "excerpt", "author", "date", "published", "featured"),
        view=ViewConfig(
            name="blog-posts",
            filters=(_publication_filter(), ExactFilter("category", "category")),
            search_fields=("title", "excerpt", "author"),
            sort_options=_date_sorts("date"),
        ),
        facets=_PUBLICATION_FACETS,
        fallback_count=40,
    ),
    CollectionId.NEWS_ARTICLES: CollectionConfig(
        collection_id=CollectionId.NEWS_ARTICLES,
        label="News article",
        endpoint="/api/news",
        envelope_key="newsArticles",
        required_fields=(
            "id", "title", "slug", "content", "excerpt", "date", "source", "category",
            "published", "featured",
        ),
        view=ViewConfig(
            name="news-articles",
            filters=(_publication_filter(), ExactFilter("category", "category")),
            search_fields=("title", "content"),
            sort_options=_date_sorts("date"),
        ),
        facets=_PUBLICATION_FACETS,
        fallback_count=15,
    ),
    CollectionId.PRACTICE_LISTINGS: CollectionConfig(
        collection_id=CollectionId.PRACTICE_LISTINGS,
        label="Practice listing",
        endpoint="/api/admin/practice-listings",
        required_fields=(
            "id", "title", "location", "aum", "revenue", "price", "status", "type",
            "description", "highlighted", "date",
        ),
        view=ViewConfig(
            name="practice-listings",
            filters=(
                ExactFilter("status", "status", choices=LISTING_STATUSES),
                DerivedFilter("location", "location", state_code),
                GroupFilter("region", "location", state_code, REGION_STATES),
                RangeFilter("aum_size", "aum", AUM_BUCKETS),
                ExactFilter("type", "type"),
            ),
            search_fields=("title", "location", "description"),
            sort_options=(
                *_date_sorts("date"),
                SortOption("aum-high", "aum", parse_amount, descending=True),
                SortOption("aum-low", "aum", parse_amount),
                SortOption("revenue-high", "revenue", parse_amount, descending=True),
                SortOption("revenue-low", "revenue", parse_amount),
                SortOption("price-high", "price", parse_amount, descending=True),
                SortOption("price-low", "price", parse_amount),
            ),
        ),
        facets={
            "active": lambda r: r.get("status") == "Active",
            "pending": lambda r: r.get("status") == "Pending",
            "sold": lambda r: r.get("status") == "Sold",
            "highlighted": lambda r: r.get("highlighted") is True,
        },
        fallback_count=35,
    ),
}


def get_collection_config(collection_id: str | CollectionId) -> CollectionConfig:
    """Look up a collection's configuration by id or id string.

    Raises:
        UnknownCollectionError: If the id is not registered.
    """
    try:
        return COLLECTIONS[CollectionId(collection_id)]
    except (ValueError, KeyError):
        raise UnknownCollectionError(str(collection_id)) from None
