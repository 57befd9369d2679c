"""Pydantic schemas for admin collection synchronization.

Defines all structured types shared by the gateway, cache, fallback generator
and filter engine:
- Enums: CollectionId, Freshness, SnapshotSource, GatewayErrorKind, MutationKind
- Failures: GatewayError
- Snapshots: CollectionSnapshot (immutable, swapped wholesale on change)
- Mutations: CreateIntent, UpdateIntent, DeleteIntent (MutationIntent union)
- Transport results: FetchResult, MutationResult
"""

from __future__ import annotations

from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field

Record = dict[str, Any]
RecordId = Union[int, str]


# ── Enums ───────────────────────────────────────────────────────────────────


class CollectionId(str, Enum):
    """Logical datasets managed by the admin console (one cache slot each)."""

    FIRM_DEALS = "firm-deals"
    FIRM_PARAMETERS = "firm-parameters"
    FIRM_PROFILES = "firm-profiles"
    ADMIN_USERS = "admin-users"
    BLOG_POSTS = "blog-posts"
    NEWS_ARTICLES = "news-articles"
    PRACTICE_LISTINGS = "practice-listings"


class Freshness(str, Enum):
    """Freshness flag carried by every published snapshot."""

    STALE = "stale"
    FRESH = "fresh"
    LOADING = "loading"
    ERROR = "error"


class SnapshotSource(str, Enum):
    """Where the records of a snapshot came from."""

    REMOTE = "remote"
    SYNTHETIC = "synthetic"


class GatewayErrorKind(str, Enum):
    """Expected failure categories returned (never raised) by the gateway."""

    NETWORK_FAILURE = "network_failure"
    AUTH_FAILURE = "auth_failure"
    VALIDATION_FAILURE = "validation_failure"
    SERVER_ERROR = "server_error"
    NOT_FOUND = "not_found"
    NOT_IMPLEMENTED = "not_implemented"


class MutationKind(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


# ── Failures ────────────────────────────────────────────────────────────────


class GatewayError(BaseModel):
    """A tagged failure reason scoped to one collection operation."""

    model_config = ConfigDict(frozen=True)

    kind: GatewayErrorKind
    message: str
    status_code: int | None = None


def same_id(left: Any, right: Any) -> bool:
    """Compare record identifiers, tolerating int/str representations."""
    if left is None or right is None:
        return False
    return str(left) == str(right)


# ── Snapshots ───────────────────────────────────────────────────────────────


class CollectionSnapshot(BaseModel):
    """Immutable published value of one collection.

    A snapshot is never edited in place: mutations and refetches build a new
    snapshot and the cache swaps it in with a single assignment. Records are
    copied on admission so consumers holding an older snapshot never see
    later changes.
    """

    model_config = ConfigDict(frozen=True)

    collection_id: str
    records: tuple[Record, ...] = ()
    freshness: Freshness = Freshness.FRESH
    source: SnapshotSource = SnapshotSource.REMOTE
    error: GatewayError | None = None
    version: int = 0
    fetched_at: float | None = None

    def __len__(self) -> int:
        return len(self.records)

    def find(self, record_id: RecordId) -> Record | None:
        """Return the record with a matching id, or None."""
        for record in self.records:
            if same_id(record.get("id"), record_id):
                return record
        return None

    def ids(self) -> list[Any]:
        return [record.get("id") for record in self.records]


# ── Mutation Intents ────────────────────────────────────────────────────────


class CreateIntent(BaseModel):
    """Create a record from a flat field map."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["create"] = "create"
    fields: Record = Field(default_factory=dict)


class UpdateIntent(BaseModel):
    """Replace some fields of the record with a matching id."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["update"] = "update"
    id: RecordId
    fields: Record = Field(default_factory=dict)


class DeleteIntent(BaseModel):
    """Remove the record with a matching id."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["delete"] = "delete"
    id: RecordId


MutationIntent = Annotated[
    Union[CreateIntent, UpdateIntent, DeleteIntent],
    Field(discriminator="kind"),
]


# ── Transport Results ───────────────────────────────────────────────────────


class FetchResult(BaseModel):
    """Outcome of a single fetch: the records, or the failure reason."""

    records: list[Record] = Field(default_factory=list)
    error: GatewayError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


class MutationResult(BaseModel):
    """Outcome of a single mutation: the affected record, or the failure reason.

    Deletes may succeed with ``record`` set to None when the remote answers
    with an empty body.
    """

    record: Record | None = None
    error: GatewayError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None
