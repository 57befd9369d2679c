"""Admin data synchronization layer -- collections, cache, fallback and filtering.

Components, leaf-first:
- CollectionGateway / HttpCollectionGateway: single-attempt remote transport
- SyntheticFallbackGenerator: seedable placeholder data for empty collections
- CacheCoordinator: per-collection snapshot store and mutation reconciliation
- apply_filters: pure filter/search/sort over a snapshot
- COLLECTIONS: per-collection endpoint, view and reconcile configuration

Architecture: the remote admin API is the only durable store. The cache is
process-lifetime and never synthesizes data for a failed fetch.
"""

from src.advisor_admin.sync.cache import CacheCoordinator, SlotState
from src.advisor_admin.sync.fallback import SyntheticFallbackGenerator
from src.advisor_admin.sync.filters import (
    WILDCARD,
    FilterState,
    UnknownFilterError,
    ViewConfig,
    apply_filters,
    distinct_values,
    facet_counts,
)
from src.advisor_admin.sync.gateway import (
    CollectionGateway,
    HttpCollectionGateway,
    MalformedResponseError,
)
from src.advisor_admin.sync.registry import (
    COLLECTIONS,
    CollectionConfig,
    ReconcileStrategy,
    UnknownCollectionError,
    get_collection_config,
)
from src.advisor_admin.sync.schemas import (
    CollectionId,
    CollectionSnapshot,
    CreateIntent,
    DeleteIntent,
    FetchResult,
    Freshness,
    GatewayError,
    GatewayErrorKind,
    MutationKind,
    MutationResult,
    SnapshotSource,
    UpdateIntent,
)

__all__ = [
    "CacheCoordinator",
    "SlotState",
    "SyntheticFallbackGenerator",
    "CollectionGateway",
    "HttpCollectionGateway",
    "MalformedResponseError",
    "COLLECTIONS",
    "CollectionConfig",
    "ReconcileStrategy",
    "UnknownCollectionError",
    "get_collection_config",
    "WILDCARD",
    "FilterState",
    "UnknownFilterError",
    "ViewConfig",
    "apply_filters",
    "distinct_values",
    "facet_counts",
    "CollectionId",
    "CollectionSnapshot",
    "CreateIntent",
    "DeleteIntent",
    "FetchResult",
    "Freshness",
    "GatewayError",
    "GatewayErrorKind",
    "MutationKind",
    "MutationResult",
    "SnapshotSource",
    "UpdateIntent",
]
