"""Admin console -- wires settings, gateway, cache and per-entity controllers."""

from __future__ import annotations

import httpx
import structlog

from src.advisor_admin.admin.controller import AdminViewController, server_error
from src.advisor_admin.admin.notifications import NotificationKind, NotificationLog, Notifier
from src.advisor_admin.config import Settings, get_settings
from src.advisor_admin.sync.cache import CacheCoordinator
from src.advisor_admin.sync.fallback import SyntheticFallbackGenerator
from src.advisor_admin.sync.gateway import CollectionGateway, HttpCollectionGateway
from src.advisor_admin.sync.registry import get_collection_config
from src.advisor_admin.sync.schemas import CollectionId, MutationResult

logger = structlog.get_logger(__name__)

# Collections backed by the remote's Airtable cache
SOURCE_BACKED_COLLECTIONS = (
    CollectionId.FIRM_DEALS,
    CollectionId.FIRM_PARAMETERS,
    CollectionId.FIRM_PROFILES,
)


class AdminConsole:
    """Holds one controller per mounted collection view.

    Args:
        gateway: Shared transport.
        cache: Shared cache coordinator.
        notifier: Notification callback shared by every controller. Defaults
            to a NotificationLog so recent messages can be listed.
    """

    def __init__(
        self,
        gateway: CollectionGateway,
        cache: CacheCoordinator,
        notifier: Notifier | None = None,
    ) -> None:
        self.gateway = gateway
        self.cache = cache
        self.notifier: Notifier = notifier if notifier is not None else NotificationLog()
        self._controllers: dict[str, AdminViewController] = {}

    @classmethod
    def from_settings(
        cls,
        settings: Settings | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        notifier: Notifier | None = None,
    ) -> AdminConsole:
        settings = settings or get_settings()
        gateway = HttpCollectionGateway(
            base_url=settings.API_BASE_URL,
            token=settings.API_TOKEN,
            timeout=settings.GATEWAY_TIMEOUT_SECONDS,
            transport=transport,
        )
        fallback = (
            SyntheticFallbackGenerator(seed=settings.FALLBACK_SEED)
            if settings.FALLBACK_ENABLED
            else None
        )
        cache = CacheCoordinator(
            gateway,
            fallback=fallback,
            ttl_seconds=settings.CACHE_TTL_SECONDS,
            ttl_overrides=settings.CACHE_TTL_OVERRIDES,
            fetch_timeout=settings.GATEWAY_TIMEOUT_SECONDS,
        )
        logger.info(
            "console.configured",
            api_base_url=settings.API_BASE_URL,
            fallback_enabled=settings.FALLBACK_ENABLED,
            ttl_seconds=settings.CACHE_TTL_SECONDS,
        )
        return cls(gateway, cache, notifier=notifier)

    def controller(self, collection_id: str | CollectionId) -> AdminViewController:
        """Return the mounted controller for a collection, mounting it if needed."""
        key = get_collection_config(collection_id).key
        controller = self._controllers.get(key)
        if controller is None:
            controller = AdminViewController(key, self.cache, self.gateway, self.notifier)
            self._controllers[key] = controller
        return controller

    def unmount(self, collection_id: str | CollectionId) -> None:
        key = get_collection_config(collection_id).key
        controller = self._controllers.pop(key, None)
        if controller is not None:
            controller.unmount()

    def unmount_all(self) -> None:
        for key in list(self._controllers):
            self.unmount(key)

    async def refresh_source(self) -> MutationResult:
        """Ask the remote to reload its backing store, then refetch firm data."""
        try:
            outcome = await self.gateway.refresh_source()
        except Exception as exc:
            logger.error("console.refresh_source_raised", error=str(exc))
            outcome = MutationResult(error=server_error(exc))

        if not outcome.ok:
            self.notifier("Refresh failed", outcome.error.message, NotificationKind.ERROR)  # type: ignore[union-attr]
            return outcome

        for collection_id in SOURCE_BACKED_COLLECTIONS:
            await self.controller(collection_id).load(force=True)

        self.notifier(
            "Data refreshed",
            "Firm deals, parameters and profiles were reloaded from the source",
            NotificationKind.INFO,
        )
        return outcome
