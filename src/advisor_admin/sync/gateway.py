"""Remote collection gateway -- single-attempt transport for admin collections.

CollectionGateway is the abstract interface; HttpCollectionGateway talks to
the remote admin API over httpx.

Contract:
- fetch() returns a FetchResult, mutate() returns a MutationResult. Every
  expected failure (network, auth, validation, not found, server,
  not implemented) comes back as a GatewayError inside the result.
- No caching, no filtering, no retries. Callers decide retry policy.
- A response body that is not valid JSON, or does not have the configured
  shape, raises MalformedResponseError (or the underlying ValueError) to the
  caller, which converts it at its boundary.
"""

from __future__ import annotations

import time
from abc import ABC, abstractmethod
from typing import Any

import httpx
import structlog

from src.advisor_admin.sync.registry import CollectionConfig, get_collection_config
from src.advisor_admin.sync.schemas import (
    CollectionId,
    CreateIntent,
    FetchResult,
    GatewayError,
    GatewayErrorKind,
    MutationIntent,
    MutationKind,
    MutationResult,
    UpdateIntent,
)

logger = structlog.get_logger(__name__)

REFRESH_SOURCE_PATH = "/api/refresh-airtable"


class MalformedResponseError(ValueError):
    """Raised when a successful response does not have the expected shape."""


def error_for_status(status_code: int, message: str) -> GatewayError:
    """Map an HTTP error status onto the gateway error taxonomy."""
    if status_code in (401, 403):
        kind = GatewayErrorKind.AUTH_FAILURE
    elif status_code in (400, 409, 422):
        kind = GatewayErrorKind.VALIDATION_FAILURE
    elif status_code == 404:
        kind = GatewayErrorKind.NOT_FOUND
    elif status_code in (405, 501):
        kind = GatewayErrorKind.NOT_IMPLEMENTED
    else:
        kind = GatewayErrorKind.SERVER_ERROR
    return GatewayError(kind=kind, message=message, status_code=status_code)


def not_implemented(collection_id: str, kind: MutationKind) -> GatewayError:
    return GatewayError(
        kind=GatewayErrorKind.NOT_IMPLEMENTED,
        message=f"{kind.value} is not supported for {collection_id}",
    )


class CollectionGateway(ABC):
    """Abstract interface for reading and writing admin collections.

    Methods:
        fetch: Read every record of a collection.
        mutate: Apply one create/update/delete intent.
        refresh_source: Ask the remote to reload its backing store.
    """

    @abstractmethod
    async def fetch(
        self, collection_id: str | CollectionId, *, timeout: float | None = None
    ) -> FetchResult:
        """Read all records of a collection."""
        ...

    @abstractmethod
    async def mutate(
        self,
        collection_id: str | CollectionId,
        intent: MutationIntent,
        *,
        timeout: float | None = None,
    ) -> MutationResult:
        """Execute one mutation intent against the remote."""
        ...

    async def refresh_source(self, *, timeout: float | None = None) -> MutationResult:
        """Ask the remote to reload its backing store. Unsupported by default."""
        return MutationResult(
            error=GatewayError(
                kind=GatewayErrorKind.NOT_IMPLEMENTED,
                message="Source refresh is not supported by this gateway",
            )
        )


class HttpCollectionGateway(CollectionGateway):
    """Gateway backed by the remote admin REST API.

    Reads: ``GET {endpoint}`` returning an array of records, or an envelope
    object holding the array under the collection's envelope key.
    Writes: ``POST {endpoint}``, ``PUT {endpoint}/{id}``,
    ``DELETE {endpoint}/{id}`` with flat field-map bodies. Error responses
    carry ``{"message": str}``.

    Args:
        base_url: Root URL of the remote API.
        token: Bearer token; no Authorization header when empty.
        timeout: Default per-request timeout in seconds.
        transport: Optional httpx transport (used by tests).
    """

    def __init__(
        self,
        base_url: str,
        token: str = "",
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._transport = transport
        self._headers = {"Accept": "application/json"}
        if token:
            self._headers["Authorization"] = f"Bearer {token}"

    def _client(self, timeout: float | None) -> httpx.AsyncClient:
        """Create a new httpx client with the effective timeout."""
        return httpx.AsyncClient(
            base_url=self._base_url,
            headers=self._headers,
            timeout=timeout if timeout is not None else self._timeout,
            transport=self._transport,
        )

    async def _send(
        self,
        method: str,
        path: str,
        timeout: float | None,
        **kwargs: Any,
    ) -> httpx.Response | GatewayError:
        """Issue one request; transport failures become NETWORK_FAILURE."""
        try:
            async with self._client(timeout) as client:
                return await client.request(method, path, **kwargs)
        except httpx.TimeoutException:
            logger.warning("gateway.request_timeout", method=method, path=path)
            return GatewayError(
                kind=GatewayErrorKind.NETWORK_FAILURE,
                message=f"Request to {path} timed out",
            )
        except httpx.TransportError as exc:
            logger.warning(
                "gateway.request_failed", method=method, path=path, error=str(exc)
            )
            return GatewayError(
                kind=GatewayErrorKind.NETWORK_FAILURE,
                message=f"Could not reach {path}: {exc}",
            )

    @staticmethod
    def _error_from_response(response: httpx.Response) -> GatewayError:
        message = response.reason_phrase or f"HTTP {response.status_code}"
        try:
            body = response.json()
        except ValueError:
            # Plain-text error pages carry the message as the body
            if response.text:
                message = response.text
        else:
            if isinstance(body, dict) and isinstance(body.get("message"), str):
                message = body["message"]
        return error_for_status(response.status_code, message)

    @staticmethod
    def _unwrap(config: CollectionConfig, payload: Any) -> list[dict[str, Any]]:
        """Accept a bare array, or an envelope keyed by the configured name."""
        if isinstance(payload, dict) and config.envelope_key is not None:
            payload = payload.get(config.envelope_key)

        if not isinstance(payload, list):
            raise MalformedResponseError(
                f"Expected a list of records for {config.key}, got {type(payload).__name__}"
            )
        if not all(isinstance(item, dict) for item in payload):
            raise MalformedResponseError(f"Non-object record in {config.key} response")
        return payload

    async def fetch(
        self, collection_id: str | CollectionId, *, timeout: float | None = None
    ) -> FetchResult:
        """GET the collection endpoint and unwrap its records."""
        config = get_collection_config(collection_id)

        result = await self._send(
            "GET",
            config.endpoint,
            timeout,
            # Cache-busting parameter, mirrors the admin UI
            params={"_t": int(time.time() * 1000)},
            headers={"Cache-Control": "no-cache"},
        )
        if isinstance(result, GatewayError):
            return FetchResult(error=result)

        if result.is_error:
            error = self._error_from_response(result)
            logger.warning(
                "gateway.fetch_failed",
                collection=config.key,
                status_code=result.status_code,
                kind=error.kind.value,
            )
            return FetchResult(error=error)

        records = self._unwrap(config, result.json())
        logger.info("gateway.fetch_completed", collection=config.key, count=len(records))
        return FetchResult(records=records)

    async def mutate(
        self,
        collection_id: str | CollectionId,
        intent: MutationIntent,
        *,
        timeout: float | None = None,
    ) -> MutationResult:
        """POST / PUT / DELETE one record."""
        config = get_collection_config(collection_id)
        kind = MutationKind(intent.kind)

        if not config.supports(kind):
            logger.info("gateway.mutation_not_implemented", collection=config.key, kind=kind.value)
            return MutationResult(error=not_implemented(config.key, kind))

        if isinstance(intent, CreateIntent):
            result = await self._send("POST", config.endpoint, timeout, json=intent.fields)
        elif isinstance(intent, UpdateIntent):
            result = await self._send(
                "PUT", f"{config.endpoint}/{intent.id}", timeout, json=intent.fields
            )
        else:
            result = await self._send("DELETE", f"{config.endpoint}/{intent.id}", timeout)

        if isinstance(result, GatewayError):
            return MutationResult(error=result)

        if result.is_error:
            error = self._error_from_response(result)
            logger.warning(
                "gateway.mutation_failed",
                collection=config.key,
                kind=kind.value,
                status_code=result.status_code,
                error=error.message,
            )
            return MutationResult(error=error)

        record = self._record_from_response(result)
        logger.info(
            "gateway.mutation_completed",
            collection=config.key,
            kind=kind.value,
            record_id=(record or {}).get("id", getattr(intent, "id", None)),
        )
        return MutationResult(record=record)

    @staticmethod
    def _record_from_response(response: httpx.Response) -> dict[str, Any] | None:
        if response.status_code == 204 or not response.content:
            return None
        body = response.json()
        if body is None:
            return None
        if not isinstance(body, dict):
            raise MalformedResponseError(
                f"Expected a record object, got {type(body).__name__}"
            )
        return body

    async def refresh_source(self, *, timeout: float | None = None) -> MutationResult:
        """POST the remote's refresh endpoint (reloads its Airtable cache)."""
        result = await self._send("POST", REFRESH_SOURCE_PATH, timeout)
        if isinstance(result, GatewayError):
            return MutationResult(error=result)
        if result.is_error:
            return MutationResult(error=self._error_from_response(result))

        logger.info("gateway.source_refreshed")
        return MutationResult(record=self._record_from_response(result))
