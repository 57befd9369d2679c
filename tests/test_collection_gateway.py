"""Unit tests for HttpCollectionGateway.

Uses httpx.MockTransport -- no real network calls. Covers envelope
unwrapping, the HTTP status -> GatewayErrorKind mapping, network failures,
mutation verbs and the not_implemented short-circuit.
"""

from __future__ import annotations

import json

import httpx
import pytest

from src.advisor_admin.sync.gateway import (
    REFRESH_SOURCE_PATH,
    CollectionGateway,
    HttpCollectionGateway,
    MalformedResponseError,
    error_for_status,
)
from src.advisor_admin.sync.schemas import (
    CreateIntent,
    DeleteIntent,
    GatewayErrorKind,
    UpdateIntent,
)
from tests.conftest import make_deal


# ── Helpers ──────────────────────────────────────────────────────────────────


class Recorder:
    """MockTransport handler that records requests and replays one response."""

    def __init__(self, response: httpx.Response | Exception) -> None:
        self.response = response
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if isinstance(self.response, Exception):
            raise self.response
        return self.response

    @property
    def last(self) -> httpx.Request:
        return self.requests[-1]


def _gateway(handler: Recorder, token: str = "secret") -> HttpCollectionGateway:
    return HttpCollectionGateway(
        base_url="http://remote.test/",
        token=token,
        timeout=2.0,
        transport=httpx.MockTransport(handler),
    )


# ── Interface ────────────────────────────────────────────────────────────────


class TestCollectionGatewayABC:
    def test_abstract_methods(self):
        assert CollectionGateway.__abstractmethods__ == {"fetch", "mutate"}

    def test_cannot_be_instantiated(self):
        with pytest.raises(TypeError, match="abstract"):
            CollectionGateway()  # type: ignore[abstract]


# ── Fetch ────────────────────────────────────────────────────────────────────


class TestFetch:
    """GET and unwrap collection records."""

    async def test_bare_array(self):
        handler = Recorder(httpx.Response(200, json=[make_deal(id=1), make_deal(id=2)]))
        result = await _gateway(handler).fetch("firm-deals")

        assert result.ok
        assert [r["id"] for r in result.records] == [1, 2]
        assert handler.last.method == "GET"
        assert handler.last.url.path == "/api/firm-deals"
        assert "_t" in handler.last.url.params
        assert handler.last.headers["Authorization"] == "Bearer secret"

    async def test_no_auth_header_without_token(self):
        handler = Recorder(httpx.Response(200, json=[]))
        await _gateway(handler, token="").fetch("firm-deals")
        assert "Authorization" not in handler.last.headers

    async def test_news_envelope_unwrapped(self):
        articles = [{"id": 1, "title": "Team moves"}]
        handler = Recorder(httpx.Response(200, json={"newsArticles": articles}))
        result = await _gateway(handler).fetch("news-articles")

        assert result.records == articles
        assert handler.last.url.path == "/api/news"

    async def test_envelope_collection_also_accepts_bare_array(self):
        handler = Recorder(httpx.Response(200, json=[{"id": 1}]))
        result = await _gateway(handler).fetch("news-articles")
        assert result.records == [{"id": 1}]

    async def test_empty_array_is_success(self):
        result = await _gateway(Recorder(httpx.Response(200, json=[]))).fetch("practice-listings")
        assert result.ok
        assert result.records == []

    async def test_wrong_shape_raises(self):
        handler = Recorder(httpx.Response(200, json={"items": []}))
        with pytest.raises(MalformedResponseError):
            await _gateway(handler).fetch("firm-deals")

    async def test_invalid_json_raises(self):
        handler = Recorder(httpx.Response(200, content=b"<html>oops</html>"))
        with pytest.raises(ValueError):
            await _gateway(handler).fetch("firm-deals")

    @pytest.mark.parametrize(
        ("status_code", "kind"),
        [
            (401, GatewayErrorKind.AUTH_FAILURE),
            (403, GatewayErrorKind.AUTH_FAILURE),
            (400, GatewayErrorKind.VALIDATION_FAILURE),
            (422, GatewayErrorKind.VALIDATION_FAILURE),
            (404, GatewayErrorKind.NOT_FOUND),
            (501, GatewayErrorKind.NOT_IMPLEMENTED),
            (500, GatewayErrorKind.SERVER_ERROR),
            (503, GatewayErrorKind.SERVER_ERROR),
        ],
    )
    async def test_status_mapping(self, status_code, kind):
        handler = Recorder(httpx.Response(status_code, json={"message": "nope"}))
        result = await _gateway(handler).fetch("admin-users")

        assert not result.ok
        assert result.error.kind is kind
        assert result.error.status_code == status_code
        assert result.error.message == "nope"

    async def test_json_error_without_message_uses_reason_phrase(self):
        handler = Recorder(httpx.Response(500, json={"error": {"code": "E_AIRTABLE"}}))
        result = await _gateway(handler).fetch("firm-deals")

        assert result.error.kind is GatewayErrorKind.SERVER_ERROR
        assert result.error.message == "Internal Server Error"

    async def test_timeout_is_network_failure(self):
        handler = Recorder(httpx.ReadTimeout("timed out"))
        result = await _gateway(handler).fetch("firm-deals", timeout=0.1)
        assert result.error.kind is GatewayErrorKind.NETWORK_FAILURE

    async def test_connection_error_is_network_failure(self):
        handler = Recorder(httpx.ConnectError("connection refused"))
        result = await _gateway(handler).fetch("firm-deals")
        assert result.error.kind is GatewayErrorKind.NETWORK_FAILURE

    async def test_single_attempt_only(self):
        handler = Recorder(httpx.Response(503, json={"message": "down"}))
        await _gateway(handler).fetch("firm-deals")
        assert len(handler.requests) == 1


# ── Mutate ───────────────────────────────────────────────────────────────────


class TestMutate:
    """POST / PUT / DELETE with flat field-map bodies."""

    async def test_create_posts_fields(self):
        created = make_deal(id=11)
        handler = Recorder(httpx.Response(201, json=created))
        result = await _gateway(handler).mutate("firm-deals", CreateIntent(fields={"firm": "RBC"}))

        assert result.record == created
        assert handler.last.method == "POST"
        assert handler.last.url.path == "/api/firm-deals"
        assert json.loads(handler.last.content) == {"firm": "RBC"}

    async def test_update_puts_by_id(self):
        handler = Recorder(httpx.Response(200, json={"id": 7, "notes": "x"}))
        result = await _gateway(handler).mutate(
            "firm-deals", UpdateIntent(id=7, fields={"notes": "x"})
        )

        assert result.ok
        assert handler.last.method == "PUT"
        assert handler.last.url.path == "/api/firm-deals/7"

    async def test_delete_with_empty_body(self):
        handler = Recorder(httpx.Response(204))
        result = await _gateway(handler).mutate("firm-deals", DeleteIntent(id=7))

        assert result.ok
        assert result.record is None
        assert handler.last.method == "DELETE"
        assert handler.last.url.path == "/api/firm-deals/7"

    async def test_missing_record_is_not_found(self):
        handler = Recorder(httpx.Response(404, json={"message": "Deal not found"}))
        result = await _gateway(handler).mutate("firm-deals", DeleteIntent(id=99))
        assert result.error.kind is GatewayErrorKind.NOT_FOUND
        assert result.error.message == "Deal not found"

    async def test_unsupported_operation_is_not_implemented_without_io(self):
        handler = Recorder(httpx.Response(200, json={}))
        result = await _gateway(handler).mutate("firm-parameters", DeleteIntent(id=3))

        assert result.error.kind is GatewayErrorKind.NOT_IMPLEMENTED
        assert handler.requests == []

    async def test_non_object_response_raises(self):
        handler = Recorder(httpx.Response(200, json=[1, 2]))
        with pytest.raises(MalformedResponseError):
            await _gateway(handler).mutate("firm-deals", CreateIntent(fields={"firm": "RBC"}))


class TestRefreshSource:
    async def test_posts_refresh_endpoint(self):
        handler = Recorder(httpx.Response(200, json={"success": True}))
        result = await _gateway(handler).refresh_source()

        assert result.ok
        assert handler.last.method == "POST"
        assert handler.last.url.path == REFRESH_SOURCE_PATH

    async def test_failure_returned(self):
        handler = Recorder(httpx.Response(500, text="Airtable unavailable"))
        result = await _gateway(handler).refresh_source()
        assert result.error.kind is GatewayErrorKind.SERVER_ERROR
        assert result.error.message == "Airtable unavailable"


def test_error_for_status_defaults_to_server_error():
    assert error_for_status(418, "teapot").kind is GatewayErrorKind.SERVER_ERROR
