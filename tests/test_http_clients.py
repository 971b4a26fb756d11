"""Tests for the backend HTTP client."""

import asyncio
import json
from dataclasses import dataclass, field
from datetime import UTC, datetime

import httpx
import pytest

from parkiq.adapters.parking_api_client import HttpxParkingApiClient
from parkiq.domain.errors import BackendRejection, NetworkFailure, OperationCancelled
from parkiq.services.cancellation import CancellationToken

BASE_URL = "https://api.parkiq.test"

SESSION_ROW = {
    "id": "s-1",
    "started_at": "2026-10-19T10:00:00Z",
    "lat": 41.0082,
    "lng": 28.9784,
    "ended_at": None,
    "note": "Level 2",
    "adjusted_started_at": "2026-10-19T09:45:00Z",
    "has_photo": True,
    "user_id": "u-1",
}


@dataclass
class FakeTokenProvider:
    token: str | None = "token-1"
    refreshed: str | None = "token-2"
    refresh_calls: int = 0

    def access_token(self) -> str | None:
        return self.token

    def refresh(self) -> str | None:
        self.refresh_calls += 1
        return self.refreshed


@dataclass
class RecordingHandler:
    responses: list[httpx.Response]
    requests: list[httpx.Request] = field(default_factory=list)

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.responses.pop(0)


def _ok(data: object) -> httpx.Response:
    return httpx.Response(200, json={"success": True, "data": data})


def _client(handler, token_provider=None) -> HttpxParkingApiClient:  # type: ignore[no-untyped-def]
    return HttpxParkingApiClient(
        base_url=BASE_URL,
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
        token_provider=token_provider,
    )


def test_create_session_sends_payload_and_bearer_token() -> None:
    handler = RecordingHandler([_ok(SESSION_ROW)])
    client = _client(handler, FakeTokenProvider())
    backdated = datetime(2026, 10, 19, 9, 45, tzinfo=UTC)

    session = asyncio.run(
        client.create_session(
            41.0082,
            28.9784,
            note="Level 2",
            adjusted_started_at=backdated,
            has_photo=True,
        )
    )

    request = handler.requests[0]
    payload = json.loads(request.content.decode())
    assert request.method == "POST"
    assert request.url.path == "/api/parking/start"
    assert request.headers["Authorization"] == "Bearer token-1"
    assert payload["lat"] == 41.0082
    assert payload["lng"] == 28.9784
    assert payload["adjustedStartedAt"] == backdated.isoformat()
    assert payload["hasPhoto"] is True
    assert session.id == "s-1"
    assert session.latitude == 41.0082
    assert session.effective_started_at == backdated
    assert session.is_active


def test_end_session_posts_session_id() -> None:
    handler = RecordingHandler(
        [_ok({**SESSION_ROW, "ended_at": "2026-10-19T11:00:00Z", "duration_seconds": 4500})]
    )
    client = _client(handler)
    ended_at = datetime(2026, 10, 19, 11, 0, tzinfo=UTC)

    session = asyncio.run(client.end_session("s-1", ended_at))

    payload = json.loads(handler.requests[0].content.decode())
    assert payload == {"sessionId": "s-1", "endedAt": ended_at.isoformat()}
    assert session.ended_at == ended_at
    assert session.duration_seconds == 4500


def test_history_sends_paging_params() -> None:
    handler = RecordingHandler([_ok([SESSION_ROW])])
    client = _client(handler)

    sessions = asyncio.run(client.list_session_history(limit=50, offset=10))

    params = handler.requests[0].url.params
    assert params["limit"] == "50"
    assert params["offset"] == "10"
    assert [session.id for session in sessions] == ["s-1"]


def test_update_note_patches_session() -> None:
    handler = RecordingHandler([_ok({**SESSION_ROW, "note": "Blue gate"})])
    client = _client(handler)

    session = asyncio.run(client.update_session_note("s-1", "Blue gate"))

    request = handler.requests[0]
    assert request.method == "PATCH"
    assert request.url.path == "/api/parking/s-1"
    assert json.loads(request.content.decode()) == {"note": "Blue gate"}
    assert session.note == "Blue gate"


def test_envelope_error_becomes_backend_rejection() -> None:
    handler = RecordingHandler(
        [
            httpx.Response(
                409,
                json={
                    "success": False,
                    "error": {"code": "SESSION_ACTIVE", "message": "Already parked"},
                },
            )
        ]
    )
    client = _client(handler)

    with pytest.raises(BackendRejection) as excinfo:
        asyncio.run(client.create_session(41.0, 29.0))

    assert excinfo.value.code == "SESSION_ACTIVE"
    assert excinfo.value.status_code == 409
    assert str(excinfo.value) == "Already parked"


def test_unauthorized_refreshes_token_once_and_retries() -> None:
    handler = RecordingHandler(
        [
            httpx.Response(
                401,
                json={
                    "success": False,
                    "error": {"code": "UNAUTHORIZED", "message": "Token expired"},
                },
            ),
            _ok(SESSION_ROW),
        ]
    )
    tokens = FakeTokenProvider()
    client = _client(handler, tokens)

    session = asyncio.run(client.update_session_note("s-1", "Level 2"))

    assert session.id == "s-1"
    assert tokens.refresh_calls == 1
    assert [request.headers["Authorization"] for request in handler.requests] == [
        "Bearer token-1",
        "Bearer token-2",
    ]


def test_failed_refresh_raises_original_error() -> None:
    handler = RecordingHandler(
        [httpx.Response(401, json={"success": False, "error": {"message": "Nope"}})]
    )
    client = _client(handler, FakeTokenProvider(refreshed=None))

    with pytest.raises(BackendRejection) as excinfo:
        asyncio.run(client.update_session_note("s-1", None))

    assert excinfo.value.status_code == 401
    assert len(handler.requests) == 1


def test_history_for_missing_user_is_empty() -> None:
    handler = RecordingHandler(
        [
            httpx.Response(
                404,
                json={
                    "success": False,
                    "error": {"code": "NOT_FOUND", "message": "User not found"},
                },
            )
        ]
    )
    client = _client(handler)

    assert asyncio.run(client.list_session_history(limit=50)) == []


def test_html_response_is_server_configuration_error() -> None:
    handler = RecordingHandler(
        [httpx.Response(502, text="<!DOCTYPE html><html><body>Bad gateway</body></html>")]
    )
    client = _client(handler)

    with pytest.raises(BackendRejection) as excinfo:
        asyncio.run(client.end_session("s-1", datetime(2026, 10, 19, tzinfo=UTC)))

    assert excinfo.value.code == "SERVER_CONFIGURATION"
    assert excinfo.value.status_code == 502


def test_internal_error_without_body_uses_default_message() -> None:
    handler = RecordingHandler([httpx.Response(500, json={"success": False})])
    client = _client(handler)

    with pytest.raises(BackendRejection) as excinfo:
        asyncio.run(client.list_session_history(limit=5))

    assert str(excinfo.value) == "Server error. Please try again later."


def test_transport_error_becomes_network_failure() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    client = _client(handler)

    with pytest.raises(NetworkFailure):
        asyncio.run(client.create_session(41.0, 29.0))


def test_malformed_row_is_rejected() -> None:
    handler = RecordingHandler([_ok({"id": "s-1"})])
    client = _client(handler)

    with pytest.raises(BackendRejection) as excinfo:
        asyncio.run(client.create_session(41.0, 29.0))

    assert excinfo.value.code == "MALFORMED_PAYLOAD"


def test_cancelled_query_sends_nothing() -> None:
    handler = RecordingHandler([])
    client = _client(handler)
    token = CancellationToken(generation=3)
    token.cancel()

    with pytest.raises(OperationCancelled) as excinfo:
        asyncio.run(client.query_priced_spots(41.0, 29.0, 2000, cancellation=token))

    assert excinfo.value.generation == 3
    assert handler.requests == []


def test_geodata_queries_parse_rows() -> None:
    handler = RecordingHandler(
        [
            _ok(
                [
                    {
                        "id": "p-1",
                        "latitude": 41.01,
                        "longitude": 28.98,
                        "currency": "TRY",
                        "place_id": "place-1",
                        "price_json": {"1h": 60},
                    }
                ]
            ),
            _ok([{"id": "l-1", "name": "Karakoy Lot", "latitude": 41.02, "longitude": 28.97}]),
        ]
    )
    client = _client(handler)

    async def scenario():  # type: ignore[no-untyped-def]
        spots = await client.query_priced_spots(41.0, 29.0, 2000)
        locations = await client.query_parking_locations(41.0, 29.0, 2000)
        await client.close()
        return spots, locations

    spots, locations = asyncio.run(scenario())

    assert handler.requests[0].url.path == "/api/verified-prices"
    assert handler.requests[0].url.params["radius"] == "2000"
    assert spots[0].prices == {"1h": 60}
    assert spots[0].place_id == "place-1"
    assert locations[0].name == "Karakoy Lot"
    assert locations[0].address is None
