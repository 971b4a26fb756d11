"""ParkIQ backend API client."""

import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any, Protocol, TypeVar

import httpx
from pydantic import BaseModel, ValidationError

from parkiq.adapters.parking_api_models import (
    ApiEnvelope,
    ApiErrorBody,
    ParkingLocationRow,
    PricedSpotRow,
    SessionRow,
)
from parkiq.domain.errors import BackendRejection, NetworkFailure
from parkiq.domain.geo import ParkingLocation, PricedSpot
from parkiq.domain.sessions import ParkingSession
from parkiq.services.cancellation import CancellationToken

RowT = TypeVar("RowT", bound=BaseModel)

_logger = logging.getLogger(__name__)


class TokenProvider(Protocol):
    """Source of the bearer token sent to the backend."""

    def access_token(self) -> str | None:
        """Return the current access token, if signed in."""

    def refresh(self) -> str | None:
        """Refresh the session and return the new access token, if any."""


class ParkingApi(Protocol):
    """Interface for the ParkIQ backend."""

    async def create_session(  # noqa: PLR0913
        self,
        latitude: float,
        longitude: float,
        note: str | None = None,
        adjusted_started_at: datetime | None = None,
        has_photo: bool = False,
        location_name: str | None = None,
    ) -> ParkingSession:
        """Create a parking session; fails if one is already active."""

    async def end_session(self, session_id: str, ended_at: datetime) -> ParkingSession:
        """End an active session and return the closed record."""

    async def list_session_history(
        self, limit: int, offset: int = 0
    ) -> list[ParkingSession]:
        """Return sessions, most recent first."""

    async def update_session_note(
        self, session_id: str, note: str | None
    ) -> ParkingSession:
        """Replace the note of an active session."""

    async def query_priced_spots(
        self,
        latitude: float,
        longitude: float,
        radius_meters: int,
        cancellation: CancellationToken | None = None,
    ) -> list[PricedSpot]:
        """Return verified prices around a point."""

    async def query_parking_locations(
        self,
        latitude: float,
        longitude: float,
        radius_meters: int,
        cancellation: CancellationToken | None = None,
    ) -> list[ParkingLocation]:
        """Return parking locations around a point."""


@dataclass
class HttpxParkingApiClient(ParkingApi):
    """HTTPX-backed client for the ParkIQ JSON envelope API."""

    base_url: str
    http_client: httpx.AsyncClient
    token_provider: TokenProvider | None = None
    timeout_seconds: float | None = None

    @classmethod
    def create(
        cls,
        base_url: str,
        token_provider: TokenProvider | None = None,
        timeout_seconds: float | None = None,
    ) -> "HttpxParkingApiClient":
        """Create an API client with a managed httpx session."""
        return cls(
            base_url=base_url.rstrip("/"),
            http_client=httpx.AsyncClient(),
            token_provider=token_provider,
            timeout_seconds=timeout_seconds,
        )

    async def create_session(  # noqa: PLR0913
        self,
        latitude: float,
        longitude: float,
        note: str | None = None,
        adjusted_started_at: datetime | None = None,
        has_photo: bool = False,
        location_name: str | None = None,
    ) -> ParkingSession:
        """Start a parking session."""
        data = await self._request(
            "POST",
            "/api/parking/start",
            json={
                "startedAt": datetime.now(tz=UTC).isoformat(),
                "lat": latitude,
                "lng": longitude,
                "note": note,
                "adjustedStartedAt": (
                    adjusted_started_at.isoformat() if adjusted_started_at else None
                ),
                "hasPhoto": has_photo,
                "locationName": location_name,
            },
        )
        return _parse_row(data, SessionRow).to_domain()

    async def end_session(self, session_id: str, ended_at: datetime) -> ParkingSession:
        """End a parking session."""
        data = await self._request(
            "POST",
            "/api/parking/end",
            json={"sessionId": session_id, "endedAt": ended_at.isoformat()},
        )
        return _parse_row(data, SessionRow).to_domain()

    async def list_session_history(
        self, limit: int, offset: int = 0
    ) -> list[ParkingSession]:
        """Fetch session history, most recent first."""
        data = await self._request(
            "GET",
            "/api/parking/history",
            params={"limit": limit, "offset": offset},
            empty_if_user_missing=True,
        )
        return [row.to_domain() for row in _parse_rows(data, SessionRow)]

    async def update_session_note(
        self, session_id: str, note: str | None
    ) -> ParkingSession:
        """Update a session note."""
        data = await self._request(
            "PATCH", f"/api/parking/{session_id}", json={"note": note}
        )
        return _parse_row(data, SessionRow).to_domain()

    async def query_priced_spots(
        self,
        latitude: float,
        longitude: float,
        radius_meters: int,
        cancellation: CancellationToken | None = None,
    ) -> list[PricedSpot]:
        """Fetch verified prices near a point."""
        data = await self._request(
            "GET",
            "/api/verified-prices",
            params={"lat": latitude, "lng": longitude, "radius": radius_meters},
            cancellation=cancellation,
        )
        return [row.to_domain() for row in _parse_rows(data, PricedSpotRow)]

    async def query_parking_locations(
        self,
        latitude: float,
        longitude: float,
        radius_meters: int,
        cancellation: CancellationToken | None = None,
    ) -> list[ParkingLocation]:
        """Fetch parking locations near a point."""
        data = await self._request(
            "GET",
            "/api/parking-locations",
            params={"lat": latitude, "lng": longitude, "radius": radius_meters},
            cancellation=cancellation,
        )
        return [row.to_domain() for row in _parse_rows(data, ParkingLocationRow)]

    async def close(self) -> None:
        """Close the underlying HTTP session."""
        await self.http_client.aclose()

    async def _request(  # noqa: PLR0913
        self,
        method: str,
        path: str,
        *,
        params: dict[str, object] | None = None,
        json: dict[str, object] | None = None,
        cancellation: CancellationToken | None = None,
        empty_if_user_missing: bool = False,
    ) -> Any:
        if cancellation is not None:
            cancellation.raise_if_cancelled()
        token = self.token_provider.access_token() if self.token_provider else None
        response = await self._send(method, path, token, params, json)
        if cancellation is not None:
            cancellation.raise_if_cancelled()
        try:
            return _unwrap(response)
        except BackendRejection as exc:
            if token and _is_auth_error(exc):
                refreshed, data = await self._retry_after_refresh(
                    method, path, params, json
                )
                if refreshed:
                    return data
            if empty_if_user_missing and _is_user_missing(exc):
                return []
            raise

    async def _retry_after_refresh(
        self,
        method: str,
        path: str,
        params: dict[str, object] | None,
        json: dict[str, object] | None,
    ) -> tuple[bool, Any]:
        new_token = self.token_provider.refresh() if self.token_provider else None
        if new_token is None:
            return False, None
        response = await self._send(method, path, new_token, params, json)
        try:
            return True, _unwrap(response)
        except BackendRejection as exc:
            _logger.warning("Retry after token refresh failed for %s: %s", path, exc)
            return False, None

    async def _send(
        self,
        method: str,
        path: str,
        token: str | None,
        params: dict[str, object] | None,
        json: dict[str, object] | None,
    ) -> httpx.Response:
        url = path if path.startswith("http") else f"{self.base_url}{path}"
        headers = {"Content-Type": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        extra: dict[str, object] = {}
        if self.timeout_seconds is not None:
            extra["timeout"] = self.timeout_seconds
        try:
            return await self.http_client.request(
                method, url, params=params, json=json, headers=headers, **extra
            )
        except httpx.TransportError as exc:
            raise NetworkFailure() from exc


def _unwrap(response: httpx.Response) -> Any:
    """Return the envelope's data or raise BackendRejection."""
    status = response.status_code
    content_type = response.headers.get("content-type", "")
    if "application/json" not in content_type:
        text = response.text
        if "<!DOCTYPE html>" in text or "<html>" in text:
            raise BackendRejection(
                f"Server configuration error: {status}. Check backend logs.",
                code="SERVER_CONFIGURATION",
                status_code=status,
            )
        raise BackendRejection(
            text or f"Server error: {status} {response.reason_phrase}",
            status_code=status,
        )
    try:
        envelope = ApiEnvelope.model_validate_json(response.content)
    except ValidationError as exc:
        raise BackendRejection(
            f"Server error: {status} {response.reason_phrase}", status_code=status
        ) from exc
    if response.is_success and envelope.success:
        return envelope.data
    error = envelope.error or ApiErrorBody(
        message=(
            "Server error. Please try again later."
            if status == httpx.codes.INTERNAL_SERVER_ERROR
            else f"HTTP {status}"
        )
    )
    raise BackendRejection(
        error.message or f"HTTP {status}", code=error.code, status_code=status
    )


def _is_user_missing(exc: BackendRejection) -> bool:
    return "user not found" in exc.message.lower()


def _is_auth_error(exc: BackendRejection) -> bool:
    return exc.status_code == httpx.codes.UNAUTHORIZED or _is_user_missing(exc)


def _parse_row(data: Any, model: type[RowT]) -> RowT:
    try:
        return model.model_validate(data)
    except ValidationError as exc:
        raise BackendRejection(
            f"Malformed {model.__name__} payload", code="MALFORMED_PAYLOAD"
        ) from exc


def _parse_rows(data: Any, model: type[RowT]) -> list[RowT]:
    return [_parse_row(row, model) for row in data or []]
