"""Pydantic models for ParkIQ backend payloads."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict

from parkiq.domain.geo import ParkingLocation, PricedSpot
from parkiq.domain.sessions import ParkingSession


class ApiErrorBody(BaseModel):
    """Error object inside a failed envelope."""

    code: str = "HTTP_ERROR"
    message: str = ""


class ApiEnvelope(BaseModel):
    """Envelope wrapping every backend response."""

    success: bool = False
    data: Any = None
    error: ApiErrorBody | None = None


class SessionRow(BaseModel):
    """Parking session as returned by the backend."""

    model_config = ConfigDict(extra="ignore")

    id: str
    started_at: datetime
    lat: float
    lng: float
    ended_at: datetime | None = None
    note: str | None = None
    adjusted_started_at: datetime | None = None
    has_photo: bool = False
    location_name: str | None = None
    next_tariff_change_at: datetime | None = None
    duration_seconds: int | None = None

    def to_domain(self) -> ParkingSession:
        return ParkingSession(
            id=self.id,
            started_at=self.started_at,
            latitude=self.lat,
            longitude=self.lng,
            adjusted_started_at=self.adjusted_started_at,
            note=self.note,
            has_photo=self.has_photo,
            location_name=self.location_name,
            next_tariff_change_at=self.next_tariff_change_at,
            ended_at=self.ended_at,
            duration_seconds=self.duration_seconds,
        )


class PricedSpotRow(BaseModel):
    """Verified price row."""

    model_config = ConfigDict(extra="ignore")

    id: str
    latitude: float
    longitude: float
    currency: str
    place_id: str | None = None
    price_json: Any = None

    def to_domain(self) -> PricedSpot:
        return PricedSpot(
            id=self.id,
            latitude=self.latitude,
            longitude=self.longitude,
            currency=self.currency,
            place_id=self.place_id,
            prices=self.price_json,
        )


class ParkingLocationRow(BaseModel):
    """Generic parking location row."""

    model_config = ConfigDict(extra="ignore")

    id: str
    name: str
    latitude: float
    longitude: float
    address: str | None = None

    def to_domain(self) -> ParkingLocation:
        return ParkingLocation(
            id=self.id,
            name=self.name,
            latitude=self.latitude,
            longitude=self.longitude,
            address=self.address,
        )
