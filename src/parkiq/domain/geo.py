"""Domain models for map geodata."""

from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum


class GeoQuery(StrEnum):
    """Independent geodata result sets shown on the map."""

    PRICES = "prices"
    LOCATIONS = "locations"


@dataclass(frozen=True)
class Coordinate:
    """A WGS84 point."""

    latitude: float
    longitude: float


@dataclass(frozen=True)
class PricedSpot:
    """A parking spot with a verified price table."""

    id: str
    latitude: float
    longitude: float
    currency: str
    place_id: str | None = None
    prices: object | None = None


@dataclass(frozen=True)
class ParkingLocation:
    """A generic parking location without price data."""

    id: str
    name: str
    latitude: float
    longitude: float
    address: str | None = None


GeoItem = PricedSpot | ParkingLocation


@dataclass(frozen=True)
class GeoCacheKey:
    """Cache key quantized to roughly 100 m."""

    query: GeoQuery
    latitude: float
    longitude: float

    @classmethod
    def for_coordinate(cls, coordinate: Coordinate, query: GeoQuery) -> "GeoCacheKey":
        return cls(
            query=query,
            latitude=round(coordinate.latitude, 3),
            longitude=round(coordinate.longitude, 3),
        )

    def __str__(self) -> str:
        return f"{self.query}-{self.latitude}-{self.longitude}"


@dataclass(frozen=True)
class GeoCacheEntry:
    """Last successful result set for a cache key."""

    key: GeoCacheKey
    payload: tuple[GeoItem, ...]
    fetched_at: datetime


@dataclass(frozen=True)
class GeoUpdate:
    """A result set published to map listeners."""

    query: GeoQuery
    center: Coordinate
    items: tuple[GeoItem, ...]
    cached: bool = False


@dataclass(frozen=True)
class GeoFetchError:
    """A fetch failure surfaced to map listeners."""

    query: GeoQuery
    center: Coordinate
    error: Exception
