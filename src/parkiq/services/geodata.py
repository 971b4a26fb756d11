"""Map geodata fetching with caching, debouncing and cancellation."""

import asyncio
import logging
from collections.abc import Callable
from typing import TYPE_CHECKING

from parkiq.domain.errors import OperationCancelled, ParkingError
from parkiq.domain.geo import (
    Coordinate,
    GeoFetchError,
    GeoItem,
    GeoQuery,
    GeoUpdate,
    ParkingLocation,
    PricedSpot,
)
from parkiq.services.cache import GeoCache
from parkiq.services.cancellation import CancellationToken
from parkiq.services.events import Listeners

if TYPE_CHECKING:
    from parkiq.adapters.parking_api_client import ParkingApi

_logger = logging.getLogger(__name__)

DEFAULT_RADIUS_METERS = 2000
DEFAULT_DEBOUNCE_SECONDS = 0.3
# Roughly 50 m of latitude.
DEFAULT_MIN_DISTANCE_DEGREES = 0.0005


class FetchCoordinator:
    """Keeps map markers in sync with the visible area.

    Every candidate center is first answered from the cache, then a refresh is
    debounced, gated on distance from the last fetched center, and issued for
    prices and locations concurrently. A newer cycle cancels the older one's
    timer and token together; results of a cancelled cycle are dropped.
    """

    def __init__(  # noqa: PLR0913
        self,
        api: "ParkingApi",
        cache: GeoCache,
        radius_meters: int = DEFAULT_RADIUS_METERS,
        debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS,
        min_distance_degrees: float = DEFAULT_MIN_DISTANCE_DEGREES,
    ) -> None:
        self.api = api
        self.cache = cache
        self.radius_meters = radius_meters
        self.debounce_seconds = debounce_seconds
        self.min_distance_degrees = min_distance_degrees
        self.prices: tuple[PricedSpot, ...] = ()
        self.locations: tuple[ParkingLocation, ...] = ()
        self.error: ParkingError | None = None
        self._updates: Listeners[GeoUpdate] = Listeners(name="geo-updates")
        self._errors: Listeners[GeoFetchError] = Listeners(name="geo-errors")
        self._loading_listeners: Listeners[bool] = Listeners(name="geo-loading")
        self._loading = False
        self._generation = 0
        self._token: CancellationToken | None = None
        self._timer: asyncio.TimerHandle | None = None
        self._cycle: asyncio.Task | None = None
        self._last_fetched: Coordinate | None = None
        self._initial_done = False

    @property
    def loading(self) -> bool:
        return self._loading

    @property
    def last_fetched(self) -> Coordinate | None:
        """Center of the last fetch cycle that completed."""
        return self._last_fetched

    @property
    def debounce_pending(self) -> bool:
        return self._timer is not None

    def subscribe(self, listener: Callable[[GeoUpdate], None]) -> Callable[[], None]:
        return self._updates.subscribe(listener)

    def subscribe_errors(
        self, listener: Callable[[GeoFetchError], None]
    ) -> Callable[[], None]:
        return self._errors.subscribe(listener)

    def subscribe_loading(self, listener: Callable[[bool], None]) -> Callable[[], None]:
        return self._loading_listeners.subscribe(listener)

    def request(self, center: Coordinate, force: bool = False) -> bool:
        """Handle a new map center and return True if a refresh was scheduled.

        Must be called from within the running event loop.
        """
        self._serve_cached(center)
        if not force and not self._moved_enough(center):
            return False
        self._cancel_pending()
        token = self._next_token()
        loop = asyncio.get_running_loop()
        self._timer = loop.call_later(self.debounce_seconds, self._fire, center, token)
        return True

    async def fetch_initial(self, center: Coordinate) -> None:
        """Fetch immediately on the first location fix.

        Only the first call skips the debounce; later calls behave like a
        regular ``request``.
        """
        if self._initial_done:
            self.request(center)
            return
        self._initial_done = True
        self._serve_cached(center)
        self._cancel_pending()
        token = self._next_token()
        task = self._start_cycle(center, token)
        await asyncio.wait({task})

    async def close(self) -> None:
        """Cancel any pending timer and in-flight cycle."""
        cycle = self._cycle
        self._cancel_pending()
        if cycle is not None and not cycle.done():
            await asyncio.wait({cycle})
        self._cycle = None
        self._set_loading(False)

    def _fire(self, center: Coordinate, token: CancellationToken) -> None:
        self._timer = None
        if token.cancelled:
            return
        self._start_cycle(center, token)

    def _start_cycle(self, center: Coordinate, token: CancellationToken) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(self._run_cycle(center, token))
        token.bind(task)
        self._cycle = task
        return task

    async def _run_cycle(self, center: Coordinate, token: CancellationToken) -> None:
        self._set_loading(True)
        self.error = None
        results = await asyncio.gather(
            self._fetch_one(GeoQuery.PRICES, center, token),
            self._fetch_one(GeoQuery.LOCATIONS, center, token),
        )
        if not self._is_current(token):
            return
        if any(results):
            self._last_fetched = center
        self._set_loading(False)

    async def _fetch_one(
        self, query: GeoQuery, center: Coordinate, token: CancellationToken
    ) -> bool:
        key = self.cache.key_for(center, query)
        fresh = self.cache.get_fresh(key)
        try:
            items = await self._query(query, center, token)
        except OperationCancelled:
            return False
        except ParkingError as exc:
            if not self._is_current(token):
                return False
            if fresh is not None:
                _logger.info("Serving cached %s after fetch failure: %s", query, exc)
                return False
            _logger.warning("Failed to fetch %s near %s: %s", query, center, exc)
            self.error = exc
            self._errors.publish(GeoFetchError(query=query, center=center, error=exc))
            return False
        if not self._is_current(token):
            _logger.debug("Discarding superseded %s result", query)
            return False
        self.cache.put(key, items)
        self._publish(GeoUpdate(query=query, center=center, items=items))
        return True

    async def _query(
        self, query: GeoQuery, center: Coordinate, token: CancellationToken
    ) -> tuple[GeoItem, ...]:
        if query is GeoQuery.PRICES:
            spots = await self.api.query_priced_spots(
                center.latitude,
                center.longitude,
                self.radius_meters,
                cancellation=token,
            )
            return tuple(spots)
        locations = await self.api.query_parking_locations(
            center.latitude,
            center.longitude,
            self.radius_meters,
            cancellation=token,
        )
        return tuple(locations)

    def _serve_cached(self, center: Coordinate) -> None:
        for query in GeoQuery:
            entry = self.cache.get_fresh(self.cache.key_for(center, query))
            if entry is not None:
                self._publish(
                    GeoUpdate(query=query, center=center, items=entry.payload, cached=True)
                )

    def _publish(self, update: GeoUpdate) -> None:
        if update.query is GeoQuery.PRICES:
            self.prices = update.items
        else:
            self.locations = update.items
        self._updates.publish(update)

    def _moved_enough(self, center: Coordinate) -> bool:
        last = self._last_fetched
        if last is None:
            return True
        lat_diff = abs(center.latitude - last.latitude)
        lng_diff = abs(center.longitude - last.longitude)
        return lat_diff > self.min_distance_degrees or lng_diff > self.min_distance_degrees

    def _next_token(self) -> CancellationToken:
        self._generation += 1
        self._token = CancellationToken(generation=self._generation)
        return self._token

    def _is_current(self, token: CancellationToken) -> bool:
        return not token.cancelled and token.generation == self._generation

    def _cancel_pending(self) -> None:
        # Timer and token are always cancelled together.
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        if self._token is not None:
            self._token.cancel()
            self._token = None

    def _set_loading(self, loading: bool) -> None:
        if loading == self._loading:
            return
        self._loading = loading
        self._loading_listeners.publish(loading)
