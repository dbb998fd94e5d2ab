"""Per-feed TTL cache with request coalescing over the BKK text feeds."""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Generic, Optional, TypeVar, Union

from bkk_realtime.config import Settings, get_settings
from bkk_realtime.logging import get_logger
from bkk_realtime.models.transit import Alert, FeedType, VehiclePosition
from bkk_realtime.services.gtfs_rt.fetcher import FeedFetchError, TextFeedFetcher
from bkk_realtime.services.gtfs_rt.parser import FeedTextParser, apply_trip_delays
from bkk_realtime.services.gtfs_rt.singleflight import SingleFlight
from bkk_realtime.services.gtfs_static.loader import ReferenceData

logger = get_logger(__name__)

T = TypeVar("T")

Alerts = tuple[Alert, ...]
Vehicles = tuple[VehiclePosition, ...]
FeedData = Union[Alerts, Vehicles, str]


@dataclass
class CacheEntry(Generic[T]):
    """Last successful result of one feed and when it was stored."""

    data: Optional[T] = None
    timestamp: float = 0.0

    def has_data(self) -> bool:
        # An empty trip-updates body counts as "nothing cached"
        return self.data is not None and self.data != ""


class FeedCoordinator:
    """Fetches, parses and caches the Alerts, VehiclePositions and TripUpdates feeds.

    ``fetch(feed_type)`` returns the cached result while it is younger than
    the TTL. Otherwise it joins the in-flight refresh for that feed or starts
    one, so concurrent callers share a single network round trip and converge
    on the same result object.

    Failure policy per feed:
        Alerts, VehiclePositions: fall back to the bundled example payload;
            an empty tuple if that fails too.
        TripUpdates: no fallback, resolves to ``""``.
    """

    def __init__(
        self,
        reference: ReferenceData,
        fetcher: TextFeedFetcher,
        settings: Settings | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._settings = settings or get_settings()
        self._reference = reference
        self._fetcher = fetcher
        self._parser = FeedTextParser(reference)
        self._clock = clock
        self._ttl = self._settings.feed_cache_ttl_sec
        self._flight: SingleFlight[FeedType, Any] = SingleFlight()
        self._entries: dict[FeedType, CacheEntry[Any]] = {}
        self.clear_all()

    @property
    def reference(self) -> ReferenceData:
        return self._reference

    @property
    def parser(self) -> FeedTextParser:
        return self._parser

    def _is_fresh(self, entry: CacheEntry[Any]) -> bool:
        return entry.has_data() and self._clock() - entry.timestamp < self._ttl

    async def fetch(self, feed_type: FeedType) -> FeedData:
        entry = self._entries[feed_type]
        if self._is_fresh(entry):
            logger.debug("Returning cached feed", feed_type=feed_type.value)
            return entry.data

        if self._flight.in_flight(feed_type):
            logger.debug("Joining in-flight feed request", feed_type=feed_type.value)
        return await self._flight.do(feed_type, lambda: self._refresh(feed_type, entry))

    async def fetch_alerts(self) -> Alerts:
        return await self.fetch(FeedType.ALERTS)  # type: ignore[return-value]

    async def fetch_vehicle_positions(self) -> Vehicles:
        return await self.fetch(FeedType.VEHICLE_POSITIONS)  # type: ignore[return-value]

    async def fetch_trip_updates(self) -> str:
        return await self.fetch(FeedType.TRIP_UPDATES)  # type: ignore[return-value]

    async def _refresh(self, feed_type: FeedType, entry: CacheEntry[Any]) -> FeedData:
        logger.info("Fetching fresh feed data", feed_type=feed_type.value)
        result: FeedData
        if feed_type is FeedType.ALERTS:
            result = await self._load_alerts()
        elif feed_type is FeedType.VEHICLE_POSITIONS:
            result = await self._load_vehicles()
        else:
            result = await self._load_trip_updates()

        # ``entry`` is the object current when the refresh started; after
        # clear_all() it is detached and this write is discarded with it.
        entry.data = result
        entry.timestamp = self._clock()
        return result

    async def _load_alerts(self) -> Alerts:
        await self._reference.load()
        try:
            text = await self._fetcher.fetch(self._settings.alerts_url, FeedType.ALERTS.value)
        except FeedFetchError as exc:
            logger.warning(
                "Live alerts unavailable, using example payload",
                feed_type=FeedType.ALERTS.value,
                error=str(exc),
            )
            return await self._load_example(
                FeedType.ALERTS, self._settings.example_alerts_url, self._parser.parse_alerts
            )
        return tuple(self._parser.parse_alerts(text))

    async def _load_vehicles(self) -> Vehicles:
        await self._reference.load()
        try:
            text = await self._fetcher.fetch(
                self._settings.vehicle_positions_url, FeedType.VEHICLE_POSITIONS.value
            )
        except FeedFetchError as exc:
            logger.warning(
                "Live vehicle positions unavailable, using example payload",
                feed_type=FeedType.VEHICLE_POSITIONS.value,
                error=str(exc),
            )
            return await self._load_example(
                FeedType.VEHICLE_POSITIONS,
                self._settings.example_vehicle_positions_url,
                self._parser.parse_vehicle_positions,
            )

        vehicles = self._parser.parse_vehicle_positions(text)
        try:
            trip_updates = await self.fetch_trip_updates()
            if trip_updates:
                delays = self._parser.parse_trip_delays(trip_updates)
                vehicles = apply_trip_delays(
                    vehicles, delays, self._settings.delay_threshold_minutes
                )
        except Exception as exc:
            logger.warning(
                "Trip update enrichment failed, continuing without delays",
                error=str(exc),
            )
        return tuple(vehicles)

    async def _load_trip_updates(self) -> str:
        try:
            return await self._fetcher.fetch(
                self._settings.trip_updates_url, FeedType.TRIP_UPDATES.value
            )
        except FeedFetchError as exc:
            logger.error(
                "Failed to fetch trip updates",
                feed_type=FeedType.TRIP_UPDATES.value,
                error=str(exc),
            )
            return ""

    async def _load_example(
        self,
        feed_type: FeedType,
        url: str,
        parse: Callable[[str], list[Any]],
    ) -> tuple[Any, ...]:
        try:
            text = await self._fetcher.fetch(url, f"{feed_type.value} example")
        except FeedFetchError as exc:
            logger.error(
                "Example payload unavailable",
                feed_type=feed_type.value,
                error=str(exc),
            )
            return ()
        return tuple(parse(text))

    def clear_all(self) -> None:
        """Reset every feed to its empty initial state."""
        self._entries = {feed_type: CacheEntry() for feed_type in FeedType}
        self._flight.forget()

    def status(self) -> dict[str, dict[str, Any]]:
        """Cached-or-not, age and loading flag per feed, for diagnostics."""
        now = self._clock()
        report: dict[str, dict[str, Any]] = {}
        for feed_type, entry in self._entries.items():
            report[feed_type.value] = {
                "cached": self._is_fresh(entry),
                "age_ms": int((now - entry.timestamp) * 1000) if entry.timestamp else 0,
                "loading": self._flight.in_flight(feed_type),
            }
        return report
