"""Service wiring for the BKK pipeline.

One ``BkkServices`` instance owns the reference tables, the feed coordinator
and the data manager for the whole process. The FastAPI app keeps it on
``app.state.bkk``; scripts and tests can build their own with ``create()``.
"""

from __future__ import annotations

import time
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass
from typing import Any, Optional

import httpx

from bkk_realtime.config import Settings, get_settings
from bkk_realtime.logging import get_logger
from bkk_realtime.models.transit import Alert, DataSnapshot, Route, Stop, VehiclePosition
from bkk_realtime.models.verification import (
    DisruptionVerification,
    ScheduleComparison,
    UserLocation,
    VehicleVerification,
)
from bkk_realtime.services import geo
from bkk_realtime.services.gtfs_rt.coordinator import FeedCoordinator
from bkk_realtime.services.gtfs_rt.fetcher import TextFeedFetcher
from bkk_realtime.services.gtfs_rt.manager import DataManager, Listener
from bkk_realtime.services.gtfs_static.loader import ReferenceData
from bkk_realtime.services.verification import (
    DEFAULT_DATA_SOURCE,
    build_disruption_record,
    build_reference_validation,
    build_vehicle_record,
    validate_verification,
)

logger = get_logger(__name__)


@dataclass
class BkkServices:
    """Facade over the pipeline components sharing one set of caches."""

    settings: Settings
    reference: ReferenceData
    coordinator: FeedCoordinator
    manager: DataManager

    @classmethod
    def create(
        cls,
        settings: Settings | None = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> BkkServices:
        """Wire up a fresh service graph.

        Args:
            settings: Configuration; defaults to the cached environment settings.
            transport: Optional httpx transport used for every download.
            clock: Monotonic clock driving the cache TTLs.
        """
        settings = settings or get_settings()
        fetcher = TextFeedFetcher(timeout_sec=settings.feed_fetch_timeout_sec, transport=transport)
        reference = ReferenceData(settings.routes_url, settings.stops_url, fetcher)
        coordinator = FeedCoordinator(reference, fetcher, settings, clock=clock)
        manager = DataManager(coordinator, settings, clock=clock)
        logger.debug("BKK services created", base_url=settings.bkk_base_url)
        return cls(settings=settings, reference=reference, coordinator=coordinator, manager=manager)

    # --- Feeds ---

    async def fetch_alerts(self) -> tuple[Alert, ...]:
        return await self.coordinator.fetch_alerts()

    async def fetch_vehicle_positions(self) -> tuple[VehiclePosition, ...]:
        return await self.coordinator.fetch_vehicle_positions()

    async def fetch_trip_updates(self) -> str:
        return await self.coordinator.fetch_trip_updates()

    async def snapshot(self, force_refresh: bool = False) -> DataSnapshot:
        return await self.manager.initialize(force_refresh=force_refresh)

    def subscribe(self, callback: Listener) -> Callable[[], None]:
        return self.manager.subscribe(callback)

    # --- Reference lookups ---

    def get_route(self, route_id: str) -> Route | None:
        return self.reference.get_route(route_id)

    def get_stop(self, stop_id: str) -> Stop | None:
        return self.reference.get_stop(stop_id)

    # --- Geo ---

    def find_nearby(
        self,
        vehicles: Iterable[VehiclePosition],
        lat: float,
        lng: float,
        radius_m: float | None = None,
    ) -> list[VehiclePosition]:
        radius = self.settings.default_nearby_radius_m if radius_m is None else radius_m
        return geo.find_nearby(vehicles, lat, lng, radius)

    def has_associated_alert(self, vehicle: VehiclePosition, alerts: Iterable[Alert]) -> bool:
        return geo.has_associated_alert(vehicle, alerts)

    # --- Verification ---

    def build_disruption_record(
        self,
        alert: Alert,
        user_location: Optional[UserLocation] = None,
        data_source: str = DEFAULT_DATA_SOURCE,
    ) -> DisruptionVerification:
        return build_disruption_record(
            alert,
            user_location,
            data_source,
            data_version=self.manager.snapshot.updated_at,
        )

    def build_vehicle_record(
        self,
        vehicle: VehiclePosition,
        user_location: Optional[UserLocation] = None,
        has_delays: Optional[bool] = None,
        related_alerts: Optional[Sequence[str]] = None,
        data_source: str = DEFAULT_DATA_SOURCE,
        schedule_comparison: Optional[ScheduleComparison] = None,
    ) -> VehicleVerification:
        """Build a vehicle record, filling gaps from the current snapshot.

        ``has_delays`` defaults to the trip-update flag of the vehicle and
        ``related_alerts`` to the ids of snapshot alerts touching its route.
        """
        if has_delays is None:
            has_delays = bool(vehicle.has_delay)
        if related_alerts is None:
            related_alerts = geo.related_alert_ids(vehicle, self.manager.snapshot.alerts)

        validation = None
        if vehicle.route_id:
            validation = build_reference_validation(vehicle.route_id, self.reference)

        return build_vehicle_record(
            vehicle,
            user_location,
            has_delays,
            related_alerts,
            data_source,
            schedule_comparison=schedule_comparison,
            reference_validation=validation,
        )

    def validate(self, obj: Any) -> bool:
        return validate_verification(obj)

    # --- Diagnostics and lifecycle ---

    def status(self) -> dict[str, Any]:
        return {
            "feeds": self.coordinator.status(),
            "snapshot": self.manager.status(),
            "reference": {
                "loaded": self.reference.is_loaded,
                "routes": self.reference.route_count,
                "stops": self.reference.stop_count,
            },
        }

    def reset(self) -> None:
        """Drop all cached data, listeners and reference tables."""
        self.manager.reset()


_services_instance: BkkServices | None = None


def get_services() -> BkkServices:
    """Get or create the process-wide services instance."""
    global _services_instance
    if _services_instance is None:
        _services_instance = BkkServices.create()
    return _services_instance


def reset_services() -> None:
    """Forget the process-wide instance (for testing)."""
    global _services_instance
    if _services_instance is not None:
        _services_instance.reset()
    _services_instance = None
