"""Data manager: one combined alerts + vehicles snapshot for the application.

Multiple views (disruption picker, vehicle map, verification form) read the
same snapshot; the manager makes sure they do not each trigger their own
round trip to the large BKK feeds.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable
from datetime import datetime, timezone
from typing import Any, NamedTuple

from bkk_realtime.config import Settings, get_settings
from bkk_realtime.logging import get_logger
from bkk_realtime.models.transit import Alert, DataSnapshot, VehiclePosition
from bkk_realtime.services.gtfs_rt.coordinator import FeedCoordinator
from bkk_realtime.services.gtfs_rt.singleflight import SingleFlight

logger = get_logger(__name__)

Listener = Callable[[DataSnapshot], None]

_SNAPSHOT_KEY = "snapshot"


class CurrentData(NamedTuple):
    alerts: tuple[Alert, ...]
    vehicles: tuple[VehiclePosition, ...]
    is_stale: bool


class DataManager:
    """Fetches alerts and vehicles together and broadcasts each refresh.

    Usage:
        manager = DataManager(coordinator)
        unsubscribe = manager.subscribe(on_update)
        snapshot = await manager.initialize()
        snapshot = await manager.refresh()   # bypasses the TTL
    """

    def __init__(
        self,
        coordinator: FeedCoordinator,
        settings: Settings | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._coordinator = coordinator
        self._ttl = (settings or get_settings()).feed_cache_ttl_sec
        self._clock = clock
        self._flight: SingleFlight[str, DataSnapshot] = SingleFlight()
        self._listeners: dict[int, Listener] = {}
        self._next_listener_id = 0
        self._snapshot = DataSnapshot()
        self._initialized = False
        self._last_update = 0.0

    @property
    def snapshot(self) -> DataSnapshot:
        """Current data without triggering a refresh."""
        return self._snapshot

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    def is_stale(self) -> bool:
        return not self._initialized or self._clock() - self._last_update >= self._ttl

    def current_data(self) -> CurrentData:
        """Cached alerts and vehicles plus a staleness flag, without any I/O."""
        return CurrentData(self._snapshot.alerts, self._snapshot.vehicles, self.is_stale())

    async def initialize(self, force_refresh: bool = False) -> DataSnapshot:
        """Return the snapshot, refreshing it when stale, missing or forced.

        Concurrent calls share one refresh. If the very first refresh fails,
        the manager settles on an empty snapshot and the error is re-raised.
        """
        if self._flight.in_flight(_SNAPSHOT_KEY):
            logger.debug("Snapshot refresh already running, waiting")
            return await self._flight.do(_SNAPSHOT_KEY, self._perform_fetch)

        if self._initialized and not force_refresh and not self.is_stale():
            logger.debug("Returning cached snapshot")
            return self._snapshot

        return await self._flight.do(_SNAPSHOT_KEY, self._perform_fetch)

    async def refresh(self) -> DataSnapshot:
        return await self.initialize(force_refresh=True)

    async def _perform_fetch(self) -> DataSnapshot:
        logger.info("Fetching alerts and vehicle positions")
        try:
            alerts, vehicles = await asyncio.gather(
                self._coordinator.fetch_alerts(),
                self._coordinator.fetch_vehicle_positions(),
            )
        except Exception as exc:
            logger.error("Snapshot refresh failed", error=str(exc))
            if not self._initialized:
                self._snapshot = DataSnapshot()
                self._initialized = True
            raise

        self._snapshot = DataSnapshot(
            alerts=alerts,
            vehicles=vehicles,
            updated_at=datetime.now(timezone.utc),
        )
        self._last_update = self._clock()
        self._initialized = True

        logger.info(
            "Snapshot refreshed",
            alerts=len(alerts),
            vehicles=len(vehicles),
            listeners=len(self._listeners),
        )
        self._notify()
        return self._snapshot

    def subscribe(self, callback: Listener) -> Callable[[], None]:
        """Register a listener; returns a function that removes it again."""
        listener_id = self._next_listener_id
        self._next_listener_id += 1
        self._listeners[listener_id] = callback

        def unsubscribe() -> None:
            self._listeners.pop(listener_id, None)

        return unsubscribe

    def _notify(self) -> None:
        snapshot = self._snapshot
        for callback in list(self._listeners.values()):
            try:
                callback(snapshot)
            except Exception as exc:
                logger.error("Snapshot listener failed", exc_info=exc)

    def status(self) -> dict[str, Any]:
        now = self._clock()
        return {
            "initialized": self._initialized,
            "updated_at": self._snapshot.updated_at.isoformat()
            if self._snapshot.updated_at
            else None,
            "age_ms": int((now - self._last_update) * 1000) if self._last_update else 0,
            "alerts": len(self._snapshot.alerts),
            "vehicles": len(self._snapshot.vehicles),
            "loading": self._flight.in_flight(_SNAPSHOT_KEY),
            "listeners": len(self._listeners),
        }

    def reset(self) -> None:
        """Clear snapshot, listeners, feed caches and reference tables."""
        logger.info("Resetting BKK data")
        self._snapshot = DataSnapshot()
        self._initialized = False
        self._last_update = 0.0
        self._flight.forget()
        self._listeners.clear()
        self._coordinator.clear_all()
        self._coordinator.reference.reset()
