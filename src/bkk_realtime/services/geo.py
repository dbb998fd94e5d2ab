"""Geospatial queries over parsed vehicles and alerts.

All functions are stateless and free of I/O.
"""

from __future__ import annotations

import math
from collections.abc import Iterable
from datetime import datetime, timezone
from typing import Optional

from bkk_realtime.models.transit import Alert, VehiclePosition

EARTH_RADIUS_M = 6_371_000.0


def haversine_distance(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Great-circle distance between two points, in metres."""
    if lat1 == lat2 and lng1 == lng2:
        return 0.0

    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lng2 - lng1)

    a = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_M * c


def find_nearby(
    vehicles: Iterable[VehiclePosition],
    lat: float,
    lng: float,
    radius_m: float,
) -> list[VehiclePosition]:
    """Return vehicles within ``radius_m`` of the point, boundary inclusive."""
    return [
        vehicle
        for vehicle in vehicles
        if haversine_distance(lat, lng, vehicle.position.lat, vehicle.position.lng) <= radius_m
    ]


def has_associated_alert(vehicle: VehiclePosition, alerts: Iterable[Alert]) -> bool:
    """True if any alert lists the vehicle's route id or its display name."""
    keys = {key for key in (vehicle.route_id, vehicle.route_name) if key}
    return any(keys.intersection(alert.affected_routes) for alert in alerts)


def related_alert_ids(vehicle: VehiclePosition, alerts: Iterable[Alert]) -> list[str]:
    """Ids of the alerts that affect the vehicle's route, in feed order."""
    keys = {key for key in (vehicle.route_id, vehicle.route_name) if key}
    return [alert.id for alert in alerts if keys.intersection(alert.affected_routes)]


def is_active(alert: Alert, now: Optional[datetime] = None) -> bool:
    """An alert is active from ``start`` (inclusive) until ``end`` (exclusive).

    Alerts without a start time are always active; alerts without an end time
    stay active once started.
    """
    now = now or datetime.now(timezone.utc)
    if alert.start is not None and now < alert.start:
        return False
    if alert.end is not None and now >= alert.end:
        return False
    return True


def get_active_alerts(
    alerts: Iterable[Alert], now: Optional[datetime] = None
) -> list[Alert]:
    now = now or datetime.now(timezone.utc)
    return [alert for alert in alerts if is_active(alert, now)]
