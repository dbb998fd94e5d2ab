"""Builders and validation for verification records.

All functions here are pure: they read only their arguments (and the clock,
unless ``now`` is given) and return new immutable records.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime, timezone
from typing import Any, Optional, assert_never

from pydantic import TypeAdapter, ValidationError

from bkk_realtime.logging import get_logger
from bkk_realtime.models.transit import Alert, VehiclePosition
from bkk_realtime.models.verification import (
    ActivePeriod,
    AlertData,
    DisruptionVerification,
    RecordMetadata,
    ReferenceRoute,
    ReferenceValidation,
    RouteInfo,
    ScheduleComparison,
    TripModifications,
    UserLocation,
    VehicleCoordinates,
    VehicleData,
    VehicleInfo,
    VehicleVerification,
    VerificationRecord,
)
from bkk_realtime.services.geo import haversine_distance
from bkk_realtime.services.gtfs_static.loader import ReferenceData

logger = get_logger(__name__)

DEFAULT_DATA_SOURCE = "bkk_real_time_api"

_record_adapter: TypeAdapter[VerificationRecord] = TypeAdapter(VerificationRecord)


def _now(now: Optional[datetime]) -> datetime:
    return now or datetime.now(timezone.utc)


def build_disruption_record(
    alert: Alert,
    user_location: Optional[UserLocation] = None,
    data_source: str = DEFAULT_DATA_SOURCE,
    *,
    data_version: Optional[datetime] = None,
    now: Optional[datetime] = None,
) -> DisruptionVerification:
    """Snapshot an alert the user picked from the disruption list.

    Args:
        alert: The selected alert.
        user_location: Where the user was when selecting, if known.
        data_source: Tag of the feed the alert came from.
        data_version: Update time of the snapshot the alert belongs to.
        now: Record creation time; defaults to the current UTC time.
    """
    description = f"Forgalmi zavar: {alert.title}"
    if alert.description:
        description = f"{description} - {alert.description}"

    return DisruptionVerification(
        timestamp=_now(now),
        user_location=user_location,
        description=description,
        bkk_url=alert.url,
        metadata=RecordMetadata(
            data_source=data_source,
            data_version=data_version.isoformat() if data_version else None,
            context={
                "alert_priority": alert.priority,
                "affected_routes_count": len(alert.affected_routes),
            },
        ),
        alert_data=AlertData(
            id=alert.id,
            title=alert.title,
            description=alert.description,
            affected_routes=alert.affected_routes,
            priority=alert.priority,
            category=alert.category,
            effect=alert.effect,
            cause=alert.cause,
            active_period=ActivePeriod(start=alert.start, end=alert.end),
            url=alert.url,
        ),
    )


def build_vehicle_record(
    vehicle: VehiclePosition,
    user_location: Optional[UserLocation] = None,
    has_delays: bool = False,
    related_alert_ids: Sequence[str] = (),
    data_source: str = DEFAULT_DATA_SOURCE,
    *,
    schedule_comparison: Optional[ScheduleComparison] = None,
    reference_validation: Optional[ReferenceValidation] = None,
    now: Optional[datetime] = None,
) -> VehicleVerification:
    """Snapshot a vehicle the user picked near their location."""
    description = f"Jármű menetrend módosítás: {vehicle.route_id} - {vehicle.route_name}"
    if has_delays:
        description = f"{description} (késések észlelve)"

    distance = None
    if user_location is not None:
        distance = haversine_distance(
            user_location.latitude,
            user_location.longitude,
            vehicle.position.lat,
            vehicle.position.lng,
        )

    return VehicleVerification(
        timestamp=_now(now),
        user_location=user_location,
        description=description,
        metadata=RecordMetadata(
            data_source=data_source,
            data_version=vehicle.timestamp.isoformat(),
            context={
                "has_delays": has_delays,
                "related_alerts_count": len(related_alert_ids),
            },
        ),
        vehicle_data=VehicleData(
            vehicle_id=vehicle.vehicle_id,
            route=RouteInfo(
                id=vehicle.route_id,
                name=vehicle.route_name,
                type=vehicle.vehicle_type,
            ),
            position=VehicleCoordinates(
                latitude=vehicle.position.lat,
                longitude=vehicle.position.lng,
                bearing=vehicle.position.bearing,
                speed=vehicle.position.speed,
            ),
            vehicle_info=VehicleInfo(
                license_plate=vehicle.license_plate,
                label=vehicle.label or vehicle.vehicle_id,
                status=vehicle.status,
                current_stop=vehicle.current_stop,
            ),
            trip_modifications=TripModifications(
                has_delays=has_delays,
                schedule_comparison=schedule_comparison,
                related_alerts=tuple(related_alert_ids),
            ),
            distance_from_user=distance,
            data_timestamp=vehicle.timestamp,
        ),
        gtfs_validation=reference_validation,
    )


def build_reference_validation(route_id: str, reference: ReferenceData) -> ReferenceValidation:
    """Look the route up in the static table and record what was found."""
    route = reference.get_route(route_id)
    if route is None:
        return ReferenceValidation(route_found=False)

    try:
        route_type = int(route.route_type)
    except ValueError:
        route_type = -1

    return ReferenceValidation(
        route_found=True,
        gtfs_route=ReferenceRoute(
            route_id=route.id,
            route_short_name=route.short_name,
            route_long_name=route.long_name,
            route_type=route_type,
        ),
    )


def parse_verification(obj: Any) -> VerificationRecord:
    """Validate a (possibly round-tripped) record.

    Raises:
        pydantic.ValidationError: If the object is not a well-formed record.
    """
    return _record_adapter.validate_python(obj)


def validate_verification(obj: Any) -> bool:
    """True if ``obj`` is a well-formed disruption or vehicle record.

    Checks the ``type`` discriminant, the kind-specific payload and its
    mandatory id before the record is trusted. A vehicle record must also
    name its route; the builder accepts route-less vehicles, so that check
    lives here.
    """
    try:
        record = parse_verification(obj)
    except ValidationError as exc:
        logger.warning("Rejected verification record", errors=exc.error_count())
        return False
    if isinstance(record, VehicleVerification) and not record.vehicle_data.route.id:
        logger.warning("Rejected verification record", reason="missing route id")
        return False
    return True


def record_subject_id(record: VerificationRecord) -> str:
    """Id of the alert or vehicle the record is about."""
    if isinstance(record, DisruptionVerification):
        return record.alert_data.id
    if isinstance(record, VehicleVerification):
        return record.vehicle_data.vehicle_id
    assert_never(record)


def to_payload(record: VerificationRecord) -> dict[str, Any]:
    """JSON-ready dict for the ``bkk_verification`` field of a submission."""
    return record.model_dump(mode="json", exclude_none=True)
