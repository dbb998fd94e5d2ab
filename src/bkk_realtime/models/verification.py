"""Verification records attached to absence-excuse submissions.

A record proves that a specific disruption or vehicle state was shown to the
user at a specific moment. Records are tagged by ``type`` and embed a full
snapshot of the selected alert or vehicle, so they never depend on live feed
state once built.
"""

from __future__ import annotations

from datetime import datetime
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from bkk_realtime.models.transit import TransitCategory

DISRUPTION = "disruption"
VEHICLE_MODIFICATION = "vehicle_modification"


class _Record(BaseModel):
    model_config = ConfigDict(frozen=True)


class UserLocation(_Record):
    latitude: float
    longitude: float
    accuracy: Optional[float] = None


class RecordMetadata(_Record):
    """Audit metadata: which data source the record was built from."""

    data_source: str
    data_version: Optional[str] = None
    context: dict[str, Any] = Field(default_factory=dict)


class ActivePeriod(_Record):
    start: Optional[datetime] = None
    end: Optional[datetime] = None


class AlertData(_Record):
    id: str = Field(min_length=1)
    title: str = Field(min_length=1)
    description: str = ""
    affected_routes: tuple[str, ...] = ()
    priority: int
    category: TransitCategory
    effect: str = ""
    cause: str = ""
    active_period: ActivePeriod
    url: Optional[str] = None


class RouteInfo(_Record):
    id: str = ""
    name: str = ""
    type: TransitCategory


class VehicleCoordinates(_Record):
    latitude: float
    longitude: float
    bearing: Optional[float] = None
    speed: Optional[float] = None


class VehicleInfo(_Record):
    license_plate: Optional[str] = None
    label: str = ""
    status: str = ""
    current_stop: Optional[str] = None


class ScheduleComparison(_Record):
    planned_times: dict[str, str] = Field(default_factory=dict)
    actual_times: dict[str, str] = Field(default_factory=dict)
    delays: dict[str, int] = Field(default_factory=dict)


class TripModifications(_Record):
    has_delays: bool
    schedule_comparison: Optional[ScheduleComparison] = None
    related_alerts: tuple[str, ...] = ()


class VehicleData(_Record):
    vehicle_id: str = Field(min_length=1)
    route: RouteInfo
    position: VehicleCoordinates
    vehicle_info: VehicleInfo
    trip_modifications: TripModifications
    distance_from_user: Optional[float] = None
    data_timestamp: datetime


class ReferenceRoute(_Record):
    route_id: str
    route_short_name: str
    route_long_name: str
    route_type: int


class ReferenceValidation(_Record):
    """Result of looking the vehicle's route up in the static routes table."""

    route_found: bool
    gtfs_route: Optional[ReferenceRoute] = None


class DisruptionVerification(_Record):
    type: Literal["disruption"] = DISRUPTION
    timestamp: datetime
    user_location: Optional[UserLocation] = None
    description: str = Field(min_length=1)
    bkk_url: Optional[str] = None
    metadata: RecordMetadata
    alert_data: AlertData


class VehicleVerification(_Record):
    type: Literal["vehicle_modification"] = VEHICLE_MODIFICATION
    timestamp: datetime
    user_location: Optional[UserLocation] = None
    description: str = Field(min_length=1)
    bkk_url: Optional[str] = None
    metadata: RecordMetadata
    vehicle_data: VehicleData
    gtfs_validation: Optional[ReferenceValidation] = None


VerificationRecord = Annotated[
    Union[DisruptionVerification, VehicleVerification],
    Field(discriminator="type"),
]
