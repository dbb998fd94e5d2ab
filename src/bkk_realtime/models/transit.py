"""Transit domain models: reference rows and parsed real-time records."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict

TransitCategory = Literal["busz", "villamos", "metro", "hev", "ejszakai", "troli", "hajo"]

CATEGORIES: tuple[TransitCategory, ...] = (
    "busz",
    "villamos",
    "metro",
    "hev",
    "ejszakai",
    "troli",
    "hajo",
)

DEFAULT_CATEGORY: TransitCategory = "busz"
DEFAULT_ROUTE_COLOR = "009EE3"


class FeedType(str, Enum):
    """Real-time feeds exposed by the BKK backend (value is the URL path segment)."""

    ALERTS = "Alerts"
    VEHICLE_POSITIONS = "VehiclePositions"
    TRIP_UPDATES = "TripUpdates"


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True)


class Route(_Frozen):
    """Row of the static routes table."""

    id: str
    short_name: str = ""
    long_name: str = ""
    route_type: str = ""
    color: str = DEFAULT_ROUTE_COLOR


class Stop(_Frozen):
    """Row of the static stops table."""

    id: str
    name: str = ""
    lat: float = 0.0
    lon: float = 0.0
    code: Optional[str] = None


class Position(_Frozen):
    lat: float
    lng: float
    bearing: Optional[float] = None
    speed: Optional[float] = None


class Alert(_Frozen):
    """A service alert parsed from one feed snapshot."""

    id: str
    title: str
    description: str = ""
    affected_routes: tuple[str, ...] = ()
    start: Optional[datetime] = None
    end: Optional[datetime] = None
    url: Optional[str] = None
    category: TransitCategory = DEFAULT_CATEGORY
    priority: int = 2
    cause: str = ""
    effect: str = ""


class VehiclePosition(_Frozen):
    """A vehicle position parsed from one feed snapshot."""

    vehicle_id: str
    route_id: str = ""
    route_name: str = ""
    position: Position
    timestamp: datetime
    vehicle_type: TransitCategory = DEFAULT_CATEGORY
    status: str = "UNKNOWN"
    license_plate: Optional[str] = None
    current_stop: Optional[str] = None
    stop_id: Optional[str] = None
    label: Optional[str] = None
    trip_id: Optional[str] = None
    has_delay: Optional[bool] = None
    delay_minutes: Optional[int] = None


class DataSnapshot(_Frozen):
    """Alerts and vehicles fetched together, sharing one update timestamp."""

    alerts: tuple[Alert, ...] = ()
    vehicles: tuple[VehiclePosition, ...] = ()
    updated_at: Optional[datetime] = None
