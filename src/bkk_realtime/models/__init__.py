"""Pydantic models for the BKK real-time pipeline."""

from bkk_realtime.models.transit import (
    CATEGORIES,
    Alert,
    DataSnapshot,
    FeedType,
    Position,
    Route,
    Stop,
    TransitCategory,
    VehiclePosition,
)
from bkk_realtime.models.verification import (
    DisruptionVerification,
    UserLocation,
    VehicleVerification,
    VerificationRecord,
)

__all__ = [
    "CATEGORIES",
    "Alert",
    "DataSnapshot",
    "DisruptionVerification",
    "FeedType",
    "Position",
    "Route",
    "Stop",
    "TransitCategory",
    "UserLocation",
    "VehiclePosition",
    "VehicleVerification",
    "VerificationRecord",
]
