"""Verification record endpoints.

Endpoints
---------
POST /bkk/verification/disruption  – record for an alert in the snapshot
POST /bkk/verification/vehicle     – record for a vehicle in the snapshot
POST /bkk/verification/validate    – structural check of a submitted record
"""

from __future__ import annotations

from typing import Any, Optional

from fastapi import APIRouter, Body, HTTPException
from pydantic import BaseModel, Field

from bkk_realtime.logging import get_logger
from bkk_realtime.models.verification import UserLocation
from bkk_realtime.routers.bkk import Services
from bkk_realtime.services.verification import to_payload

logger = get_logger(__name__)

router = APIRouter(prefix="/bkk/verification", tags=["verification"])


# --- Request schemas ---


class DisruptionRecordRequest(BaseModel):
    alert_id: str = Field(min_length=1)
    user_location: Optional[UserLocation] = None


class VehicleRecordRequest(BaseModel):
    vehicle_id: str = Field(min_length=1)
    user_location: Optional[UserLocation] = None
    has_delays: Optional[bool] = None


class ValidationResponse(BaseModel):
    valid: bool


# --- Endpoints ---


@router.post("/disruption", summary="Build a disruption verification record")
async def create_disruption_record(
    body: DisruptionRecordRequest,
    services: Services,
) -> dict[str, Any]:
    """Snapshot the selected alert from the current data."""
    snapshot = await services.snapshot()
    alert = next((item for item in snapshot.alerts if item.id == body.alert_id), None)
    if alert is None:
        raise HTTPException(status_code=404, detail=f"Alert {body.alert_id} not found")

    record = services.build_disruption_record(alert, body.user_location)
    logger.info("Disruption record built", alert_id=alert.id)
    return to_payload(record)


@router.post("/vehicle", summary="Build a vehicle verification record")
async def create_vehicle_record(
    body: VehicleRecordRequest,
    services: Services,
) -> dict[str, Any]:
    """Snapshot the selected vehicle from the current data."""
    snapshot = await services.snapshot()
    vehicle = next(
        (item for item in snapshot.vehicles if item.vehicle_id == body.vehicle_id), None
    )
    if vehicle is None:
        raise HTTPException(status_code=404, detail=f"Vehicle {body.vehicle_id} not found")

    record = services.build_vehicle_record(vehicle, body.user_location, body.has_delays)
    logger.info("Vehicle record built", vehicle_id=vehicle.vehicle_id)
    return to_payload(record)


@router.post(
    "/validate",
    response_model=ValidationResponse,
    summary="Check a verification record before submission",
)
async def validate_record(
    services: Services,
    record: Any = Body(...),
) -> dict[str, bool]:
    return {"valid": services.validate(record)}
