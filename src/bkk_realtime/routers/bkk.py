"""Real-time BKK data endpoints.

Endpoints
---------
GET /bkk/snapshot          – combined alerts + vehicles snapshot
GET /bkk/alerts            – parsed service alerts
GET /bkk/vehicles          – parsed vehicle positions
GET /bkk/vehicles/nearby   – vehicles within a radius of a point
GET /bkk/status            – cache and loader diagnostics
"""

from __future__ import annotations

from typing import Annotated, Any, Optional

from fastapi import APIRouter, Depends, Query, Request
from pydantic import BaseModel

from bkk_realtime.logging import get_logger
from bkk_realtime.models.transit import Alert, DataSnapshot, VehiclePosition
from bkk_realtime.services.container import BkkServices, get_services
from bkk_realtime.services.geo import get_active_alerts, haversine_distance

logger = get_logger(__name__)

router = APIRouter(prefix="/bkk", tags=["bkk"])


def services_dependency(request: Request) -> BkkServices:
    """Services attached to the app at startup, or the process-wide default."""
    services: Optional[BkkServices] = getattr(request.app.state, "bkk", None)
    return services or get_services()


Services = Annotated[BkkServices, Depends(services_dependency)]


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------


class AlertsResponse(BaseModel):
    items: list[Alert]
    count: int


class VehiclesResponse(BaseModel):
    items: list[VehiclePosition]
    count: int


class NearbyVehicle(BaseModel):
    vehicle: VehiclePosition
    distance_m: float
    has_alert: bool


class NearbyVehiclesResponse(BaseModel):
    items: list[NearbyVehicle]
    radius_m: float
    count: int


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------


@router.get("/snapshot", response_model=DataSnapshot, summary="Combined alerts and vehicles")
async def get_snapshot(
    services: Services,
    refresh: Annotated[bool, Query(description="Bypass the snapshot TTL")] = False,
) -> DataSnapshot:
    return await services.snapshot(force_refresh=refresh)


@router.get("/alerts", response_model=AlertsResponse, summary="Service alerts")
async def get_alerts(
    services: Services,
    active_only: Annotated[bool, Query(description="Only alerts active right now")] = False,
) -> dict[str, Any]:
    alerts = list(await services.fetch_alerts())
    if active_only:
        alerts = get_active_alerts(alerts)
    return {"items": alerts, "count": len(alerts)}


@router.get("/vehicles", response_model=VehiclesResponse, summary="Vehicle positions")
async def get_vehicles(services: Services) -> dict[str, Any]:
    vehicles = await services.fetch_vehicle_positions()
    return {"items": list(vehicles), "count": len(vehicles)}


@router.get(
    "/vehicles/nearby",
    response_model=NearbyVehiclesResponse,
    summary="Vehicles near a location",
    description=(
        "Return vehicles within `radius_m` metres (boundary inclusive) of the "
        "given point, ordered by distance ascending."
    ),
)
async def get_nearby_vehicles(
    services: Services,
    lat: Annotated[float, Query(ge=-90, le=90, description="Latitude of the search centre")],
    lng: Annotated[float, Query(ge=-180, le=180, description="Longitude of the search centre")],
    radius_m: Annotated[
        Optional[float],
        Query(ge=0, le=50_000, description="Search radius in metres"),
    ] = None,
) -> dict[str, Any]:
    snapshot = await services.snapshot()
    radius = services.settings.default_nearby_radius_m if radius_m is None else radius_m
    nearby = services.find_nearby(snapshot.vehicles, lat, lng, radius)

    items = [
        {
            "vehicle": vehicle,
            "distance_m": round(
                haversine_distance(lat, lng, vehicle.position.lat, vehicle.position.lng), 1
            ),
            "has_alert": services.has_associated_alert(vehicle, snapshot.alerts),
        }
        for vehicle in nearby
    ]
    items.sort(key=lambda item: item["distance_m"])

    logger.debug("Nearby vehicles", lat=lat, lng=lng, radius_m=radius, count=len(items))
    return {"items": items, "radius_m": radius, "count": len(items)}


@router.get("/status", summary="Cache and reference data diagnostics")
async def get_status(services: Services) -> dict[str, Any]:
    return services.status()
