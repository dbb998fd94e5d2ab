"""Tests for verification record building and validation."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from bkk_realtime.models.transit import Alert, Position, VehiclePosition
from bkk_realtime.models.verification import (
    DisruptionVerification,
    ScheduleComparison,
    UserLocation,
    VehicleVerification,
)
from bkk_realtime.services.container import BkkServices
from bkk_realtime.services.gtfs_rt.parser import UNKNOWN_ALERT_TITLE, FeedTextParser
from bkk_realtime.services.gtfs_static.loader import ReferenceData
from bkk_realtime.services.verification import (
    build_disruption_record,
    build_reference_validation,
    build_vehicle_record,
    parse_verification,
    record_subject_id,
    to_payload,
    validate_verification,
)

from .fixtures.feed_fixture import alert_entity, build_feed, vehicle_entity
from .fixtures.reference_fixture import build_routes_csv, build_stops_csv

NOW = datetime(2024, 5, 1, 8, 30, tzinfo=timezone.utc)
USER = UserLocation(latitude=47.4979, longitude=19.0402, accuracy=12.0)

ALERT = Alert(
    id="BKK_alert_1",
    title="M3 metró késés",
    description="Forgalmi akadály",
    affected_routes=("M3",),
    start=datetime(2024, 5, 1, 6, 0, tzinfo=timezone.utc),
    end=None,
    url="https://bkk.hu/alert/1",
    category="metro",
    priority=3,
    cause="TECHNICAL_PROBLEM",
    effect="SIGNIFICANT_DELAYS",
)

VEHICLE = VehiclePosition(
    vehicle_id="BKK_veh_1",
    route_id="BKK_3040",
    route_name="4",
    position=Position(lat=47.5, lng=19.045, bearing=90.0, speed=8.5),
    timestamp=datetime(2024, 5, 1, 8, 29, tzinfo=timezone.utc),
    vehicle_type="villamos",
    status="IN_TRANSIT_TO",
    license_plate="V1234",
    current_stop="Deák Ferenc tér M",
    label="4 Széll Kálmán tér",
)


class TestDisruptionRecord:
    """Tests for build_disruption_record."""

    def test_fields(self) -> None:
        record = build_disruption_record(ALERT, USER, now=NOW)

        assert record.type == "disruption"
        assert record.timestamp == NOW
        assert record.user_location == USER
        assert record.description == "Forgalmi zavar: M3 metró késés - Forgalmi akadály"
        assert record.bkk_url == "https://bkk.hu/alert/1"
        assert record.metadata.data_source == "bkk_real_time_api"
        assert record.metadata.context == {"alert_priority": 3, "affected_routes_count": 1}
        assert record.alert_data.id == "BKK_alert_1"
        assert record.alert_data.affected_routes == ("M3",)
        assert record.alert_data.active_period.start == ALERT.start
        assert record.alert_data.active_period.end is None

    def test_description_without_alert_description(self) -> None:
        alert = ALERT.model_copy(update={"description": ""})
        record = build_disruption_record(alert, now=NOW)

        assert record.description == "Forgalmi zavar: M3 metró késés"
        assert record.user_location is None

    def test_builds_differ_only_in_timestamp(self) -> None:
        first = build_disruption_record(ALERT, USER, now=NOW)
        second = build_disruption_record(ALERT, USER, now=NOW + timedelta(seconds=5))

        assert first.timestamp != second.timestamp
        assert first.model_dump(exclude={"timestamp"}) == second.model_dump(exclude={"timestamp"})

    def test_record_is_immutable(self) -> None:
        record = build_disruption_record(ALERT, now=NOW)

        with pytest.raises(ValidationError):
            record.description = "changed"  # type: ignore[misc]

    def test_record_is_detached_from_source(self) -> None:
        record = build_disruption_record(ALERT, now=NOW)
        changed = ALERT.model_copy(update={"title": "Más"})

        assert changed.title == "Más"
        assert record.alert_data.title == "M3 metró késés"


class TestVehicleRecord:
    """Tests for build_vehicle_record."""

    def test_fields(self) -> None:
        record = build_vehicle_record(VEHICLE, USER, now=NOW)

        assert record.type == "vehicle_modification"
        assert record.description == "Jármű menetrend módosítás: BKK_3040 - 4"
        assert record.metadata.data_version == VEHICLE.timestamp.isoformat()
        data = record.vehicle_data
        assert data.vehicle_id == "BKK_veh_1"
        assert data.route.id == "BKK_3040"
        assert data.route.name == "4"
        assert data.route.type == "villamos"
        assert data.position.latitude == 47.5
        assert data.vehicle_info.license_plate == "V1234"
        assert data.vehicle_info.current_stop == "Deák Ferenc tér M"
        assert data.trip_modifications.has_delays is False
        assert data.data_timestamp == VEHICLE.timestamp
        assert data.distance_from_user == pytest.approx(430, abs=10)

    def test_delays_and_related_alerts(self) -> None:
        comparison = ScheduleComparison(delays={"F01234": 240})
        record = build_vehicle_record(
            VEHICLE,
            has_delays=True,
            related_alert_ids=["BKK_alert_2"],
            schedule_comparison=comparison,
            now=NOW,
        )

        assert record.description.endswith("(késések észlelve)")
        assert record.vehicle_data.trip_modifications.related_alerts == ("BKK_alert_2",)
        assert record.vehicle_data.trip_modifications.schedule_comparison == comparison
        assert record.vehicle_data.distance_from_user is None

    def test_label_falls_back_to_vehicle_id(self) -> None:
        vehicle = VEHICLE.model_copy(update={"label": None})
        record = build_vehicle_record(vehicle, now=NOW)

        assert record.vehicle_data.vehicle_info.label == "BKK_veh_1"

    def test_builds_differ_only_in_timestamp(self) -> None:
        first = build_vehicle_record(VEHICLE, USER, now=NOW)
        second = build_vehicle_record(VEHICLE, USER, now=NOW + timedelta(minutes=1))

        assert first.model_dump(exclude={"timestamp"}) == second.model_dump(exclude={"timestamp"})


class TestReferenceValidation:
    """Tests for build_reference_validation."""

    def test_found(self) -> None:
        reference = ReferenceData("routes", "stops")
        reference.load_from_text(build_routes_csv(), build_stops_csv())

        result = build_reference_validation("BKK_3040", reference)

        assert result.route_found
        assert result.gtfs_route is not None
        assert result.gtfs_route.route_short_name == "4"
        assert result.gtfs_route.route_type == 0

    def test_not_found(self) -> None:
        result = build_reference_validation("NOPE", ReferenceData("routes", "stops"))

        assert not result.route_found
        assert result.gtfs_route is None


class TestValidation:
    """Tests for validate_verification and parse_verification."""

    def test_built_records_are_valid(self) -> None:
        assert validate_verification(build_disruption_record(ALERT, now=NOW))
        assert validate_verification(build_vehicle_record(VEHICLE, now=NOW))

    def test_serialized_record_is_valid(self) -> None:
        payload = to_payload(build_vehicle_record(VEHICLE, USER, now=NOW))

        assert payload["type"] == "vehicle_modification"
        assert validate_verification(payload)
        assert isinstance(parse_verification(payload), VehicleVerification)

    def test_disruption_without_alert_data_is_invalid(self) -> None:
        payload = to_payload(build_disruption_record(ALERT, now=NOW))
        del payload["alert_data"]

        assert not validate_verification(payload)

    def test_empty_alert_id_is_invalid(self) -> None:
        payload = to_payload(build_disruption_record(ALERT, now=NOW))
        payload["alert_data"]["id"] = ""

        assert not validate_verification(payload)

    def test_empty_vehicle_id_is_invalid(self) -> None:
        payload = to_payload(build_vehicle_record(VEHICLE, now=NOW))
        payload["vehicle_data"]["vehicle_id"] = ""

        assert not validate_verification(payload)

    def test_kind_mismatch_is_invalid(self) -> None:
        payload = to_payload(build_disruption_record(ALERT, now=NOW))
        payload["type"] = "vehicle_modification"

        assert not validate_verification(payload)

    @pytest.mark.parametrize("value", [None, "", 42, [], {}, {"type": "unknown"}])
    def test_garbage_is_invalid(self, value: object) -> None:
        assert not validate_verification(value)

    def test_parse_raises_with_detail(self) -> None:
        with pytest.raises(ValidationError):
            parse_verification({"type": "disruption"})

    def test_record_subject_id(self) -> None:
        disruption = parse_verification(to_payload(build_disruption_record(ALERT, now=NOW)))
        vehicle = parse_verification(to_payload(build_vehicle_record(VEHICLE, now=NOW)))

        assert isinstance(disruption, DisruptionVerification)
        assert record_subject_id(disruption) == "BKK_alert_1"
        assert record_subject_id(vehicle) == "BKK_veh_1"


class TestServicesFacade:
    """Record building through BkkServices uses the current snapshot."""

    async def test_vehicle_record_from_snapshot(self, services: BkkServices) -> None:
        snapshot = await services.snapshot()
        vehicle = next(v for v in snapshot.vehicles if v.vehicle_id == "BKK_veh_1")

        record = services.build_vehicle_record(vehicle)

        assert record.vehicle_data.trip_modifications.has_delays is True
        assert record.vehicle_data.trip_modifications.related_alerts == ("BKK_alert_2",)
        assert record.gtfs_validation is not None
        assert record.gtfs_validation.route_found
        assert services.validate(to_payload(record))

    async def test_disruption_record_carries_data_version(self, services: BkkServices) -> None:
        snapshot = await services.snapshot()

        record = services.build_disruption_record(snapshot.alerts[0])

        assert snapshot.updated_at is not None
        assert record.metadata.data_version == snapshot.updated_at.isoformat()


class TestRecordsFromParsedEntities:
    """Anything the feed parser keeps can be turned into a record."""

    @pytest.fixture
    def parser(self) -> FeedTextParser:
        reference = ReferenceData("routes", "stops")
        reference.load_from_text(build_routes_csv(), build_stops_csv())
        return FeedTextParser(reference)

    def test_vehicle_without_route_builds_but_is_invalid(self, parser: FeedTextParser) -> None:
        text = build_feed(vehicle_entity("V1", route_id=None, trip_id=None, stop_id=None))
        vehicle = parser.parse_vehicle_positions(text)[0]

        record = build_vehicle_record(vehicle, USER, now=NOW)

        assert record.vehicle_data.vehicle_id == "V1"
        assert record.vehicle_data.route.id == ""
        assert not validate_verification(record)
        assert not validate_verification(to_payload(record))

    def test_alert_with_markup_only_title(self, parser: FeedTextParser) -> None:
        alert = parser.parse_alerts(build_feed(alert_entity("A1", title="<br>")))[0]

        record = build_disruption_record(alert, now=NOW)

        assert record.alert_data.title == UNKNOWN_ALERT_TITLE
        assert record.description.startswith(f"Forgalmi zavar: {UNKNOWN_ALERT_TITLE}")
        assert validate_verification(record)
