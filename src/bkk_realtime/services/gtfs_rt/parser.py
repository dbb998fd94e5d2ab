"""Parser for the textual dump of the BKK GTFS-RT feeds.

The backend serves the feeds in protobuf text format rather than binary:
repeated top-level ``entity { ... }`` blocks whose closing brace sits alone on
its own line. Parsing happens in two steps. A block scanner cuts the text into
entity spans, then targeted field extractors run inside each span. Every
entity is parsed in isolation, so one malformed block is dropped without
affecting the rest of the batch.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Iterator
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Optional

from bkk_realtime.logging import get_logger
from bkk_realtime.models.transit import Alert, Position, VehiclePosition
from bkk_realtime.services.classifier import classify_route, classify_routes
from bkk_realtime.services.gtfs_rt.text_cleanup import clean_text

if TYPE_CHECKING:
    from bkk_realtime.services.gtfs_static.loader import ReferenceData

logger = get_logger(__name__)

UNKNOWN_ALERT_TITLE = "Ismeretlen zavar"
DEFAULT_PRIORITY = 2
HUNGARIAN = "hu"

ENTITY_BLOCK_RE = re.compile(r"entity \{[\s\S]*?\n\}")

_QUOTED = r'"((?:[^"\\]|\\.)*)"'
_NUMBER = r"(-?[0-9]+(?:\.[0-9]+)?(?:[eE][-+]?[0-9]+)?)"


class EntityParseError(Exception):
    """Raised when a single entity block is malformed."""


# ---------------------------------------------------------------------------
# Low-level extraction helpers
# ---------------------------------------------------------------------------


def iter_entity_blocks(text: str) -> Iterator[str]:
    """Yield the text of each top-level ``entity { ... }`` block."""
    for match in ENTITY_BLOCK_RE.finditer(text):
        yield match.group(0)


def _field_re(name: str, value: str) -> re.Pattern[str]:
    # The lookbehind keeps ``id`` from matching ``route_id`` and friends
    return re.compile(rf"(?<![\w.]){re.escape(name)}: {value}")


def _unescape(value: str) -> str:
    return value.replace('\\"', '"')


def string_field(text: str, name: str) -> Optional[str]:
    """First quoted value of ``name: "..."`` in ``text``."""
    match = _field_re(name, _QUOTED).search(text)
    return _unescape(match.group(1)) if match else None


def string_fields(text: str, name: str) -> list[str]:
    return [_unescape(match.group(1)) for match in _field_re(name, _QUOTED).finditer(text)]


def number_field(text: str, name: str) -> Optional[float]:
    match = _field_re(name, _NUMBER).search(text)
    return float(match.group(1)) if match else None


def int_field(text: str, name: str) -> Optional[int]:
    match = _field_re(name, r"([0-9]+)").search(text)
    return int(match.group(1)) if match else None


def enum_field(text: str, name: str) -> Optional[str]:
    match = _field_re(name, r"([A-Za-z_][A-Za-z0-9_]*)").search(text)
    return match.group(1) if match else None


def _matching_brace(text: str, open_index: int) -> int:
    """Index of the brace closing the one at ``open_index``.

    Braces inside quoted strings are ignored.
    """
    depth = 0
    in_string = False
    index = open_index
    while index < len(text):
        char = text[index]
        if in_string:
            if char == "\\":
                index += 1
            elif char == '"':
                in_string = False
        elif char == '"':
            in_string = True
        elif char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth == 0:
                return index
        index += 1

    msg = "Unbalanced braces"
    raise EntityParseError(msg)


def sections(text: str, name: str) -> list[str]:
    """Bodies of every ``name { ... }`` section in ``text``, in order."""
    pattern = re.compile(rf"(?<![\w.]){re.escape(name)} \{{")
    bodies: list[str] = []
    position = 0
    while True:
        match = pattern.search(text, position)
        if match is None:
            return bodies
        close = _matching_brace(text, match.end() - 1)
        bodies.append(text[match.end() : close])
        position = close + 1


def section(text: str, name: str) -> Optional[str]:
    found = sections(text, name)
    return found[0] if found else None


def translation(text: str, name: str, language: str = HUNGARIAN) -> Optional[str]:
    """Text of the ``language`` translation inside the ``name`` section."""
    body = section(text, name)
    if body is None:
        return None
    for entry in sections(body, "translation"):
        if string_field(entry, "language") == language:
            return string_field(entry, "text")
    return None


def _epoch(seconds: Optional[int]) -> Optional[datetime]:
    if seconds is None:
        return None
    return datetime.fromtimestamp(seconds, tz=timezone.utc)


def _unique(values: Iterable[str]) -> list[str]:
    return list(dict.fromkeys(value for value in values if value))


# ---------------------------------------------------------------------------
# Feed parser
# ---------------------------------------------------------------------------


class FeedTextParser:
    """Turns feed text into typed records, enriched from the reference tables.

    The caller is expected to have awaited ``ReferenceData.load()``; with
    empty reference tables enrichment degrades to raw ids.
    """

    def __init__(self, reference: ReferenceData) -> None:
        self._reference = reference

    # --- Alerts ---

    def parse_alerts(self, text: str) -> list[Alert]:
        alerts: list[Alert] = []
        skipped = 0
        for block in iter_entity_blocks(text):
            try:
                alert = self.parse_alert_entity(block)
            except (EntityParseError, ValueError, OverflowError) as exc:
                skipped += 1
                logger.warning("Failed to parse alert entity", error=str(exc))
                continue
            if alert is None:
                skipped += 1
                continue
            alerts.append(alert)

        logger.info("Alerts parsed", count=len(alerts), skipped=skipped)
        return alerts

    def parse_alert_entity(self, block: str) -> Optional[Alert]:
        """Parse one alert entity; ``None`` when the block has no ``id``."""
        alert_id = string_field(block, "id")
        if not alert_id:
            logger.debug("Discarding alert entity without id")
            return None

        title = translation(block, "header_text")
        description = translation(block, "description_text")
        url = translation(block, "url")

        raw_route_ids = _unique(string_fields(block, "route_id"))
        affected_routes = _unique(
            self._reference.route_display_name(route_id) for route_id in raw_route_ids
        )

        priority = int_field(block, "priority")

        return Alert(
            id=alert_id,
            title=clean_text(title) or UNKNOWN_ALERT_TITLE,
            description=clean_text(description),
            affected_routes=tuple(affected_routes),
            start=_epoch(int_field(block, "start")),
            end=_epoch(int_field(block, "end")),
            url=url or None,
            category=classify_routes(raw_route_ids, self._reference.get_route),
            priority=DEFAULT_PRIORITY if priority is None else priority,
            cause=enum_field(block, "cause") or "",
            effect=enum_field(block, "effect") or "",
        )

    # --- Vehicle positions ---

    def parse_vehicle_positions(self, text: str) -> list[VehiclePosition]:
        vehicles: list[VehiclePosition] = []
        skipped = 0
        for block in iter_entity_blocks(text):
            try:
                vehicle = self.parse_vehicle_entity(block)
            except (EntityParseError, ValueError, OverflowError) as exc:
                skipped += 1
                logger.warning("Failed to parse vehicle entity", error=str(exc))
                continue
            if vehicle is None:
                skipped += 1
                continue
            vehicles.append(vehicle)

        logger.info("Vehicle positions parsed", count=len(vehicles), skipped=skipped)
        return vehicles

    def parse_vehicle_entity(self, block: str) -> Optional[VehiclePosition]:
        """Parse one vehicle entity; ``None`` when the block has no ``id``."""
        vehicle_id = string_field(block, "id")
        if not vehicle_id:
            logger.debug("Discarding vehicle entity without id")
            return None

        route_id = string_field(block, "route_id") or ""
        route_name = self._reference.route_display_name(route_id) if route_id else ""

        stop_id = string_field(block, "stop_id")
        current_stop = None
        if stop_id:
            stop = self._reference.get_stop(stop_id)
            current_stop = stop.name if stop is not None and stop.name else stop_id

        timestamp = _epoch(int_field(block, "timestamp")) or datetime.now(timezone.utc)

        return VehiclePosition(
            vehicle_id=vehicle_id,
            route_id=route_id,
            route_name=route_name,
            position=Position(
                lat=number_field(block, "latitude") or 0.0,
                lng=number_field(block, "longitude") or 0.0,
                bearing=number_field(block, "bearing"),
                speed=number_field(block, "speed"),
            ),
            timestamp=timestamp,
            vehicle_type=classify_route(route_id, self._reference.get_route),
            status=enum_field(block, "current_status") or "UNKNOWN",
            license_plate=string_field(block, "license_plate"),
            current_stop=current_stop,
            stop_id=stop_id,
            label=string_field(block, "label"),
            trip_id=string_field(block, "trip_id"),
        )

    # --- Trip updates ---

    @staticmethod
    def parse_trip_delays(text: str) -> dict[str, int]:
        """Average arrival delay in seconds per trip id.

        Each ``stop_time_update`` contributes ``arrival.time`` minus the
        ``scheduled_arrival.time`` of the realcity extension when both are
        present; positive means late.
        """
        delays: dict[str, int] = {}
        for block in iter_entity_blocks(text):
            try:
                trip_id = string_field(block, "trip_id")
                if not trip_id:
                    continue

                samples: list[int] = []
                for update in sections(block, "stop_time_update"):
                    arrival = section(update, "arrival")
                    scheduled = section(update, "scheduled_arrival")
                    actual_time = int_field(arrival, "time") if arrival else None
                    scheduled_time = int_field(scheduled, "time") if scheduled else None
                    if actual_time is not None and scheduled_time is not None:
                        samples.append(actual_time - scheduled_time)

                if samples:
                    delays[trip_id] = round(sum(samples) / len(samples))
            except (EntityParseError, ValueError, OverflowError) as exc:
                logger.warning("Failed to parse trip update entity", error=str(exc))

        logger.info("Trip delays parsed", trips=len(delays))
        return delays


def apply_trip_delays(
    vehicles: Iterable[VehiclePosition],
    delays: dict[str, int],
    threshold_minutes: int = 2,
) -> list[VehiclePosition]:
    """Copy delay information onto vehicles whose trip has an update."""
    enriched: list[VehiclePosition] = []
    for vehicle in vehicles:
        if vehicle.trip_id and vehicle.trip_id in delays:
            delay_minutes = round(delays[vehicle.trip_id] / 60)
            vehicle = vehicle.model_copy(
                update={
                    "delay_minutes": delay_minutes,
                    "has_delay": abs(delay_minutes) > threshold_minutes,
                }
            )
        enriched.append(vehicle)
    return enriched
