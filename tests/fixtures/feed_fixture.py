"""Test fixtures for the BKK GTFS-RT text dumps."""

from __future__ import annotations

from collections.abc import Sequence

# "M3 metró késés" as the backend prints it: UTF-8 bytes as octal escapes
M3_DELAY_TITLE = r"M3 metr\303\263 k\303\251s\303\251s"


def _translation(section: str, text: str, language: str = "hu", indent: str = "    ") -> str:
    return (
        f"{indent}{section} {{\n"
        f"{indent}  translation {{\n"
        f'{indent}    text: "{text}"\n'
        f'{indent}    language: "{language}"\n'
        f"{indent}  }}\n"
        f"{indent}}}\n"
    )


def build_feed(*entities: str, timestamp: int = 1_700_000_000) -> str:
    """Join entity blocks behind a feed header, as the backend serves them."""
    header = (
        "header {\n"
        '  gtfs_realtime_version: "2.0"\n'
        "  incrementality: FULL_DATASET\n"
        f"  timestamp: {timestamp}\n"
        "}\n"
    )
    return header + "".join(entities)


def alert_entity(
    alert_id: str | None = "BKK_alert_1",
    title: str | None = M3_DELAY_TITLE,
    description: str | None = "Forgalmi akad\\303\\241ly miatt <b>k\\303\\251s\\303\\251sek</b>",
    route_ids: Sequence[str] = ("BKK_5300",),
    start: int | None = 1_700_000_000,
    end: int | None = 1_700_086_400,
    url: str | None = None,
    cause: str | None = "TECHNICAL_PROBLEM",
    effect: str | None = "SIGNIFICANT_DELAYS",
    english_title: str | None = "M3 metro delay",
) -> str:
    """Build one alert ``entity { ... }`` block.

    Args:
        alert_id: Entity id; ``None`` omits the field.
        title: Hungarian header text; ``None`` omits the header section.
        route_ids: One ``informed_entity`` per route id.
        start: Active period start (epoch seconds).
        end: Active period end (epoch seconds).
    """
    lines = ["entity {\n"]
    if alert_id is not None:
        lines.append(f'  id: "{alert_id}"\n')
    lines.append("  alert {\n")

    if start is not None or end is not None:
        lines.append("    active_period {\n")
        if start is not None:
            lines.append(f"      start: {start}\n")
        if end is not None:
            lines.append(f"      end: {end}\n")
        lines.append("    }\n")

    for route_id in route_ids:
        lines.append("    informed_entity {\n")
        lines.append(f'      route_id: "{route_id}"\n')
        lines.append("    }\n")

    if cause:
        lines.append(f"    cause: {cause}\n")
    if effect:
        lines.append(f"    effect: {effect}\n")
    if url:
        lines.append(_translation("url", url))

    if title is not None or english_title is not None:
        lines.append("    header_text {\n")
        if english_title is not None:
            lines.append("      translation {\n")
            lines.append(f'        text: "{english_title}"\n')
            lines.append('        language: "en"\n')
            lines.append("      }\n")
        if title is not None:
            lines.append("      translation {\n")
            lines.append(f'        text: "{title}"\n')
            lines.append('        language: "hu"\n')
            lines.append("      }\n")
        lines.append("    }\n")

    if description is not None:
        lines.append(_translation("description_text", description))

    lines.append("  }\n")
    lines.append("}\n")
    return "".join(lines)


def vehicle_entity(
    entity_id: str | None = "BKK_veh_1",
    route_id: str | None = "BKK_3040",
    trip_id: str | None = "T1",
    latitude: float | None = 47.4979,
    longitude: float | None = 19.0402,
    bearing: float | None = 90.0,
    speed: float | None = 8.5,
    timestamp: int | None = 1_700_000_100,
    stop_id: str | None = "F01234",
    status: str | None = "IN_TRANSIT_TO",
    license_plate: str | None = "V1234",
    label: str | None = "4 Széll Kálmán tér",
) -> str:
    """Build one vehicle position ``entity { ... }`` block."""
    lines = ["entity {\n"]
    if entity_id is not None:
        lines.append(f'  id: "{entity_id}"\n')
    lines.append("  vehicle {\n")

    lines.append("    trip {\n")
    if trip_id is not None:
        lines.append(f'      trip_id: "{trip_id}"\n')
    if route_id is not None:
        lines.append(f'      route_id: "{route_id}"\n')
    lines.append("    }\n")

    if latitude is not None or longitude is not None:
        lines.append("    position {\n")
        if latitude is not None:
            lines.append(f"      latitude: {latitude}\n")
        if longitude is not None:
            lines.append(f"      longitude: {longitude}\n")
        if bearing is not None:
            lines.append(f"      bearing: {bearing}\n")
        if speed is not None:
            lines.append(f"      speed: {speed}\n")
        lines.append("    }\n")

    if status is not None:
        lines.append(f"    current_status: {status}\n")
    if timestamp is not None:
        lines.append(f"    timestamp: {timestamp}\n")
    if stop_id is not None:
        lines.append(f'    stop_id: "{stop_id}"\n')

    lines.append("    vehicle {\n")
    if entity_id is not None:
        lines.append(f'      id: "{entity_id}"\n')
    if label is not None:
        lines.append(f'      label: "{label}"\n')
    if license_plate is not None:
        lines.append(f'      license_plate: "{license_plate}"\n')
    lines.append("    }\n")

    lines.append("  }\n")
    lines.append("}\n")
    return "".join(lines)


def trip_update_entity(
    trip_id: str = "T1",
    route_id: str = "BKK_3040",
    stop_times: Sequence[tuple[int, int]] = ((1_700_000_300, 1_700_000_180),),
) -> str:
    """Build one trip update block.

    Args:
        stop_times: ``(actual_arrival, scheduled_arrival)`` pairs, one
            ``stop_time_update`` each.
    """
    lines = [
        "entity {\n",
        f'  id: "tu_{trip_id}"\n',
        "  trip_update {\n",
        "    trip {\n",
        f'      trip_id: "{trip_id}"\n',
        f'      route_id: "{route_id}"\n',
        "    }\n",
    ]
    for sequence, (actual, scheduled) in enumerate(stop_times, start=1):
        lines.extend(
            [
                "    stop_time_update {\n",
                f"      stop_sequence: {sequence}\n",
                "      arrival {\n",
                f"        time: {actual}\n",
                "      }\n",
                "      scheduled_arrival {\n",
                f"        time: {scheduled}\n",
                "      }\n",
                "    }\n",
            ]
        )
    lines.extend(["  }\n", "}\n"])
    return "".join(lines)


def broken_alert_entity(alert_id: str = "BKK_alert_broken") -> str:
    """Alert block whose header section is never closed."""
    return (
        "entity {\n"
        f'  id: "{alert_id}"\n'
        "  alert {\n"
        "    header_text {\n"
        "      translation {\n"
        "}\n"
    )
