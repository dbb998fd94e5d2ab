"""Transport-mode classification for routes, alerts and vehicles.

Every input maps to exactly one category. The reference ``route_type`` is
consulted first; when no reference route is known (or its type is not one we
recognise) an ordered list of short-name rules is evaluated top to bottom and
the first match wins. The list always ends with a catch-all rule.
"""

from __future__ import annotations

import re
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import Optional

from bkk_realtime.models.transit import DEFAULT_CATEGORY, Route, TransitCategory

RouteLookup = Callable[[str], Optional[Route]]

NIGHT_ROUTE_RE = re.compile(r"9[0-9]{2}")

# GTFS route_type codes, basic and extended (hierarchical) variants
_TRAM_TYPES = {"0", "900", "901", "902", "903", "904", "905", "906"}
_SUBWAY_TYPES = {"1", "401", "402", "403", "404", "405"}
_RAIL_TYPES = {"2", "100", "103", "106", "109", "400"}
_BUS_TYPES = {"3", "700", "701", "702", "704", "715"}
_FERRY_TYPES = {"4", "1000", "1200"}
_TROLLEYBUS_TYPES = {"11", "800"}


@dataclass(frozen=True)
class Rule:
    """One step of the short-name fallback chain."""

    name: str
    predicate: Callable[[str], bool]
    category: TransitCategory


def _pattern(regex: str) -> Callable[[str], bool]:
    compiled = re.compile(regex)
    return lambda value: compiled.fullmatch(value) is not None


NAME_RULES: tuple[Rule, ...] = (
    Rule("metro", _pattern(r"M[0-9]+"), "metro"),
    Rule("suburban_rail", _pattern(r"H[0-9]+"), "hev"),
    Rule("boat", _pattern(r"D[0-9]+"), "hajo"),
    Rule("night", _pattern(r"9[0-9]{2}"), "ejszakai"),
    Rule("numeric_with_suffix", _pattern(r"[0-9]+[A-Z]"), "villamos"),
    Rule("numeric", _pattern(r"[0-9]+"), "busz"),
)

DEFAULT_RULE = Rule("default", lambda _value: True, DEFAULT_CATEGORY)


def _first_match(value: str, rules: Iterable[Rule]) -> Optional[Rule]:
    for rule in rules:
        if rule.predicate(value):
            return rule
    return None


def classify_name(name: Optional[str]) -> TransitCategory:
    """Classify a route short name (or raw id) with the fallback rules."""
    value = (name or "").strip().upper()
    return (_first_match(value, NAME_RULES) or DEFAULT_RULE).category


def classify_route_type(route: Route) -> Optional[TransitCategory]:
    """Classify by reference ``route_type``; ``None`` when the code is unknown."""
    route_type = route.route_type.strip()
    is_night = NIGHT_ROUTE_RE.fullmatch(route.short_name.strip()) is not None

    if route_type in _TRAM_TYPES:
        return "villamos"
    if route_type in _SUBWAY_TYPES:
        return "metro"
    if route_type in _RAIL_TYPES:
        return "hev"
    if route_type in _FERRY_TYPES:
        return "hajo"
    if route_type in _BUS_TYPES:
        return "ejszakai" if is_night else "busz"
    if route_type in _TROLLEYBUS_TYPES:
        return "ejszakai" if is_night else "troli"
    return None


def classify_route(route_id: str, lookup: RouteLookup) -> TransitCategory:
    """Classify a single raw route id."""
    return classify_routes([route_id], lookup)


def classify_routes(route_ids: Iterable[str], lookup: RouteLookup) -> TransitCategory:
    """Classify a group of raw route ids, e.g. the routes an alert affects.

    The first route whose reference type is recognised decides. Otherwise the
    display names (short name when known, raw id when not) go through the
    name rules in order, and the first name that matches a specific rule
    decides. With nothing matching the result is the default category.
    """
    names: list[str] = []
    for route_id in route_ids:
        route = lookup(route_id)
        if route is not None:
            category = classify_route_type(route)
            if category is not None:
                return category
        names.append(route.short_name if route is not None and route.short_name else route_id)

    for name in names:
        rule = _first_match(name.strip().upper(), NAME_RULES)
        if rule is not None:
            return rule.category
    return DEFAULT_CATEGORY
