"""Static GTFS reference tables (routes, stops) loaded once per process."""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Iterator
from typing import TypeVar

from bkk_realtime.logging import get_logger
from bkk_realtime.models.transit import DEFAULT_ROUTE_COLOR, Route, Stop
from bkk_realtime.services.gtfs_rt.fetcher import FeedFetchError, TextFeedFetcher

logger = get_logger(__name__)

T = TypeVar("T", Route, Stop)

# Mandatory columns per table (the primary id column)
ROUTES_ID_COLUMN = "route_id"
STOPS_ID_COLUMN = "stop_id"


class ReferenceDataError(Exception):
    """Raised when a reference table cannot be parsed."""


def parse_csv_line(line: str) -> list[str]:
    """Split one CSV row on commas, ignoring commas inside double quotes.

    Quote characters toggle the "inside quotes" state and are dropped;
    fields are stripped of surrounding whitespace.
    """
    fields: list[str] = []
    current: list[str] = []
    in_quotes = False

    for char in line:
        if char == '"':
            in_quotes = not in_quotes
        elif char == "," and not in_quotes:
            fields.append("".join(current).strip())
            current = []
        else:
            current.append(char)

    fields.append("".join(current).strip())
    return fields


def _iter_rows(csv_text: str, id_column: str) -> Iterator[dict[str, str]]:
    """Yield one ``column -> value`` dict per data row of a CSV table.

    Raises:
        ReferenceDataError: If the header row lacks ``id_column``.
    """
    lines = csv_text.lstrip("\ufeff").splitlines()
    if not lines:
        msg = "Empty reference table"
        raise ReferenceDataError(msg)

    headers = parse_csv_line(lines[0])
    if id_column not in headers:
        msg = f"Missing required column {id_column!r} (found {headers})"
        raise ReferenceDataError(msg)

    for raw_line in lines[1:]:
        line = raw_line.strip()
        if not line:
            continue
        values = parse_csv_line(line)
        if len(values) < len(headers):
            continue
        yield dict(zip(headers, values))


def parse_routes(csv_text: str) -> Iterator[Route]:
    for row in _iter_rows(csv_text, ROUTES_ID_COLUMN):
        yield Route(
            id=row[ROUTES_ID_COLUMN],
            short_name=row.get("route_short_name", ""),
            long_name=row.get("route_long_name", ""),
            route_type=row.get("route_type", ""),
            color=row.get("route_color") or DEFAULT_ROUTE_COLOR,
        )


def parse_stops(csv_text: str) -> Iterator[Stop]:
    for row in _iter_rows(csv_text, STOPS_ID_COLUMN):
        yield Stop(
            id=row[STOPS_ID_COLUMN],
            name=row.get("stop_name", ""),
            lat=float(row.get("stop_lat") or 0.0),
            lon=float(row.get("stop_lon") or 0.0),
            code=row.get("stop_code") or None,
        )


class ReferenceData:
    """Route and stop lookup maps backed by the static GTFS text tables.

    ``load()`` is idempotent: after the first fully successful load further
    calls are no-ops until ``reset()``. Failures never propagate; a table that
    fails to download or parse stays empty (or keeps the rows parsed before
    the failure) and enrichment falls back to raw ids.
    """

    def __init__(
        self,
        routes_url: str,
        stops_url: str,
        fetcher: TextFeedFetcher | None = None,
    ) -> None:
        self.routes_url = routes_url
        self.stops_url = stops_url
        self._fetcher = fetcher or TextFeedFetcher()
        self._routes: dict[str, Route] = {}
        self._stops: dict[str, Stop] = {}
        self._loaded = False
        self._lock = asyncio.Lock()

    @property
    def is_loaded(self) -> bool:
        return self._loaded

    @property
    def route_count(self) -> int:
        return len(self._routes)

    @property
    def stop_count(self) -> int:
        return len(self._stops)

    async def load(self) -> None:
        """Fetch and parse both tables unless already loaded."""
        if self._loaded:
            return

        async with self._lock:
            if self._loaded:
                return

            routes_ok = await self._load_table(
                "routes", self.routes_url, parse_routes, self._routes
            )
            stops_ok = await self._load_table("stops", self.stops_url, parse_stops, self._stops)
            self._loaded = routes_ok and stops_ok

            logger.info(
                "Reference data loaded",
                routes=len(self._routes),
                stops=len(self._stops),
                complete=self._loaded,
            )

    async def _load_table(
        self,
        table: str,
        url: str,
        parse: Callable[[str], Iterator[T]],
        target: dict[str, T],
    ) -> bool:
        try:
            text = await self._fetcher.fetch(url, table)
            for item in parse(text):
                target[item.id] = item
        except (FeedFetchError, ReferenceDataError, ValueError) as exc:
            logger.error(
                "Failed to load reference table",
                table=table,
                rows_loaded=len(target),
                error=str(exc),
            )
            return False
        return True

    def load_from_text(self, routes_csv: str = "", stops_csv: str = "") -> None:
        """Populate the maps from already-downloaded table text."""
        if routes_csv:
            for route in parse_routes(routes_csv):
                self._routes[route.id] = route
        if stops_csv:
            for stop in parse_stops(stops_csv):
                self._stops[stop.id] = stop
        self._loaded = bool(self._routes) and bool(self._stops)

    def get_route(self, route_id: str) -> Route | None:
        return self._routes.get(route_id)

    def get_stop(self, stop_id: str) -> Stop | None:
        return self._stops.get(stop_id)

    def route_display_name(self, route_id: str) -> str:
        """Short name of the route, or the raw id when it is unknown."""
        route = self._routes.get(route_id)
        return route.short_name if route is not None and route.short_name else route_id

    def reset(self) -> None:
        self._routes.clear()
        self._stops.clear()
        self._loaded = False
