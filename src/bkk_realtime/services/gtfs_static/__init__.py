"""Static GTFS reference tables (routes, stops) for feed enrichment."""

from bkk_realtime.services.gtfs_static.loader import ReferenceData, ReferenceDataError

__all__ = [
    "ReferenceData",
    "ReferenceDataError",
]
