"""Real-time feed pipeline over the BKK GTFS-RT text dumps."""

from bkk_realtime.services.gtfs_rt.fetcher import FeedFetchError, TextFeedFetcher
from bkk_realtime.services.gtfs_rt.parser import EntityParseError, FeedTextParser
from bkk_realtime.services.gtfs_rt.singleflight import SingleFlight

__all__ = [
    "EntityParseError",
    "FeedFetchError",
    "FeedTextParser",
    "SingleFlight",
    "TextFeedFetcher",
]
