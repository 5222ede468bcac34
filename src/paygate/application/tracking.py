"""
Carrier Tracking Cache - Shipment status with a 30-minute refresh window

Carrier lookups are slow and rate-limited, so each (carrier, tracking number)
snapshot is kept until it is older than the TTL. The fetcher that talks to a
carrier is supplied by the caller.

Files that USE this module:
- paygate.app (builds the cache when a carrier fetcher is supplied)
- tests.test_tracking

Files that this module USES:
- paygate.domain.models (TrackingInfo)
- paygate.shared.clock (Clock)
"""
from __future__ import annotations

import logging
import re
from datetime import datetime, timedelta
from typing import Callable, Dict, Optional, Tuple

from paygate.domain.models import TrackingInfo
from paygate.shared.clock import Clock, utcnow

log = logging.getLogger(__name__)

DEFAULT_TRACKING_TTL = timedelta(minutes=30)

TRACKING_URLS = {
    "ups": "https://www.ups.com/track?tracknum={number}",
    "fedex": "https://www.fedex.com/fedextrack/?tracknumbers={number}",
    "dhl": "https://www.dhl.com/en/express/tracking.html?AWB={number}",
    "usps": "https://tools.usps.com/go/TrackConfirmAction?tLabels={number}",
    "royalmail": "https://www.royalmail.com/track-your-item#/tracking-results/{number}",
}

TrackingFetcher = Callable[[str, str], TrackingInfo]

_WHITESPACE = re.compile(r"\s+")


def normalize_carrier(name: str) -> str:
    """'Royal Mail' -> 'royalmail'."""
    return _WHITESPACE.sub("", name or "").lower()


def tracking_url(carrier: str, tracking_number: str) -> str:
    """Public tracking page for a shipment, or '#' for carriers we do not know."""
    template = TRACKING_URLS.get(normalize_carrier(carrier))
    return template.format(number=tracking_number) if template else "#"


class CarrierTrackingCache:
    def __init__(self, fetcher: TrackingFetcher, ttl: timedelta = DEFAULT_TRACKING_TTL, clock: Clock = utcnow):
        self.fetcher = fetcher
        self.ttl = ttl
        self._clock = clock
        # key -> (fetched_at, snapshot); freshness is measured from our fetch, not the carrier scan
        self._entries: Dict[Tuple[str, str], Tuple[datetime, TrackingInfo]] = {}

    def should_refresh(self, last_updated: Optional[datetime]) -> bool:
        if last_updated is None:
            return True
        return self._clock() - last_updated > self.ttl

    def get_tracking(self, carrier: str, tracking_number: str) -> TrackingInfo:
        """
        Cached tracking snapshot, refreshed through the fetcher once older than the TTL.

        Raises:
            ValueError: if carrier or tracking number is blank
        """
        if not carrier or not carrier.strip() or not tracking_number or not tracking_number.strip():
            raise ValueError("Carrier and tracking number are required")

        key = (normalize_carrier(carrier), tracking_number.strip())
        cached = self._entries.get(key)
        if cached is not None and not self.should_refresh(cached[0]):
            return cached[1]

        try:
            info = self.fetcher(key[0], key[1])
        except Exception as e:
            log.error("Tracking lookup failed: carrier=%s number=%s error=%s", key[0], key[1], e)
            raise

        self._entries[key] = (self._clock(), info)
        log.debug("Tracking refreshed: carrier=%s number=%s status=%s", key[0], key[1], info.current_status)
        return info

    def invalidate(self, carrier: str, tracking_number: str) -> None:
        self._entries.pop((normalize_carrier(carrier), tracking_number.strip()), None)
