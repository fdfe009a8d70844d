import asyncio
from enum import Enum
from typing import Optional

from metrowatch.config import logger
from metrowatch.core.errors import GeocodingUnavailable


class SearchError(str, Enum):
    NOT_FOUND = "not_found"
    UNAVAILABLE = "unavailable"


SEARCH_ERROR_MESSAGES = {
    SearchError.NOT_FOUND: "Location not found. Try a more specific search.",
    SearchError.UNAVAILABLE: "Location search is unavailable right now.",
}


class GeocodeSearchController:
    """Turns search box input into a map recenter.

    Keystrokes are debounced: a lookup runs only after ``debounce_seconds``
    without further input, and at most one timer is pending. Every lookup
    takes a request number; a response that arrives after a newer request
    was issued is discarded.
    """

    def __init__(
        self,
        geocoder,
        viewport,
        debounce_seconds: float = 1.0,
        min_length: int = 3,
        zoom: int = 15,
        region_qualifier: Optional[str] = "Philippines",
    ):
        self.geocoder = geocoder
        self.viewport = viewport
        self.debounce_seconds = debounce_seconds
        self.min_length = min_length
        self.zoom = zoom
        self.region_qualifier = region_qualifier
        self.query = ""
        self.error: Optional[SearchError] = None
        self.in_flight = False
        self.last_coordinates = None
        self.timer_task: Optional[asyncio.Task] = None
        self._latest_request = 0
        self.closed = False

    def is_query(self, text: str) -> bool:
        return len((text or "").strip()) >= self.min_length

    def qualify(self, text: str) -> str:
        query = text.strip()
        region = self.region_qualifier
        if region and region.lower() not in query.lower():
            query = f"{query}, {region}"
        return query

    def on_query_change(self, text: str):
        """Record a keystroke and restart the debounce timer."""
        if self.closed:
            return
        self.query = text
        self.error = None
        self._cancel_timer()
        # An edit supersedes any lookup already in flight.
        self._latest_request += 1
        self.in_flight = False
        if not self.is_query(text):
            return
        self.timer_task = asyncio.create_task(self._debounced_lookup(text))

    async def on_submit(self, text: str):
        """Look up immediately, skipping the debounce."""
        if self.closed:
            return
        self.query = text
        if not self.is_query(text):
            return
        self._cancel_timer()
        await self.lookup(text)

    async def lookup(self, text: str):
        query = self.qualify(text)
        self._latest_request += 1
        request = self._latest_request
        self.in_flight = True
        logger.info(f"Geocoding '{query}' (request {request})")
        try:
            coordinates = await self.geocoder.lookup(query)
        except GeocodingUnavailable:
            if self._is_stale(request):
                return
            self.error = SearchError.UNAVAILABLE
            return
        finally:
            if request == self._latest_request:
                self.in_flight = False

        if self._is_stale(request):
            return
        if coordinates is None:
            self.error = SearchError.NOT_FOUND
            return
        self.error = None
        self.last_coordinates = coordinates
        self.viewport.recenter(coordinates, self.zoom)

    def close(self):
        if self.closed:
            return
        self.closed = True
        self._cancel_timer()
        self._latest_request += 1
        self.in_flight = False

    async def _debounced_lookup(self, text: str):
        try:
            await asyncio.sleep(self.debounce_seconds)
        except asyncio.CancelledError:
            return
        self.timer_task = None
        await self.lookup(text)

    def _cancel_timer(self):
        if self.timer_task is not None and not self.timer_task.done():
            self.timer_task.cancel()
        self.timer_task = None

    def _is_stale(self, request: int) -> bool:
        if request != self._latest_request:
            logger.debug(f"Discarding stale geocoding response (request {request})")
            return True
        return False
