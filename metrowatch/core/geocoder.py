from typing import NamedTuple, Optional

import httpx

from metrowatch.config import logger
from metrowatch.core.errors import GeocodingUnavailable


class Coordinates(NamedTuple):
    lat: float
    lng: float


class NominatimGeocoder:
    """Looks up the single best coordinate match for a free-text query."""

    def __init__(
        self,
        base_url: str,
        user_agent: str,
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(
            timeout=timeout, headers={"User-Agent": user_agent}
        )

    async def lookup(self, query: str) -> Optional[Coordinates]:
        params = {"q": query, "format": "json", "limit": 1}
        try:
            response = await self.client.get(f"{self.base_url}/search", params=params)
            response.raise_for_status()
            matches = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(f"Geocoding request for '{query}' failed: {str(e)}")
            raise GeocodingUnavailable(str(e)) from e

        if not isinstance(matches, list) or not matches:
            logger.info(f"No geocoding match for '{query}'")
            return None
        try:
            first = matches[0]
            return Coordinates(float(first["lat"]), float(first["lon"]))
        except (KeyError, TypeError, ValueError) as e:
            raise GeocodingUnavailable(f"Unexpected geocoding response: {str(e)}") from e

    async def aclose(self):
        if self._owns_client:
            await self.client.aclose()
