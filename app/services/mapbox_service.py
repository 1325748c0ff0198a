import logging
from typing import Optional

import httpx

from ..cache import build_driving_distance_key, get_driving_distance_cached, set_driving_distance_cached
from ..config import MAPBOX_API_URL, MAPBOX_TOKEN

logger = logging.getLogger(__name__)

METERS_PER_MILE = 1609.34


class MapboxService:
    """Driving distances from the Mapbox Directions API"""

    def __init__(
        self,
        access_token: Optional[str] = MAPBOX_TOKEN,
        base_url: str = MAPBOX_API_URL,
        timeout: float = 10.0,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.access_token = access_token
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._http_client = http_client

    @property
    def enabled(self) -> bool:
        return bool(self.access_token)

    async def get_driving_distance(
        self, from_lng: float, from_lat: float, to_lng: float, to_lat: float
    ) -> Optional[dict[str, float]]:
        """
        Returns:
            {"distance_miles": ..., "duration_minutes": ...} or None when no route is available
        """
        if not self.enabled:
            return None

        cache_key = build_driving_distance_key(from_lng, from_lat, to_lng, to_lat)
        cached = get_driving_distance_cached(cache_key)
        if cached is not None:
            return cached

        url = f"{self.base_url}/directions/v5/mapbox/driving/{from_lng},{from_lat};{to_lng},{to_lat}"
        params = {"access_token": self.access_token, "overview": "false"}

        try:
            if self._http_client is not None:
                response = await self._http_client.get(url, params=params, timeout=self.timeout)
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.get(url, params=params)
        except httpx.HTTPError as e:
            logger.warning(f"⚠️ Mapbox request failed: {e}")
            return None

        if response.status_code != 200:
            logger.warning(f"⚠️ Mapbox API error: {response.status_code}")
            return None

        try:
            routes = response.json().get("routes") or []
            if not routes:
                return None

            route = routes[0]
            result = {
                "distance_miles": route["distance"] / METERS_PER_MILE,
                "duration_minutes": route["duration"] / 60,
            }
        except (ValueError, KeyError, TypeError, AttributeError) as e:
            logger.warning(f"⚠️ Unexpected Mapbox response: {e}")
            return None

        set_driving_distance_cached(cache_key, result)
        return result
