"""
Address search and reverse geocoding.

Mapbox is the primary provider when MAPBOX_ACCESS_TOKEN is configured;
Nominatim (OpenStreetMap) is used otherwise. Both are normalized to
``{id, place_name, text, center: [lon, lat]}``.
"""
from typing import List, Optional
from urllib.parse import quote
import logging

import httpx

from config import Settings, settings as app_settings
from services.exceptions import UpstreamServiceError

logger = logging.getLogger(__name__)

MAPBOX_BASE_URL = "https://api.mapbox.com/geocoding/v5/mapbox.places"
NOMINATIM_BASE_URL = "https://nominatim.openstreetmap.org"


def coordinates_label(lat: float, lon: float) -> str:
    """Degraded address shown when no provider knows the place"""
    return f"GPS: {lat:.4f}, {lon:.4f}"


class GeocodingService:
    def __init__(self, config: Optional[Settings] = None, client: Optional[httpx.Client] = None):
        self.config = config or app_settings
        self.client = client or httpx.Client(timeout=self.config.geocoding_timeout_seconds)
        self._owns_client = client is None

    def close(self):
        if self._owns_client:
            self.client.close()

    @property
    def provider(self) -> str:
        return "mapbox" if self.config.mapbox_access_token else "nominatim"

    def _get_json(self, url: str, params: dict, headers: Optional[dict] = None):
        try:
            response = self.client.get(url, params=params, headers=headers, timeout=self.config.geocoding_timeout_seconds)
            response.raise_for_status()
            return response.json()
        except httpx.TimeoutException:
            logger.warning(f"{self.provider} geocoding timed out")
            raise UpstreamServiceError(self.provider, "request timed out")
        except httpx.HTTPStatusError as e:
            logger.error(f"{self.provider} geocoding failed with status {e.response.status_code}")
            raise UpstreamServiceError(self.provider, f"status {e.response.status_code}")
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"{self.provider} geocoding error: {e}")
            raise UpstreamServiceError(self.provider, str(e))

    def _nominatim_headers(self) -> dict:
        return {"User-Agent": self.config.nominatim_user_agent}

    def _malformed(self, error: Exception) -> UpstreamServiceError:
        logger.error(f"{self.provider} geocoding returned an unexpected payload: {error!r}")
        return UpstreamServiceError(self.provider, "unexpected response format")

    @staticmethod
    def _from_mapbox(feature: dict) -> dict:
        return {
            "id": feature.get("id"),
            "place_name": feature.get("place_name"),
            "text": feature.get("text") or (feature.get("place_name") or "").split(",")[0],
            "center": [float(feature["center"][0]), float(feature["center"][1])],
        }

    @staticmethod
    def _from_nominatim(item: dict) -> dict:
        return {
            "id": item.get("place_id"),
            "place_name": item.get("display_name"),
            "text": item.get("name") or (item.get("display_name") or "").split(",")[0],
            "center": [float(item["lon"]), float(item["lat"])],
        }

    def forward(self, query: str) -> List[dict]:
        if self.config.mapbox_access_token:
            data = self._get_json(
                f"{MAPBOX_BASE_URL}/{quote(query, safe='')}.json",
                {
                    "access_token": self.config.mapbox_access_token,
                    "bbox": self.config.geocoding_bbox,
                    "limit": self.config.geocoding_result_limit,
                },
            )
            try:
                return [self._from_mapbox(feature) for feature in data.get("features") or []]
            except (KeyError, IndexError, TypeError, ValueError, AttributeError) as e:
                raise self._malformed(e)

        data = self._get_json(
            f"{NOMINATIM_BASE_URL}/search",
            {
                "format": "json",
                "q": query,
                "viewbox": self.config.geocoding_bbox,
                "bounded": 1,
                "limit": self.config.geocoding_result_limit,
                "addressdetails": 1,
            },
            headers=self._nominatim_headers(),
        )
        if not isinstance(data, list):
            raise self._malformed(TypeError(f"expected a list, got {type(data).__name__}"))
        try:
            return [self._from_nominatim(item) for item in data]
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise self._malformed(e)

    def reverse(self, lat: float, lon: float) -> str:
        try:
            if self.config.mapbox_access_token:
                data = self._get_json(
                    f"{MAPBOX_BASE_URL}/{lon},{lat}.json",
                    {
                        "access_token": self.config.mapbox_access_token,
                        "types": "address,poi,place",
                        "limit": 1,
                    },
                )
                features = data.get("features") or []
                address = features[0].get("place_name") if features else None
            else:
                data = self._get_json(
                    f"{NOMINATIM_BASE_URL}/reverse",
                    {"format": "json", "lat": lat, "lon": lon},
                    headers=self._nominatim_headers(),
                )
                address = data.get("display_name") if isinstance(data, dict) else None
        except (KeyError, IndexError, TypeError, AttributeError) as e:
            raise self._malformed(e)

        return address or coordinates_label(lat, lon)


def get_geocoding_service():
    """Dependency yielding a geocoding client closed after the request"""
    service = GeocodingService()
    try:
        yield service
    finally:
        service.close()
