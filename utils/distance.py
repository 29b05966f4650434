"""
Distance and ETA calculation utilities using the Haversine formula and OSRM routing
"""
import math
import httpx
from typing import Optional, Tuple
import logging

logger = logging.getLogger(__name__)

OSRM_BASE_URL = "https://router.project-osrm.org"
EARTH_RADIUS_KM = 6371

def haversine_distance(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """
    Great circle distance between two points on Earth (straight line)

    Args:
        lat1, lon1: First point coordinates (in degrees)
        lat2, lon2: Second point coordinates (in degrees)

    Returns:
        Distance in kilometers
    """
    lat1_rad = math.radians(lat1)
    lon1_rad = math.radians(lon1)
    lat2_rad = math.radians(lat2)
    lon2_rad = math.radians(lon2)

    dlat = lat2_rad - lat1_rad
    dlon = lon2_rad - lon1_rad

    a = math.sin(dlat / 2)**2 + math.cos(lat1_rad) * math.cos(lat2_rad) * math.sin(dlon / 2)**2
    c = 2 * math.asin(math.sqrt(a))

    return c * EARTH_RADIUS_KM

def get_road_distance(
    lat1: float,
    lon1: float,
    lat2: float,
    lon2: float,
    timeout: float = 5.0,
    client: Optional[httpx.Client] = None
) -> Tuple[Optional[float], Optional[int]]:
    """
    Road distance and duration from the OSRM routing API.

    Returns:
        Tuple of (distance_km, duration_minutes) or (None, None) on failure
    """
    url = f"{OSRM_BASE_URL}/route/v1/driving/{lon1},{lat1};{lon2},{lat2}"
    params = {"overview": "false", "annotations": "false"}

    try:
        if client is not None:
            response = client.get(url, params=params, timeout=timeout)
        else:
            with httpx.Client(timeout=timeout) as owned:
                response = owned.get(url, params=params)
    except httpx.TimeoutException:
        logger.warning("OSRM request timed out")
        return None, None
    except httpx.HTTPError as e:
        logger.error(f"OSRM request error: {str(e)}")
        return None, None

    if response.status_code != 200:
        logger.warning(f"OSRM request failed with status {response.status_code}")
        return None, None

    data = response.json()
    if data.get("code") != "Ok" or not data.get("routes"):
        logger.warning(f"OSRM returned no routes: {data.get('code')}")
        return None, None

    route = data["routes"][0]
    distance_km = route.get("distance", 0) / 1000
    duration_minutes = int(route.get("duration", 0) / 60)
    if duration_minutes == 0 and distance_km > 0.1:
        duration_minutes = 1

    logger.debug(f"OSRM route: {distance_km:.2f} km, {duration_minutes} min")
    return distance_km, duration_minutes

def get_trip_distance(
    pickup_lat: float,
    pickup_lng: float,
    dropoff_lat: float,
    dropoff_lng: float,
    use_road_distance: bool = False,
    timeout: float = 5.0,
    client: Optional[httpx.Client] = None
) -> Tuple[float, bool]:
    """
    Distance used to price a delivery.

    Tries OSRM when use_road_distance is set and falls back to Haversine.

    Returns:
        Tuple of (distance_km, is_road_distance)
    """
    if use_road_distance:
        road_distance, _ = get_road_distance(
            pickup_lat, pickup_lng,
            dropoff_lat, dropoff_lng,
            timeout=timeout,
            client=client
        )
        if road_distance is not None:
            return road_distance, True

    return haversine_distance(pickup_lat, pickup_lng, dropoff_lat, dropoff_lng), False

def calculate_eta(distance_km: float, avg_speed_kmh: float = 30.0) -> int:
    """ETA in minutes at an average urban courier speed"""
    if distance_km <= 0:
        return 0
    return max(1, int(distance_km / avg_speed_kmh * 60))
