"""
Geocoding proxy so browsers never hold provider credentials.

Errors use the ``{"error": ...}`` body the map widgets already expect.
"""
from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session
from typing import Optional
import logging
from database import get_db
from models.log import LogLevel
from services.exceptions import UpstreamServiceError
from services.geocoding_service import GeocodingService, get_geocoding_service
from utils.logger import DatabaseLogger

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/geocoding", tags=["Geocoding"])

@router.get("")
def geocode(
    type: Optional[str] = Query(None, description="forward (default) or reverse"),
    q: Optional[str] = Query(None, max_length=200),
    lat: Optional[float] = Query(None, ge=-90, le=90),
    lon: Optional[float] = Query(None, ge=-180, le=180),
    db: Session = Depends(get_db),
    geocoder: GeocodingService = Depends(get_geocoding_service)
):
    type = type or "forward"
    try:
        if type == "forward" and q and q.strip():
            return geocoder.forward(q.strip())
        if type == "reverse" and lat is not None and lon is not None:
            return {"address": geocoder.reverse(lat, lon)}
    except UpstreamServiceError as e:
        DatabaseLogger.log_error(
            error_type="GeocodingError",
            error_message=e.message,
            endpoint="/api/geocoding",
            request_data={"type": type, "q": q, "lat": lat, "lon": lon},
            severity=LogLevel.WARNING,
            db=db
        )
        return JSONResponse(status_code=500, content={"error": e.message})

    return JSONResponse(status_code=400, content={"error": "Missing parameters"})
