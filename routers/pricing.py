from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from pydantic import BaseModel, Field
from typing import Optional
from config import settings
from database import get_db
from models.profile import Profile, VehicleType
from services.pricing import quote
from services.settings_service import SettingsService
from utils.auth_dependency import get_current_user
from utils.distance import get_trip_distance

router = APIRouter(prefix="/api/pricing", tags=["Pricing"])

class QuoteRequest(BaseModel):
    pickup_lat: float = Field(..., ge=-90, le=90)
    pickup_lng: float = Field(..., ge=-180, le=180)
    dropoff_lat: float = Field(..., ge=-90, le=90)
    dropoff_lng: float = Field(..., ge=-180, le=180)
    vehicle_type: Optional[VehicleType] = None

class QuoteResponse(BaseModel):
    distance_km: float
    is_road_distance: bool
    base_fee: float
    per_km_rate: float
    vehicle_type: Optional[str] = None
    vehicle_multiplier: float
    price: int

@router.post("/quote", response_model=QuoteResponse)
def price_quote(
    request: QuoteRequest,
    db: Session = Depends(get_db),
    current_user: Profile = Depends(get_current_user)
):
    """Same calculation the server applies when a client books"""
    distance_km, is_road = get_trip_distance(
        request.pickup_lat, request.pickup_lng,
        request.dropoff_lat, request.dropoff_lng,
        use_road_distance=settings.use_road_distance,
        timeout=settings.routing_timeout_seconds,
    )
    pricing = SettingsService(db).get_pricing()
    result = quote(
        pricing.base_fee,
        pricing.per_km_rate,
        request.vehicle_type.value if request.vehicle_type else None,
        distance_km,
        is_road,
    )
    return QuoteResponse(**result.__dict__)
