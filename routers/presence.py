"""
Driver presence endpoints.
Drivers go online, stream GPS positions while online, and go offline;
admins read the live fleet.
"""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from pydantic import BaseModel, Field
from typing import List, Optional
from datetime import datetime
from database import get_db
from models.profile import Profile, VehicleType
from services.change_feed import ChangeFeed, get_change_feed
from services.presence_service import PresenceService
from utils.auth_dependency import get_current_admin, get_current_driver

router = APIRouter(prefix="/api/presence", tags=["Presence"])

class StartTrackingRequest(BaseModel):
    latitude: Optional[float] = Field(None, ge=-90, le=90, description="Latitude (-90 to 90)")
    longitude: Optional[float] = Field(None, ge=-180, le=180, description="Longitude (-180 to 180)")

class LocationUpdate(BaseModel):
    latitude: float = Field(..., ge=-90, le=90, description="Latitude (-90 to 90)")
    longitude: float = Field(..., ge=-180, le=180, description="Longitude (-180 to 180)")

class PresenceResponse(BaseModel):
    id: int
    full_name: str
    vehicle_type: Optional[VehicleType] = None
    is_online: bool
    last_lat: Optional[float] = None
    last_lng: Optional[float] = None
    last_seen_at: Optional[datetime] = None

    class Config:
        from_attributes = True

@router.post("/start", response_model=PresenceResponse)
def start_tracking(
    request: Optional[StartTrackingRequest] = None,
    db: Session = Depends(get_db),
    feed: ChangeFeed = Depends(get_change_feed),
    current_user: Profile = Depends(get_current_driver)
):
    lat = request.latitude if request else None
    lng = request.longitude if request else None
    return PresenceService(db, feed).start_tracking(current_user, lat, lng)

@router.post("/location", response_model=PresenceResponse)
def update_location(
    location: LocationUpdate,
    db: Session = Depends(get_db),
    feed: ChangeFeed = Depends(get_change_feed),
    current_user: Profile = Depends(get_current_driver)
):
    """Rejected with 409 while the driver is offline"""
    return PresenceService(db, feed).update_location(current_user, location.latitude, location.longitude)

@router.post("/stop", response_model=PresenceResponse)
def stop_tracking(
    db: Session = Depends(get_db),
    feed: ChangeFeed = Depends(get_change_feed),
    current_user: Profile = Depends(get_current_driver)
):
    return PresenceService(db, feed).stop_tracking(current_user)

@router.get("/online", response_model=List[PresenceResponse])
def online_drivers(db: Session = Depends(get_db), current_user: Profile = Depends(get_current_admin)):
    return PresenceService(db).online_drivers()
