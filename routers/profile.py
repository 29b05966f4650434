from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session
from pydantic import BaseModel, validator, Field
from typing import List, Optional
from datetime import datetime
from database import get_db
from models.profile import Profile, UserRole, VehicleType
from utils.auth_dependency import get_current_user, get_current_admin
from utils.logger import DatabaseLogger
import re

router = APIRouter(prefix="/api/profile", tags=["Profile"])

class ProfileUpdateRequest(BaseModel):
    full_name: Optional[str] = Field(None, min_length=2, max_length=100)
    phone: Optional[str] = Field(None, max_length=20)
    vehicle_type: Optional[VehicleType] = None

    @validator('full_name')
    def validate_name(cls, v):
        if v is not None:
            v = ' '.join(v.split())
            if re.search(r'<\s*script|<\s*iframe|javascript:', v, re.IGNORECASE):
                raise ValueError('Invalid characters in name')
        return v

    @validator('phone')
    def validate_phone(cls, v):
        if v is not None:
            v = v.strip().replace(' ', '')
            if not re.match(r'^\+?[0-9]{7,15}$', v):
                raise ValueError('Invalid phone number format')
        return v

class ProfileResponse(BaseModel):
    id: int
    email: str
    full_name: str
    phone: Optional[str] = None
    role: UserRole
    vehicle_type: Optional[VehicleType] = None
    is_active: bool
    is_online: bool
    last_lat: Optional[float] = None
    last_lng: Optional[float] = None
    last_seen_at: Optional[datetime] = None
    created_at: datetime

    class Config:
        from_attributes = True

class DriverStatusRequest(BaseModel):
    is_active: bool

@router.get("", response_model=ProfileResponse)
def get_profile(current_user: Profile = Depends(get_current_user)):
    return current_user

@router.put("", response_model=ProfileResponse)
def update_profile(
    request: ProfileUpdateRequest,
    db: Session = Depends(get_db),
    current_user: Profile = Depends(get_current_user)
):
    if request.vehicle_type is not None and current_user.role != UserRole.DRIVER:
        raise HTTPException(status_code=400, detail="Only drivers have a vehicle type")

    changes = request.dict(exclude_none=True)
    for field, value in changes.items():
        setattr(current_user, field, value)
    db.commit()
    db.refresh(current_user)

    if changes:
        DatabaseLogger.log_user_activity(
            user_id=current_user.id,
            action="update_profile",
            description=", ".join(sorted(changes)),
            entity_type="profile",
            entity_id=current_user.id,
            db=db
        )
    return current_user

@router.get("/drivers", response_model=List[ProfileResponse])
def list_drivers(
    online: Optional[bool] = Query(None, description="Only online (true) or offline (false) drivers"),
    db: Session = Depends(get_db),
    current_user: Profile = Depends(get_current_admin)
):
    """All driver accounts for dispatch and payroll (admin only)"""
    query = db.query(Profile).filter(Profile.role == UserRole.DRIVER)
    if online is not None:
        query = query.filter(Profile.is_online == online)
    return query.order_by(Profile.full_name).all()

@router.put("/drivers/{driver_id}/status", response_model=ProfileResponse)
def set_driver_status(
    driver_id: int,
    request: DriverStatusRequest,
    db: Session = Depends(get_db),
    current_user: Profile = Depends(get_current_admin)
):
    """Activate or deactivate a driver; deactivated drivers also go offline"""
    driver = db.query(Profile).filter(Profile.id == driver_id, Profile.role == UserRole.DRIVER).first()
    if not driver:
        raise HTTPException(status_code=404, detail="Driver not found")

    driver.is_active = request.is_active
    if not request.is_active:
        driver.is_online = False
    db.commit()
    db.refresh(driver)

    DatabaseLogger.log_user_activity(
        user_id=current_user.id,
        action="activate_driver" if request.is_active else "deactivate_driver",
        entity_type="profile",
        entity_id=driver.id,
        db=db
    )
    return driver
