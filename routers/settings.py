from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from pydantic import BaseModel, Field
from typing import Dict, Optional
from database import get_db
from models.profile import Profile
from services.change_feed import ChangeFeed, get_change_feed
from services.settings_service import MIN_APP_VERSION, SettingsService
from utils.auth_dependency import get_current_admin

router = APIRouter(prefix="/api/settings", tags=["System Settings"])

class SettingsUpdate(BaseModel):
    base_delivery_fee: Optional[float] = Field(None, ge=0)
    km_rate: Optional[float] = Field(None, ge=0)
    service_tax: Optional[float] = Field(None, ge=0, le=100)
    min_payout: Optional[float] = Field(None, ge=0)

class MaintenanceRequest(BaseModel):
    enabled: bool

class AppVersionRequest(BaseModel):
    min_version: str = Field(..., min_length=5, max_length=20)

class AppStatusResponse(BaseModel):
    maintenance_mode: bool
    min_app_version: str

@router.get("", response_model=Dict[str, str])
def get_settings(db: Session = Depends(get_db), current_user: Profile = Depends(get_current_admin)):
    return SettingsService(db).get_all()

@router.put("", response_model=Dict[str, str])
def update_settings(
    request: SettingsUpdate,
    db: Session = Depends(get_db),
    feed: ChangeFeed = Depends(get_change_feed),
    current_user: Profile = Depends(get_current_admin)
):
    updates = {key: str(value) for key, value in request.dict(exclude_none=True).items()}
    return SettingsService(db, feed).update(updates, updated_by=current_user.id)

@router.put("/maintenance", response_model=Dict[str, str])
def set_maintenance(
    request: MaintenanceRequest,
    db: Session = Depends(get_db),
    feed: ChangeFeed = Depends(get_change_feed),
    current_user: Profile = Depends(get_current_admin)
):
    return SettingsService(db, feed).set_maintenance_mode(request.enabled, updated_by=current_user.id)

@router.put("/app-version", response_model=Dict[str, str])
def force_app_update(
    request: AppVersionRequest,
    db: Session = Depends(get_db),
    feed: ChangeFeed = Depends(get_change_feed),
    current_user: Profile = Depends(get_current_admin)
):
    """Raise the minimum app version; older apps are told to update"""
    return SettingsService(db, feed).force_app_update(request.min_version, updated_by=current_user.id)

@router.get("/app-status", response_model=AppStatusResponse)
def app_status(db: Session = Depends(get_db)):
    """Public: polled by apps before sign-in"""
    service = SettingsService(db)
    return AppStatusResponse(
        maintenance_mode=service.is_maintenance_mode(),
        min_app_version=service.get(MIN_APP_VERSION),
    )
