"""
Logs viewing endpoints for admin dashboard
"""
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from sqlalchemy import desc
from typing import List, Optional
from datetime import datetime
from pydantic import BaseModel
from database import get_db
from models.log import SystemLog, ErrorLog, UserActivityLog, LogCategory
from models.profile import Profile
from utils.auth_dependency import get_current_admin

router = APIRouter(prefix="/api/logs", tags=["Logs"])

class LogResponse(BaseModel):
    id: int
    log_type: str
    level: Optional[str] = None
    severity: Optional[str] = None
    category: Optional[str] = None
    message: Optional[str] = None
    error_type: Optional[str] = None
    error_message: Optional[str] = None
    action: Optional[str] = None
    description: Optional[str] = None
    entity_type: Optional[str] = None
    entity_id: Optional[str] = None
    endpoint: Optional[str] = None
    user_id: Optional[int] = None
    created_at: datetime

    class Config:
        from_attributes = True

@router.get("/system", response_model=List[LogResponse])
def get_system_logs(
    limit: int = Query(200, ge=1, le=1000),
    category: Optional[LogCategory] = None,
    db: Session = Depends(get_db),
    current_user: Profile = Depends(get_current_admin)
):
    """Get system logs"""
    query = db.query(SystemLog)
    if category:
        query = query.filter(SystemLog.category == category)

    logs = query.order_by(desc(SystemLog.created_at)).limit(limit).all()
    return [
        {
            "id": log.id,
            "log_type": "system",
            "level": log.level.value,
            "category": log.category.value,
            "message": log.message,
            "user_id": log.user_id,
            "created_at": log.created_at
        }
        for log in logs
    ]

@router.get("/errors", response_model=List[LogResponse])
def get_error_logs(
    limit: int = Query(200, ge=1, le=1000),
    db: Session = Depends(get_db),
    current_user: Profile = Depends(get_current_admin)
):
    """Get error logs"""
    logs = db.query(ErrorLog).order_by(desc(ErrorLog.created_at)).limit(limit).all()
    return [
        {
            "id": log.id,
            "log_type": "error",
            "severity": log.severity.value,
            "error_type": log.error_type,
            "error_message": log.error_message,
            "endpoint": log.endpoint,
            "user_id": log.user_id,
            "created_at": log.created_at
        }
        for log in logs
    ]

@router.get("/activity", response_model=List[LogResponse])
def get_activity_logs(
    limit: int = Query(200, ge=1, le=1000),
    user_id: Optional[int] = None,
    entity_id: Optional[str] = None,
    db: Session = Depends(get_db),
    current_user: Profile = Depends(get_current_admin)
):
    """Get user activity logs, optionally for one user or one order"""
    query = db.query(UserActivityLog)
    if user_id:
        query = query.filter(UserActivityLog.user_id == user_id)
    if entity_id:
        query = query.filter(UserActivityLog.entity_id == entity_id)

    logs = query.order_by(desc(UserActivityLog.created_at)).limit(limit).all()
    return [
        {
            "id": log.id,
            "log_type": "activity",
            "action": log.action,
            "description": log.description,
            "entity_type": log.entity_type,
            "entity_id": log.entity_id,
            "user_id": log.user_id,
            "created_at": log.created_at
        }
        for log in logs
    ]
