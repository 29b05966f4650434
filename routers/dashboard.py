from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from pydantic import BaseModel
from typing import Dict, List, Optional
from datetime import datetime
from database import get_db
from models.order import OrderStatus
from models.profile import Profile
from routers.orders import OrderResponse
from services.dashboard_service import DashboardService
from utils.auth_dependency import get_current_admin, get_current_client, get_current_driver

router = APIRouter(prefix="/dashboard", tags=["Dashboard"])

class ClientDashboardResponse(BaseModel):
    orders: List[OrderResponse] = []
    active_orders: int = 0
    delivered_orders: int = 0
    total_spent: float = 0.0

class DriverStatsResponse(BaseModel):
    deliveries_count: int = 0
    total_earnings: float = 0.0

class DriverDashboardResponse(BaseModel):
    is_online: bool
    active_order: Optional[OrderResponse] = None
    offer: Optional[OrderResponse] = None
    eta_minutes: Optional[int] = None
    today: DriverStatsResponse

class AdminOverviewResponse(BaseModel):
    total_revenue: float = 0.0
    active_orders: int = 0
    online_drivers: int = 0
    delivery_count: int = 0
    success_rate: float = 0.0
    orders_by_status: Dict[str, int] = {}

class PayrollEntry(BaseModel):
    driver_id: int
    full_name: str
    deliveries: int
    total_earned: float
    pending_payout: float
    payout_eligible: bool

class FleetEntry(BaseModel):
    driver_id: int
    full_name: str
    vehicle_type: Optional[str] = None
    lat: Optional[float] = None
    lng: Optional[float] = None
    last_seen_at: Optional[datetime] = None
    active_order_id: Optional[int] = None
    active_order_status: Optional[str] = None

@router.get("/client", response_model=ClientDashboardResponse)
def client_dashboard(db: Session = Depends(get_db), current_user: Profile = Depends(get_current_client)):
    """Recent bookings and totals for the signed-in client"""
    return DashboardService(db).client_summary(current_user)

@router.get("/driver", response_model=DriverDashboardResponse)
def driver_dashboard(db: Session = Depends(get_db), current_user: Profile = Depends(get_current_driver)):
    """
    Driver home: the active job (with ETA to the next stop) or, when free
    and online, the newest pending offer, plus today's earnings.
    """
    return DashboardService(db).driver_summary(current_user)

@router.get("/driver/history", response_model=List[OrderResponse])
def driver_history(
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    current_user: Profile = Depends(get_current_driver)
):
    return DashboardService(db).driver_history(current_user, limit, offset)

@router.get("/admin", response_model=AdminOverviewResponse)
def admin_dashboard(db: Session = Depends(get_db), current_user: Profile = Depends(get_current_admin)):
    return DashboardService(db).admin_overview()

@router.get("/admin/payroll", response_model=List[PayrollEntry])
def admin_payroll(db: Session = Depends(get_db), current_user: Profile = Depends(get_current_admin)):
    return DashboardService(db).payroll()

@router.get("/admin/fleet", response_model=List[FleetEntry])
def admin_fleet(db: Session = Depends(get_db), current_user: Profile = Depends(get_current_admin)):
    return DashboardService(db).fleet()

@router.get("/admin/orders", response_model=List[OrderResponse])
def admin_order_log(
    status: Optional[OrderStatus] = None,
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    current_user: Profile = Depends(get_current_admin)
):
    return DashboardService(db).order_log(status, limit, offset)
