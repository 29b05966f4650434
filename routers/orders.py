from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session
from pydantic import BaseModel, validator, Field
from typing import List, Optional
from datetime import datetime
from database import get_db
from models.order import OrderStatus, PaymentMethod
from models.profile import Profile, VehicleType
from services.change_feed import ChangeFeed, get_change_feed
from services.order_service import OrderDraft, OrderService
from utils.auth_dependency import (
    SessionContext, get_session_context, get_current_admin, get_current_client, get_current_driver
)
import re

router = APIRouter(prefix="/api/orders", tags=["Orders"])

def _clean_text(v: Optional[str], label: str) -> Optional[str]:
    if v is None:
        return v
    v = ' '.join(v.split())
    # Basic XSS prevention
    if re.search(r'<\s*script|<\s*iframe|javascript:', v, re.IGNORECASE):
        raise ValueError(f'Invalid characters in {label}')
    return v

class OrderCreate(BaseModel):
    pickup_address: str = Field(..., min_length=3, max_length=500)
    pickup_lat: float = Field(..., ge=-90, le=90)
    pickup_lng: float = Field(..., ge=-180, le=180)
    dropoff_address: str = Field(..., min_length=3, max_length=500)
    dropoff_lat: float = Field(..., ge=-90, le=90)
    dropoff_lng: float = Field(..., ge=-180, le=180)
    vehicle_type_required: Optional[VehicleType] = None
    payment_method: PaymentMethod = PaymentMethod.CASH
    receiver_name: Optional[str] = Field(None, max_length=100)
    receiver_phone: Optional[str] = Field(None, max_length=20)
    item_description: Optional[str] = Field(None, max_length=1000)
    driver_notes: Optional[str] = Field(None, max_length=1000)
    scheduled_for: Optional[datetime] = None

    @validator('pickup_address', 'dropoff_address')
    def validate_address(cls, v):
        return _clean_text(v, 'address')

    @validator('receiver_name', 'item_description', 'driver_notes')
    def validate_free_text(cls, v):
        return _clean_text(v, 'text')

    def to_draft(self, customer_name: Optional[str] = None) -> OrderDraft:
        return OrderDraft(
            pickup_address=self.pickup_address,
            pickup_lat=self.pickup_lat,
            pickup_lng=self.pickup_lng,
            dropoff_address=self.dropoff_address,
            dropoff_lat=self.dropoff_lat,
            dropoff_lng=self.dropoff_lng,
            customer_name=customer_name,
            vehicle_type_required=self.vehicle_type_required.value if self.vehicle_type_required else None,
            payment_method=self.payment_method,
            receiver_name=self.receiver_name,
            receiver_phone=self.receiver_phone,
            item_description=self.item_description,
            driver_notes=self.driver_notes,
            scheduled_for=self.scheduled_for,
        )

class AdminOrderCreate(OrderCreate):
    customer_name: str = Field(..., min_length=2, max_length=100)
    client_id: Optional[int] = None
    assigned_driver_id: Optional[int] = None
    price: Optional[float] = Field(None, ge=0, description="Override; computed from settings when omitted")

    @validator('customer_name')
    def validate_customer_name(cls, v):
        return _clean_text(v, 'customer name')

class AssignRequest(BaseModel):
    driver_id: int

class CancelRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=500)

class OrderResponse(BaseModel):
    id: int
    client_id: Optional[int] = None
    customer_name: str
    assigned_driver_id: Optional[int] = None
    pickup_address: str
    pickup_lat: float
    pickup_lng: float
    dropoff_address: str
    dropoff_lat: float
    dropoff_lng: float
    distance_km: Optional[float] = None
    price: float
    vehicle_type_required: Optional[str] = None
    payment_method: PaymentMethod
    receiver_name: Optional[str] = None
    receiver_phone: Optional[str] = None
    item_description: Optional[str] = None
    driver_notes: Optional[str] = None
    status: OrderStatus
    scheduled_for: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True

class ClaimResponse(BaseModel):
    claimed: bool
    message: str
    current_status: Optional[OrderStatus] = None
    order: Optional[OrderResponse] = None

@router.get("", response_model=List[OrderResponse])
def list_orders(
    status_filter: Optional[List[OrderStatus]] = Query(None, alias="status"),
    driver_id: Optional[int] = None,
    client_id: Optional[int] = None,
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    ctx: SessionContext = Depends(get_session_context)
):
    """Orders visible to the caller, newest first"""
    return OrderService(db).list_orders(ctx, status_filter, driver_id, client_id, limit, offset)

@router.get("/available", response_model=List[OrderResponse])
def available_orders(
    limit: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db),
    current_user: Profile = Depends(get_current_driver)
):
    """Pending pool; empty while the driver is offline"""
    if not current_user.is_online:
        return []
    return OrderService(db).available_orders(limit)

@router.get("/active", response_model=Optional[OrderResponse])
def active_order(db: Session = Depends(get_db), current_user: Profile = Depends(get_current_driver)):
    return OrderService(db).active_order(current_user.id)

@router.get("/{order_id}", response_model=OrderResponse)
def get_order(order_id: int, db: Session = Depends(get_db), ctx: SessionContext = Depends(get_session_context)):
    return OrderService(db).get_order(ctx, order_id)

@router.post("", response_model=OrderResponse, status_code=status.HTTP_201_CREATED)
def create_order(
    order: OrderCreate,
    db: Session = Depends(get_db),
    feed: ChangeFeed = Depends(get_change_feed),
    current_user: Profile = Depends(get_current_client)
):
    return OrderService(db, feed).create_client_order(current_user, order.to_draft())

@router.post("/admin", response_model=OrderResponse, status_code=status.HTTP_201_CREATED)
def create_admin_order(
    order: AdminOrderCreate,
    db: Session = Depends(get_db),
    feed: ChangeFeed = Depends(get_change_feed),
    current_user: Profile = Depends(get_current_admin)
):
    return OrderService(db, feed).create_admin_order(
        current_user,
        order.to_draft(customer_name=order.customer_name),
        price=order.price,
        client_id=order.client_id,
        assigned_driver_id=order.assigned_driver_id,
    )

@router.post("/{order_id}/claim", response_model=ClaimResponse)
def claim_order(
    order_id: int,
    db: Session = Depends(get_db),
    feed: ChangeFeed = Depends(get_change_feed),
    current_user: Profile = Depends(get_current_driver)
):
    """
    Accept a pending order. Losing the race is a normal outcome:
    claimed is false and the order is left to whoever won it.
    """
    result = OrderService(db, feed).claim_order(order_id, current_user)
    return ClaimResponse(
        claimed=result.claimed,
        message=result.message,
        current_status=result.current_status,
        order=OrderResponse.model_validate(result.order) if result.order is not None else None,
    )

@router.post("/{order_id}/assign", response_model=OrderResponse)
def assign_order(
    order_id: int,
    request: AssignRequest,
    db: Session = Depends(get_db),
    feed: ChangeFeed = Depends(get_change_feed),
    current_user: Profile = Depends(get_current_admin)
):
    return OrderService(db, feed).assign_order(order_id, request.driver_id, current_user)

@router.post("/{order_id}/pickup", response_model=OrderResponse)
def pickup_order(
    order_id: int,
    db: Session = Depends(get_db),
    feed: ChangeFeed = Depends(get_change_feed),
    current_user: Profile = Depends(get_current_driver)
):
    return OrderService(db, feed).pickup_order(order_id, current_user)

@router.post("/{order_id}/complete", response_model=OrderResponse)
def complete_order(
    order_id: int,
    db: Session = Depends(get_db),
    feed: ChangeFeed = Depends(get_change_feed),
    current_user: Profile = Depends(get_current_driver)
):
    return OrderService(db, feed).complete_order(order_id, current_user)

@router.post("/{order_id}/cancel", response_model=OrderResponse)
def cancel_order(
    order_id: int,
    request: Optional[CancelRequest] = None,
    db: Session = Depends(get_db),
    feed: ChangeFeed = Depends(get_change_feed),
    ctx: SessionContext = Depends(get_session_context)
):
    return OrderService(db, feed).cancel_order(order_id, ctx, reason=request.reason if request else None)
