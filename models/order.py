from sqlalchemy import Column, Integer, Float, Numeric, String, Text, DateTime, ForeignKey, Enum as SQLEnum
from sqlalchemy.orm import relationship
from datetime import datetime
from database import Base
import enum

class OrderStatus(str, enum.Enum):
    PENDING = "pending"
    ASSIGNED = "assigned"
    PICKED_UP = "picked_up"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"

class PaymentMethod(str, enum.Enum):
    CASH = "cash"
    WALLET = "wallet"

class Order(Base):
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, index=True)
    client_id = Column(Integer, ForeignKey("profiles.id"), nullable=True, index=True)
    customer_name = Column(String(100), nullable=False)
    assigned_driver_id = Column(Integer, ForeignKey("profiles.id"), nullable=True, index=True)

    pickup_address = Column(String(500), nullable=False)
    pickup_lat = Column(Float, nullable=False)
    pickup_lng = Column(Float, nullable=False)
    dropoff_address = Column(String(500), nullable=False)
    dropoff_lat = Column(Float, nullable=False)
    dropoff_lng = Column(Float, nullable=False)
    distance_km = Column(Float, nullable=True)

    price = Column(Numeric(10, 2), nullable=False)
    vehicle_type_required = Column(String(20), nullable=True)
    payment_method = Column(SQLEnum(PaymentMethod), default=PaymentMethod.CASH, nullable=False)

    receiver_name = Column(String(100), nullable=True)
    receiver_phone = Column(String(20), nullable=True)
    item_description = Column(Text, nullable=True)
    driver_notes = Column(Text, nullable=True)

    status = Column(SQLEnum(OrderStatus), default=OrderStatus.PENDING, nullable=False, index=True)
    scheduled_for = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    # Relationships
    client = relationship("Profile", back_populates="client_orders", foreign_keys=[client_id])
    driver = relationship("Profile", back_populates="driver_orders", foreign_keys=[assigned_driver_id])

    def to_row(self) -> dict:
        """Full row state as carried by change feed events"""
        return {
            "id": self.id,
            "client_id": self.client_id,
            "customer_name": self.customer_name,
            "assigned_driver_id": self.assigned_driver_id,
            "pickup_address": self.pickup_address,
            "pickup_lat": self.pickup_lat,
            "pickup_lng": self.pickup_lng,
            "dropoff_address": self.dropoff_address,
            "dropoff_lat": self.dropoff_lat,
            "dropoff_lng": self.dropoff_lng,
            "distance_km": self.distance_km,
            "price": float(self.price) if self.price is not None else None,
            "vehicle_type_required": self.vehicle_type_required,
            "payment_method": self.payment_method.value if self.payment_method else None,
            "receiver_name": self.receiver_name,
            "receiver_phone": self.receiver_phone,
            "item_description": self.item_description,
            "driver_notes": self.driver_notes,
            "status": self.status.value if self.status else None,
            "scheduled_for": self.scheduled_for.isoformat() if self.scheduled_for else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
