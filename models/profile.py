from sqlalchemy import String, Float, Enum as SQLEnum, Boolean, DateTime
from sqlalchemy.orm import relationship, Mapped, mapped_column
from datetime import datetime
from typing import Optional, List, TYPE_CHECKING
from database import Base
import enum

if TYPE_CHECKING:
    from models.order import Order

class UserRole(str, enum.Enum):
    ADMIN = "admin"
    DRIVER = "driver"
    CLIENT = "client"

    @property
    def home_path(self) -> str:
        return f"/dashboard/{self.value}"

class VehicleType(str, enum.Enum):
    BIKE = "bike"
    MOTORCYCLE = "motorcycle"
    CAR = "car"
    VAN = "van"
    TRUCK = "truck"

class Profile(Base):
    """Account, role and (for drivers) live presence"""
    __tablename__ = "profiles"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    email: Mapped[str] = mapped_column(String(255), unique=True, index=True, nullable=False)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    full_name: Mapped[str] = mapped_column(String(100), nullable=False)
    phone: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    role: Mapped[UserRole] = mapped_column(SQLEnum(UserRole), nullable=False, index=True)
    vehicle_type: Mapped[Optional[VehicleType]] = mapped_column(SQLEnum(VehicleType), nullable=True)

    # Account status
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default='true')

    # Presence - positions are only accepted while is_online is true
    is_online: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default='false', index=True)
    last_lat: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    last_lng: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    last_seen_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    # Relationships
    client_orders: Mapped[List["Order"]] = relationship(
        "Order", back_populates="client", foreign_keys="Order.client_id"
    )
    driver_orders: Mapped[List["Order"]] = relationship(
        "Order", back_populates="driver", foreign_keys="Order.assigned_driver_id"
    )

    def to_row(self) -> dict:
        """Public row state published on the change feed, never includes credentials"""
        return {
            "id": self.id,
            "email": self.email,
            "full_name": self.full_name,
            "phone": self.phone,
            "role": self.role.value,
            "vehicle_type": self.vehicle_type.value if self.vehicle_type else None,
            "is_active": self.is_active,
            "is_online": self.is_online,
            "last_lat": self.last_lat,
            "last_lng": self.last_lng,
            "last_seen_at": self.last_seen_at.isoformat() if self.last_seen_at else None,
        }
