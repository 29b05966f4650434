from sqlalchemy import Column, Integer, String, DateTime, Text, ForeignKey, Enum as SQLEnum
from sqlalchemy.orm import relationship
from datetime import datetime
from database import Base
import enum

class LogLevel(str, enum.Enum):
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"

class LogCategory(str, enum.Enum):
    AUTHENTICATION = "authentication"
    ORDER_MANAGEMENT = "order_management"
    DISPATCH = "dispatch"
    PRESENCE = "presence"
    GEOCODING = "geocoding"
    SETTINGS = "settings"
    SYSTEM = "system"

class SystemLog(Base):
    """General system logs for application events"""
    __tablename__ = "system_logs"

    id = Column(Integer, primary_key=True, index=True)
    level = Column(SQLEnum(LogLevel), nullable=False, index=True)
    category = Column(SQLEnum(LogCategory), nullable=False, index=True)
    message = Column(Text, nullable=False)
    details = Column(Text, nullable=True)  # JSON string for additional data
    user_id = Column(Integer, ForeignKey("profiles.id"), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)

    user = relationship("Profile", foreign_keys=[user_id])

class ErrorLog(Base):
    """Error and upstream failure logs"""
    __tablename__ = "error_logs"

    id = Column(Integer, primary_key=True, index=True)
    error_type = Column(String(200), nullable=False, index=True)
    error_message = Column(Text, nullable=False)
    endpoint = Column(String(500), nullable=True)
    user_id = Column(Integer, ForeignKey("profiles.id"), nullable=True)
    request_data = Column(Text, nullable=True)
    severity = Column(SQLEnum(LogLevel), default=LogLevel.ERROR, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)

    user = relationship("Profile", foreign_keys=[user_id])

class UserActivityLog(Base):
    """Audit trail of user actions (signup, claim, pickup, settings change...)"""
    __tablename__ = "user_activity_logs"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("profiles.id"), nullable=False, index=True)
    action = Column(String(200), nullable=False, index=True)
    description = Column(Text, nullable=True)
    entity_type = Column(String(100), nullable=True)  # order, profile, setting
    entity_id = Column(String(100), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)

    user = relationship("Profile", foreign_keys=[user_id])
