from models.profile import Profile, UserRole, VehicleType
from models.order import Order, OrderStatus, PaymentMethod
from models.system_setting import SystemSetting
from models.log import SystemLog, ErrorLog, UserActivityLog, LogLevel, LogCategory

__all__ = ["Profile", "UserRole", "VehicleType", "Order", "OrderStatus", "PaymentMethod", "SystemSetting", "SystemLog", "ErrorLog", "UserActivityLog", "LogLevel", "LogCategory"]
