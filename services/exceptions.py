"""
Domain errors raised by the dispatch services.

Routers never catch these; main.py maps each family onto an HTTP status
so every endpoint reports the same failure the same way.
"""
from typing import Optional


class DispatchError(Exception):
    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationFailedError(DispatchError):
    status_code = 422


class OrderValidationError(ValidationFailedError):
    pass


class PricingValidationError(ValidationFailedError):
    pass


class SettingsValidationError(ValidationFailedError):
    pass


class OrderNotFoundError(DispatchError):
    status_code = 404

    def __init__(self, order_id: int):
        super().__init__(f"Order {order_id} not found")
        self.order_id = order_id


class ConflictError(DispatchError):
    """The row is not in the state the caller expected"""
    status_code = 409


class StaleStateError(ConflictError):
    def __init__(self, message: str, current_status: Optional[str] = None):
        super().__init__(message)
        self.current_status = current_status


class InvalidTransitionError(ConflictError):
    def __init__(self, message: str, current_status: Optional[str] = None):
        super().__init__(message)
        self.current_status = current_status


class PresenceConflictError(ConflictError):
    pass


class DriverBusyError(ConflictError):
    pass


class PermissionDeniedError(DispatchError):
    status_code = 403


class NotAssignedDriverError(PermissionDeniedError):
    pass


class DriverUnavailableError(PermissionDeniedError):
    pass


class CancellationNotAllowedError(PermissionDeniedError):
    pass


class UpstreamServiceError(DispatchError):
    status_code = 502

    def __init__(self, service: str, message: str):
        super().__init__(f"{service}: {message}")
        self.service = service
