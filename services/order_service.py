"""
Order repository access and lifecycle operations.

Every status change is a conditional UPDATE keyed on the status the caller
expects, so concurrent actors are serialized by the database alone:

- claim:   WHERE id = :id AND status = 'pending'
- advance: WHERE id = :id AND status = :read_status AND assigned_driver_id = :driver
- cancel:  WHERE id = :id AND status = :read_status

Zero rows affected on a claim means another driver won; it is reported as
ClaimResult(claimed=False), not raised. Zero rows on any other transition
means the row changed underneath the caller and raises StaleStateError.
"""
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import List, Optional, Sequence
import logging

from sqlalchemy import exists
from sqlalchemy.orm import Session, aliased

from config import settings as app_settings
from models.log import LogCategory
from models.order import Order, OrderStatus, PaymentMethod
from models.profile import Profile, UserRole
from services.change_feed import ChangeEvent, ChangeFeed, ChangeType
from services.exceptions import (
    CancellationNotAllowedError,
    DriverBusyError,
    DriverUnavailableError,
    NotAssignedDriverError,
    OrderNotFoundError,
    OrderValidationError,
    PermissionDeniedError,
    StaleStateError,
)
from services.order_lifecycle import ACTIVE_STATUSES, OrderEvent, next_status
from services.pricing import quote
from services.settings_service import SettingsService
from utils.auth_dependency import SessionContext
from utils.distance import get_trip_distance
from utils.logger import DatabaseLogger, log_info

logger = logging.getLogger(__name__)

CLAIM_LOST_MESSAGE = "Order taken by another driver or unavailable."


@dataclass
class OrderDraft:
    pickup_address: str
    pickup_lat: float
    pickup_lng: float
    dropoff_address: str
    dropoff_lat: float
    dropoff_lng: float
    customer_name: Optional[str] = None
    vehicle_type_required: Optional[str] = None
    payment_method: PaymentMethod = PaymentMethod.CASH
    receiver_name: Optional[str] = None
    receiver_phone: Optional[str] = None
    item_description: Optional[str] = None
    driver_notes: Optional[str] = None
    scheduled_for: Optional[datetime] = None


@dataclass
class ClaimResult:
    claimed: bool
    order: Optional[Order] = None
    message: str = ""
    current_status: Optional[OrderStatus] = None


class OrderService:
    def __init__(self, db: Session, feed: Optional[ChangeFeed] = None):
        self.db = db
        self.feed = feed

    # ---- reads -----------------------------------------------------------

    def _load(self, order_id: int) -> Order:
        order = self.db.query(Order).filter(Order.id == order_id).first()
        if order is None:
            raise OrderNotFoundError(order_id)
        return order

    def get_order(self, ctx: SessionContext, order_id: int) -> Order:
        order = self._load(order_id)
        if ctx.is_admin:
            return order
        if ctx.is_client and order.client_id == ctx.user_id:
            return order
        if ctx.is_driver and (order.assigned_driver_id == ctx.user_id or order.status == OrderStatus.PENDING):
            return order
        # Hide existence of orders the caller may not see
        raise OrderNotFoundError(order_id)

    def list_orders(
        self,
        ctx: SessionContext,
        statuses: Optional[Sequence[OrderStatus]] = None,
        driver_id: Optional[int] = None,
        client_id: Optional[int] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> List[Order]:
        """
        Orders visible to the caller, newest first:
        - Admin: everything, optionally filtered by driver/client/status
        - Driver: only orders assigned to them
        - Client: only their own orders
        """
        query = self.db.query(Order)

        if ctx.is_driver:
            query = query.filter(Order.assigned_driver_id == ctx.user_id)
        elif ctx.is_client:
            query = query.filter(Order.client_id == ctx.user_id)
        else:
            if driver_id is not None:
                query = query.filter(Order.assigned_driver_id == driver_id)
            if client_id is not None:
                query = query.filter(Order.client_id == client_id)

        if statuses:
            query = query.filter(Order.status.in_(list(statuses)))

        return query.order_by(Order.created_at.desc(), Order.id.desc()).offset(offset).limit(limit).all()

    def available_orders(self, limit: int = 20) -> List[Order]:
        """The shared pending pool offered to online drivers"""
        return (
            self.db.query(Order)
            .filter(Order.status == OrderStatus.PENDING)
            .order_by(Order.created_at.desc(), Order.id.desc())
            .limit(limit)
            .all()
        )

    def active_order(self, driver_id: int) -> Optional[Order]:
        return (
            self.db.query(Order)
            .filter(Order.assigned_driver_id == driver_id, Order.status.in_(list(ACTIVE_STATUSES)))
            .order_by(Order.updated_at.desc())
            .first()
        )

    # ---- creation --------------------------------------------------------

    def _validate_draft(self, draft: OrderDraft):
        if not draft.pickup_address or not draft.pickup_address.strip():
            raise OrderValidationError("Pickup address is required")
        if not draft.dropoff_address or not draft.dropoff_address.strip():
            raise OrderValidationError("Dropoff address is required")
        for name, value, bound in (
            ("pickup_lat", draft.pickup_lat, 90), ("dropoff_lat", draft.dropoff_lat, 90),
            ("pickup_lng", draft.pickup_lng, 180), ("dropoff_lng", draft.dropoff_lng, 180),
        ):
            if value is None or not -bound <= value <= bound:
                raise OrderValidationError(f"{name} is out of range")

    def _trip_distance(self, draft: OrderDraft):
        return get_trip_distance(
            draft.pickup_lat, draft.pickup_lng,
            draft.dropoff_lat, draft.dropoff_lng,
            use_road_distance=app_settings.use_road_distance,
            timeout=app_settings.routing_timeout_seconds,
        )

    def _build(self, draft: OrderDraft, customer_name: str, price, distance_km: float, **extra) -> Order:
        return Order(
            customer_name=customer_name,
            pickup_address=draft.pickup_address.strip(),
            pickup_lat=draft.pickup_lat,
            pickup_lng=draft.pickup_lng,
            dropoff_address=draft.dropoff_address.strip(),
            dropoff_lat=draft.dropoff_lat,
            dropoff_lng=draft.dropoff_lng,
            distance_km=round(distance_km, 2),
            price=Decimal(str(price)),
            vehicle_type_required=draft.vehicle_type_required,
            payment_method=draft.payment_method,
            receiver_name=draft.receiver_name,
            receiver_phone=draft.receiver_phone,
            item_description=draft.item_description,
            driver_notes=draft.driver_notes,
            scheduled_for=draft.scheduled_for,
            **extra,
        )

    def create_client_order(self, client: Profile, draft: OrderDraft) -> Order:
        """A client books a delivery; the price is always computed server-side"""
        self._validate_draft(draft)

        distance_km, is_road = self._trip_distance(draft)
        pricing = SettingsService(self.db).get_pricing()
        price_quote = quote(pricing.base_fee, pricing.per_km_rate, draft.vehicle_type_required, distance_km, is_road)

        order = self._build(
            draft,
            customer_name=draft.customer_name or client.full_name,
            price=price_quote.price,
            distance_km=distance_km,
            client_id=client.id,
            status=OrderStatus.PENDING,
        )
        self.db.add(order)
        self.db.commit()
        self.db.refresh(order)

        logger.info(f"Order {order.id} created by client {client.id} at {price_quote.price}")
        DatabaseLogger.log_user_activity(
            user_id=client.id,
            action="create_order",
            description=f"Booked delivery for {price_quote.price} ({price_quote.distance_km} km)",
            entity_type="order",
            entity_id=order.id,
            db=self.db,
        )
        self._publish(ChangeType.INSERT, order)
        return order

    def create_admin_order(
        self,
        admin: Profile,
        draft: OrderDraft,
        price: Optional[float] = None,
        client_id: Optional[int] = None,
        assigned_driver_id: Optional[int] = None,
    ) -> Order:
        """Admin dispatch; with a driver the order starts out assigned"""
        self._validate_draft(draft)
        if not draft.customer_name or not draft.customer_name.strip():
            raise OrderValidationError("Customer name is required")
        if price is not None and price < 0:
            raise OrderValidationError("Price cannot be negative")

        if client_id is not None:
            client = self.db.query(Profile).filter(Profile.id == client_id).first()
            if client is None or client.role != UserRole.CLIENT:
                raise OrderValidationError(f"Client {client_id} does not exist")

        if assigned_driver_id is not None:
            self._require_driver(assigned_driver_id)

        distance_km, is_road = self._trip_distance(draft)
        if price is None:
            pricing = SettingsService(self.db).get_pricing()
            price = quote(pricing.base_fee, pricing.per_km_rate, draft.vehicle_type_required, distance_km, is_road).price

        order = self._build(
            draft,
            customer_name=draft.customer_name.strip(),
            price=price,
            distance_km=distance_km,
            client_id=client_id,
            assigned_driver_id=assigned_driver_id,
            status=OrderStatus.ASSIGNED if assigned_driver_id else OrderStatus.PENDING,
        )
        self.db.add(order)
        self.db.commit()
        self.db.refresh(order)

        DatabaseLogger.log_user_activity(
            user_id=admin.id,
            action="dispatch_order",
            description=f"Created order for {order.customer_name}" + (f", assigned to driver {assigned_driver_id}" if assigned_driver_id else ""),
            entity_type="order",
            entity_id=order.id,
            db=self.db,
        )
        self._publish(ChangeType.INSERT, order)
        return order

    def _require_driver(self, driver_id: int) -> Profile:
        driver = self.db.query(Profile).filter(Profile.id == driver_id).first()
        if driver is None or driver.role != UserRole.DRIVER:
            raise OrderValidationError(f"Driver {driver_id} does not exist")
        if not driver.is_active:
            raise OrderValidationError(f"Driver {driver_id} is deactivated")
        return driver

    # ---- claim & assignment ---------------------------------------------

    def _conditional_update(self, order_id: int, expected_status: OrderStatus, values: dict, driver_id: Optional[int] = None, criteria=()) -> int:
        query = self.db.query(Order).filter(Order.id == order_id, Order.status == expected_status, *criteria)
        if driver_id is not None:
            query = query.filter(Order.assigned_driver_id == driver_id)
        values = dict(values)
        values[Order.updated_at] = datetime.utcnow()
        affected = query.update(values, synchronize_session=False)
        self.db.commit()
        return affected

    def claim_order(self, order_id: int, driver: Profile) -> ClaimResult:
        """
        First online driver to claim a pending order wins it.

        A driver holds at most one active order. The driver's profile row is
        locked for the claim and the UPDATE itself re-checks that no active
        order exists, so two claims by one driver on different orders cannot
        both succeed.
        """
        if driver.role != UserRole.DRIVER:
            raise PermissionDeniedError("Only drivers can claim orders")
        if not driver.is_online:
            raise DriverUnavailableError("Go online to accept orders")

        # Row lock on Postgres; SQLite ignores FOR UPDATE and serializes writers
        self.db.query(Profile.id).filter(Profile.id == driver.id).with_for_update().first()

        active = self.active_order(driver.id)
        if active is not None:
            self.db.rollback()
            raise DriverBusyError(f"Finish order #{active.id} before accepting another")

        held = aliased(Order)
        affected = self._conditional_update(
            order_id,
            OrderStatus.PENDING,
            {Order.status: OrderStatus.ASSIGNED, Order.assigned_driver_id: driver.id},
            criteria=(~exists().where(held.assigned_driver_id == driver.id, held.status.in_(list(ACTIVE_STATUSES))),),
        )

        if affected == 0:
            current = self.db.query(Order).filter(Order.id == order_id).first()
            if current is None:
                raise OrderNotFoundError(order_id)
            active = self.active_order(driver.id)
            if active is not None:
                raise DriverBusyError(f"Finish order #{active.id} before accepting another")
            logger.info(f"Driver {driver.id} lost claim on order {order_id} (now {current.status.value})")
            return ClaimResult(claimed=False, message=CLAIM_LOST_MESSAGE, current_status=current.status)

        order = self._load(order_id)
        logger.info(f"Order {order_id} claimed by driver {driver.id}")
        DatabaseLogger.log_user_activity(
            user_id=driver.id,
            action="claim_order",
            entity_type="order",
            entity_id=order_id,
            db=self.db,
        )
        self._publish(ChangeType.UPDATE, order, old={"status": OrderStatus.PENDING.value, "assigned_driver_id": None})
        return ClaimResult(claimed=True, order=order, message="Order claimed successfully!", current_status=order.status)

    def assign_order(self, order_id: int, driver_id: int, admin: Profile) -> Order:
        """Admin hands a pending order to a driver, who need not be online"""
        self._require_driver(driver_id)
        order = self._load(order_id)
        next_status(order.status, OrderEvent.ASSIGN)

        affected = self._conditional_update(
            order_id,
            OrderStatus.PENDING,
            {Order.status: OrderStatus.ASSIGNED, Order.assigned_driver_id: driver_id},
        )
        if affected == 0:
            raise StaleStateError("Order status changed before it could be assigned", current_status=self._load(order_id).status.value)

        order = self._load(order_id)
        DatabaseLogger.log_user_activity(
            user_id=admin.id,
            action="assign_order",
            description=f"Assigned to driver {driver_id}",
            entity_type="order",
            entity_id=order_id,
            db=self.db,
        )
        self._publish(ChangeType.UPDATE, order, old={"status": OrderStatus.PENDING.value, "assigned_driver_id": None})
        return order

    # ---- driver progress -------------------------------------------------

    def _advance(self, order_id: int, driver: Profile, event: OrderEvent, action: str) -> Order:
        order = self._load(order_id)
        current = order.status
        target = next_status(current, event)

        if order.assigned_driver_id != driver.id:
            raise NotAssignedDriverError("This order is assigned to another driver")

        affected = self._conditional_update(order_id, current, {Order.status: target}, driver_id=driver.id)
        if affected == 0:
            raise StaleStateError("Order status changed, refresh and try again", current_status=self._load(order_id).status.value)

        order = self._load(order_id)
        logger.info(f"Order {order_id} {current.value} -> {target.value} by driver {driver.id}")
        DatabaseLogger.log_user_activity(
            user_id=driver.id,
            action=action,
            entity_type="order",
            entity_id=order_id,
            db=self.db,
        )
        self._publish(ChangeType.UPDATE, order, old={"status": current.value})
        return order

    def pickup_order(self, order_id: int, driver: Profile) -> Order:
        return self._advance(order_id, driver, OrderEvent.PICKUP, "pickup_order")

    def complete_order(self, order_id: int, driver: Profile) -> Order:
        return self._advance(order_id, driver, OrderEvent.COMPLETE, "complete_order")

    # ---- cancellation ----------------------------------------------------

    def cancel_order(self, order_id: int, ctx: SessionContext, reason: Optional[str] = None) -> Order:
        """
        Admins cancel any non-terminal order; the owning client only while
        it is still pending; drivers never.
        """
        order = self._load(order_id)
        current = order.status

        if ctx.is_driver:
            raise CancellationNotAllowedError("Drivers cannot cancel orders")
        if ctx.is_client and order.client_id != ctx.user_id:
            raise OrderNotFoundError(order_id)

        next_status(current, OrderEvent.CANCEL)
        if ctx.is_client and current != OrderStatus.PENDING:
            raise CancellationNotAllowedError("Orders can only be cancelled before a driver accepts them")

        affected = self._conditional_update(order_id, current, {Order.status: OrderStatus.CANCELLED})
        if affected == 0:
            raise StaleStateError("Order status changed, refresh and try again", current_status=self._load(order_id).status.value)

        order = self._load(order_id)
        log_info(
            f"Order {order_id} cancelled from {current.value}",
            category=LogCategory.ORDER_MANAGEMENT,
            details={"reason": reason, "role": ctx.role.value},
            user_id=ctx.user_id,
            db=self.db,
        )
        DatabaseLogger.log_user_activity(
            user_id=ctx.user_id,
            action="cancel_order",
            description=reason,
            entity_type="order",
            entity_id=order_id,
            db=self.db,
        )
        self._publish(ChangeType.UPDATE, order, old={"status": current.value})
        return order

    # ---- change feed -----------------------------------------------------

    def _publish(self, event_type: ChangeType, order: Order, old: Optional[dict] = None):
        if self.feed is None:
            return
        new = order.to_row()
        self.feed.publish(ChangeEvent(
            table="orders",
            event_type=event_type,
            new=new,
            old=dict(new, **old) if old is not None else None,
        ))
