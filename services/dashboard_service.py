"""
Read models behind the client, driver and admin dashboards.
"""
from datetime import datetime
from typing import Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from models.order import Order, OrderStatus
from models.profile import Profile, UserRole
from services.order_lifecycle import ACTIVE_STATUSES, TERMINAL_STATUSES
from services.order_service import OrderService
from services.presence_service import PresenceService
from services.settings_service import MIN_PAYOUT, SettingsService
from utils.distance import calculate_eta, haversine_distance

OPEN_STATUSES = [OrderStatus.PENDING, OrderStatus.ASSIGNED, OrderStatus.PICKED_UP]


def _today_start() -> datetime:
    return datetime.combine(datetime.utcnow().date(), datetime.min.time())


def _money(value) -> float:
    return round(float(value or 0), 2)


class DashboardService:
    def __init__(self, db: Session):
        self.db = db

    # ---- client ------------------------------------------------------------

    def client_summary(self, client: Profile, limit: int = 20) -> dict:
        base = self.db.query(Order).filter(Order.client_id == client.id)
        orders = base.order_by(Order.created_at.desc(), Order.id.desc()).limit(limit).all()
        active = base.filter(Order.status.in_(OPEN_STATUSES)).count()
        delivered = base.filter(Order.status == OrderStatus.DELIVERED).count()
        spent = (
            self.db.query(func.coalesce(func.sum(Order.price), 0))
            .filter(Order.client_id == client.id, Order.status == OrderStatus.DELIVERED)
            .scalar()
        )
        return {
            "orders": orders,
            "active_orders": active,
            "delivered_orders": delivered,
            "total_spent": _money(spent),
        }

    # ---- driver ------------------------------------------------------------

    def driver_stats(self, driver_id: int) -> dict:
        """Deliveries completed today and what they earned"""
        count, total = (
            self.db.query(func.count(Order.id), func.coalesce(func.sum(Order.price), 0))
            .filter(
                Order.assigned_driver_id == driver_id,
                Order.status == OrderStatus.DELIVERED,
                Order.updated_at >= _today_start(),
            )
            .one()
        )
        return {"deliveries_count": int(count or 0), "total_earnings": _money(total)}

    def driver_summary(self, driver: Profile) -> dict:
        orders = OrderService(self.db)
        active = orders.active_order(driver.id)

        offer = None
        if active is None and driver.is_online:
            pool = orders.available_orders(limit=1)
            offer = pool[0] if pool else None

        eta_minutes = None
        if active is not None and driver.last_lat is not None and driver.last_lng is not None:
            if active.status == OrderStatus.ASSIGNED:
                target = (active.pickup_lat, active.pickup_lng)
            else:
                target = (active.dropoff_lat, active.dropoff_lng)
            eta_minutes = calculate_eta(haversine_distance(driver.last_lat, driver.last_lng, *target))

        return {
            "is_online": driver.is_online,
            "active_order": active,
            "offer": offer,
            "eta_minutes": eta_minutes,
            "today": self.driver_stats(driver.id),
        }

    def driver_history(self, driver: Profile, limit: int = 50, offset: int = 0) -> List[Order]:
        return (
            self.db.query(Order)
            .filter(Order.assigned_driver_id == driver.id, Order.status.in_(list(TERMINAL_STATUSES)))
            .order_by(Order.updated_at.desc(), Order.id.desc())
            .offset(offset)
            .limit(limit)
            .all()
        )

    # ---- admin -------------------------------------------------------------

    def admin_overview(self) -> dict:
        by_status: Dict[OrderStatus, int] = dict(
            self.db.query(Order.status, func.count(Order.id)).group_by(Order.status).all()
        )
        total_orders = sum(by_status.values())
        delivered = by_status.get(OrderStatus.DELIVERED, 0)
        revenue = (
            self.db.query(func.coalesce(func.sum(Order.price), 0))
            .filter(Order.status == OrderStatus.DELIVERED)
            .scalar()
        )
        online_drivers = (
            self.db.query(func.count(Profile.id))
            .filter(Profile.role == UserRole.DRIVER, Profile.is_online == True)  # noqa: E712
            .scalar()
        )
        return {
            "total_revenue": _money(revenue),
            "active_orders": sum(by_status.get(s, 0) for s in OPEN_STATUSES),
            "online_drivers": int(online_drivers or 0),
            "delivery_count": delivered,
            "success_rate": round(delivered / total_orders * 100, 1) if total_orders else 0.0,
            "orders_by_status": {status.value: by_status.get(status, 0) for status in OrderStatus},
        }

    def payroll(self) -> List[dict]:
        """Earnings per driver from delivered orders, all unpaid until processed"""
        min_payout = float(SettingsService(self.db).get(MIN_PAYOUT) or 0)
        rows = (
            self.db.query(
                Profile.id,
                Profile.full_name,
                func.count(Order.id),
                func.coalesce(func.sum(Order.price), 0),
            )
            .join(Order, Order.assigned_driver_id == Profile.id)
            .filter(Order.status == OrderStatus.DELIVERED)
            .group_by(Profile.id, Profile.full_name)
            .order_by(func.sum(Order.price).desc())
            .all()
        )
        return [
            {
                "driver_id": driver_id,
                "full_name": full_name or "Unknown Driver",
                "deliveries": int(deliveries),
                "total_earned": _money(total),
                "pending_payout": _money(total),
                "payout_eligible": float(total) >= min_payout,
            }
            for driver_id, full_name, deliveries, total in rows
        ]

    def fleet(self) -> List[dict]:
        """Online drivers with their last position and current job"""
        drivers = PresenceService(self.db).online_drivers()
        active_by_driver: Dict[int, Order] = {}
        if drivers:
            for order in (
                self.db.query(Order)
                .filter(
                    Order.assigned_driver_id.in_([d.id for d in drivers]),
                    Order.status.in_(list(ACTIVE_STATUSES)),
                )
                .all()
            ):
                active_by_driver[order.assigned_driver_id] = order

        return [
            {
                "driver_id": driver.id,
                "full_name": driver.full_name,
                "vehicle_type": driver.vehicle_type.value if driver.vehicle_type else None,
                "lat": driver.last_lat,
                "lng": driver.last_lng,
                "last_seen_at": driver.last_seen_at,
                "active_order_id": active_by_driver[driver.id].id if driver.id in active_by_driver else None,
                "active_order_status": active_by_driver[driver.id].status.value if driver.id in active_by_driver else None,
            }
            for driver in drivers
        ]

    def order_log(self, status: Optional[OrderStatus] = None, limit: int = 100, offset: int = 0) -> List[Order]:
        query = self.db.query(Order)
        if status is not None:
            query = query.filter(Order.status == status)
        return query.order_by(Order.updated_at.desc(), Order.id.desc()).offset(offset).limit(limit).all()
