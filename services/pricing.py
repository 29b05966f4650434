"""
Delivery pricing.

price = round((base_fee + distance_km * per_km_rate) * vehicle_multiplier)

Prices are whole currency units, rounded half up, never negative.
"""
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional
import math

from services.exceptions import PricingValidationError

DEFAULT_VEHICLE_MULTIPLIER = 1.0

VEHICLE_MULTIPLIERS = {
    "bike": 1.0,
    "motorcycle": 1.0,
    "car": 1.5,
    "van": 2.0,
    "truck": 3.5,
}


def vehicle_multiplier(vehicle_type: Optional[str]) -> float:
    if not vehicle_type:
        return DEFAULT_VEHICLE_MULTIPLIER
    return VEHICLE_MULTIPLIERS.get(vehicle_type.lower(), DEFAULT_VEHICLE_MULTIPLIER)


def _require_non_negative(name: str, value: float):
    if value is None or not math.isfinite(value):
        raise PricingValidationError(f"{name} must be a finite number")
    if value < 0:
        raise PricingValidationError(f"{name} cannot be negative")


def calculate_price(base_fee: float, per_km_rate: float, vehicle_multiplier: float, distance_km: float) -> int:
    _require_non_negative("base_fee", base_fee)
    _require_non_negative("per_km_rate", per_km_rate)
    _require_non_negative("vehicle_multiplier", vehicle_multiplier)
    _require_non_negative("distance_km", distance_km)

    raw = (Decimal(str(base_fee)) + Decimal(str(distance_km)) * Decimal(str(per_km_rate))) * Decimal(str(vehicle_multiplier))
    return max(0, int(raw.quantize(Decimal("1"), rounding=ROUND_HALF_UP)))


@dataclass
class PriceQuote:
    distance_km: float
    is_road_distance: bool
    base_fee: float
    per_km_rate: float
    vehicle_type: Optional[str]
    vehicle_multiplier: float
    price: int


def quote(base_fee: float, per_km_rate: float, vehicle_type: Optional[str], distance_km: float, is_road_distance: bool = False) -> PriceQuote:
    multiplier = vehicle_multiplier(vehicle_type)
    return PriceQuote(
        distance_km=round(distance_km, 2),
        is_road_distance=is_road_distance,
        base_fee=base_fee,
        per_km_rate=per_km_rate,
        vehicle_type=vehicle_type,
        vehicle_multiplier=multiplier,
        price=calculate_price(base_fee, per_km_rate, multiplier, distance_km),
    )
