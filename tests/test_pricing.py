"""Tests for delivery pricing."""

import math

import pytest

from services.exceptions import PricingValidationError
from services.pricing import VEHICLE_MULTIPLIERS, calculate_price, quote, vehicle_multiplier
from utils.distance import calculate_eta, get_trip_distance, haversine_distance


def test_reference_price() -> None:
    assert calculate_price(20, 5, 1, 2) == 30


def test_price_is_deterministic() -> None:
    assert calculate_price(25, 5.5, 1.5, 7.3) == calculate_price(25, 5.5, 1.5, 7.3)


def test_price_never_decreases_with_distance() -> None:
    prices = [calculate_price(25, 5.5, 2.0, km / 10) for km in range(0, 300)]
    assert prices == sorted(prices)


def test_rounds_half_up() -> None:
    # (10 + 1 * 0.5) * 1 = 10.5
    assert calculate_price(10, 0.5, 1, 1) == 11
    # (2 + 0.25 * 1) * 1 = 2.25
    assert calculate_price(2, 1, 1, 0.25) == 2


def test_zero_inputs_give_zero() -> None:
    assert calculate_price(0, 0, 1, 0) == 0


@pytest.mark.parametrize(
    "args",
    [(-1, 5, 1, 2), (20, -5, 1, 2), (20, 5, -1, 2), (20, 5, 1, -2), (20, 5, 1, math.nan)],
)
def test_invalid_inputs_raise(args) -> None:
    with pytest.raises(PricingValidationError):
        calculate_price(*args)


def test_vehicle_multipliers() -> None:
    assert VEHICLE_MULTIPLIERS == {"bike": 1.0, "motorcycle": 1.0, "car": 1.5, "van": 2.0, "truck": 3.5}
    assert vehicle_multiplier("TRUCK") == 3.5
    assert vehicle_multiplier("hovercraft") == 1.0
    assert vehicle_multiplier(None) == 1.0


def test_quote_applies_vehicle_class() -> None:
    result = quote(25, 5.5, "van", 4.0)
    assert result.vehicle_multiplier == 2.0
    assert result.price == calculate_price(25, 5.5, 2.0, 4.0) == 94
    assert result.is_road_distance is False


def test_haversine_known_distance() -> None:
    # Lusaka to Kabwe is about 110 km as the crow flies
    distance = haversine_distance(-15.4167, 28.2833, -14.4469, 28.4464)
    assert 100 < distance < 120


def test_trip_distance_falls_back_to_haversine() -> None:
    distance, is_road = get_trip_distance(-15.4167, 28.2833, -15.3982, 28.3070)
    assert is_road is False
    assert distance == pytest.approx(haversine_distance(-15.4167, 28.2833, -15.3982, 28.3070))


def test_eta() -> None:
    assert calculate_eta(0) == 0
    assert calculate_eta(15) == 30
    assert calculate_eta(0.1) == 1
