import pytest

from pricing_core.extraction import (
    determine_unit_type,
    extract_capacity_from_name,
    extract_daily_intake,
    extract_serving_size,
    normalize_unit,
)
from pricing_core.models import Capacity, UnitType


@pytest.mark.parametrize(
    "name, expected",
    [
        ("Vitamin D 1000IU 90ct", Capacity(90, "ct")),
        ("ビタミンD 1000IU 90粒", Capacity(90, "ct")),
        ("ビタミンD 1000IU 90カプセル", Capacity(90, "ct")),
        ("亜鉛 60錠", Capacity(60, "ct")),
        ("Vitamin C 60 Tablets", Capacity(60, "ct")),
        ("Whey Protein 1.5kg", Capacity(1.5, "kg")),
        ("Liquid Iron 500 ml", Capacity(500, "ml")),
        ("Electrolyte 2 Liters", Capacity(2, "l")),
        ("プロテイン 1キログラム", Capacity(1, "kg")),
        ("青汁 30包", Capacity(30, "pack")),
    ],
)
def test_extract_capacity(name, expected):
    assert extract_capacity_from_name(name) == expected


@pytest.mark.parametrize("name", ["", "Vitamin D", "Zinc 5 large", "Biotin 5000IU"])
def test_extract_capacity_none(name):
    assert extract_capacity_from_name(name) is None


def test_preferred_unit_picks_container_size():
    """Names carrying a dose and a count resolve to the unit asked for."""
    name = "Fish Oil 1000mg 120粒"
    assert extract_capacity_from_name(name) == Capacity(1000, "mg")
    assert extract_capacity_from_name(name, preferred_unit="粒") == Capacity(120, "ct")
    # Falls back to the first capacity when the preferred unit is absent
    assert extract_capacity_from_name(name, preferred_unit="ml") == Capacity(1000, "mg")


def test_normalize_unit():
    assert normalize_unit(" MG ") == "mg"
    assert normalize_unit("グラム") == "g"
    assert normalize_unit("カプセル") == "ct"
    assert normalize_unit("Softgels") == "ct"
    assert normalize_unit("IU") == "iu"


@pytest.mark.parametrize(
    "unit, expected",
    [
        ("mg", UnitType.WEIGHT),
        ("KG", UnitType.WEIGHT),
        ("グラム", UnitType.WEIGHT),
        ("ml", UnitType.VOLUME),
        ("リットル", UnitType.VOLUME),
        ("粒", UnitType.COUNT),
        ("包", UnitType.COUNT),
        ("widgets", UnitType.COUNT),
        ("", UnitType.COUNT),
    ],
)
def test_determine_unit_type(unit, expected):
    assert determine_unit_type(unit) == expected


def test_dosage_extraction():
    assert extract_serving_size("1回2粒") == 2
    assert extract_serving_size("500mg/回") == 500
    assert extract_serving_size("Take 3 capsules per dose") == 3
    assert extract_serving_size("Vitamin D 90ct") is None
    assert extract_daily_intake("1日3回") == 3
    assert extract_daily_intake("2回/日") == 2
    assert extract_daily_intake("twice, 2 times per day") == 2
    assert extract_daily_intake("Vitamin D 90ct") is None
