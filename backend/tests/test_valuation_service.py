from datetime import date, datetime, timedelta
from types import SimpleNamespace

import pytest

from openstock.services import catalog_service, stock_service, valuation_service
from openstock.services.valuation_service import (
    StockStatus,
    aggregate_movements_by_day,
    classify_stock,
    stock_value,
    total_stock_value,
)
from openstock.validation import ValidationError


@pytest.mark.parametrize("quantity, minimum, maximum, expected", [
    (0, 5, None, StockStatus.OUT_OF_STOCK),
    (0, 0, None, StockStatus.OUT_OF_STOCK),
    (5, 5, None, StockStatus.LOW_STOCK),
    (10, 5, 8, StockStatus.OVERSTOCK),
    (8, 5, 8, StockStatus.OVERSTOCK),
    (6, 5, 10, StockStatus.NORMAL),
    (1, 0, None, StockStatus.NORMAL),
    (3, None, None, StockStatus.NORMAL),
])
def test_classify_stock(quantity, minimum, maximum, expected):
    assert classify_stock(quantity, minimum, maximum) is expected


def test_stock_value():
    assert stock_value(12.5, 4) == 50.0
    assert stock_value(None, 4) == 0.0
    assert stock_value(0.125, 1) == 0.13


def test_total_stock_value_rounds_once():
    assert total_stock_value([(10, 3), (7.333, 2)]) == 44.67
    # per-row rounding would give 0.03
    assert total_stock_value([(0.005, 1)] * 3) == 0.02
    assert total_stock_value([]) == 0.0


def _movement(movement_type, quantity, when):
    return SimpleNamespace(type=movement_type, quantity=quantity, created_at=when)


def test_aggregate_movements_by_day_zero_fills_window():
    today = date(2026, 10, 19)
    now = datetime(2026, 10, 19, 9, 30)
    movements = [
        _movement("in", 5, now),
        _movement("return", 2, now),
        _movement("adjustment", -4, now),
        _movement("out", 3, now - timedelta(days=1)),
        _movement("transfer", 1, now - timedelta(days=1)),
        _movement("out", 10, now - timedelta(days=20)),
    ]

    chart = aggregate_movements_by_day(movements, 14, today=today)

    assert len(chart.labels) == len(chart.stock_in) == len(chart.stock_out) == 14
    assert chart.labels[0] == "2026-10-06"
    assert chart.labels[-1] == "2026-10-19"
    assert chart.stock_in[-1] == 7
    assert chart.stock_out[-2] == 4
    assert sum(chart.stock_in) == 7
    assert sum(chart.stock_out) == 4
    assert chart.to_dict()["labels"] == chart.labels


def test_aggregate_movements_empty_input():
    chart = aggregate_movements_by_day([], 3, today=date(2026, 1, 1))

    assert chart.labels == ["2025-12-30", "2025-12-31", "2026-01-01"]
    assert chart.stock_in == [0, 0, 0]
    assert chart.stock_out == [0, 0, 0]


def test_aggregate_movements_rejects_empty_window():
    with pytest.raises(ValidationError):
        aggregate_movements_by_day([], 0)


def test_stock_level_summary(make_product):
    make_product(name="Empty", stock_min=2)
    make_product(name="Low", stock_min=2, initial_stock=2)
    make_product(name="Over", stock_min=2, stock_max=8, initial_stock=10)
    make_product(name="Fine", stock_min=2, initial_stock=5)
    archived = make_product(name="Archived", initial_stock=1)
    catalog_service.archive_product(archived.id)

    assert valuation_service.stock_level_summary() == {
        "out_of_stock": 1,
        "low_stock": 1,
        "overstock": 1,
        "normal": 1,
    }


def test_inventory_valuation(make_product):
    make_product(name="Cheap", cost_price=1.5, initial_stock=4)
    expensive = make_product(name="Expensive", cost_price=100, initial_stock=2)
    catalog_service.create_variant(expensive.id, {"name": "Large", "cost_price": 120, "initial_stock": 1})

    valuation = valuation_service.inventory_valuation()
    assert [row["name"] for row in valuation["items"]] == ["Expensive", "Cheap"]
    assert valuation["items"][0]["stock_value"] == 200.0
    assert valuation["total_stock_value"] == 206.0

    top = valuation_service.inventory_valuation(limit=1)
    assert len(top["items"]) == 1
    assert top["total_stock_value"] == 206.0

    with_variants = valuation_service.inventory_valuation(include_variants=True)
    assert with_variants["total_stock_value"] == 326.0
    assert with_variants["items"][1]["variant_id"] is not None


def test_movements_chart_reads_recent_movements(product):
    stock_service.apply_movement(product_id=product.id, movement_type="out", quantity=3)
    stock_service.apply_movement(product_id=product.id, movement_type="adjustment", quantity=-1)

    chart = valuation_service.movements_chart()

    assert len(chart.labels) == 14
    assert chart.stock_in[-1] == 10
    assert chart.stock_out[-1] == 3
