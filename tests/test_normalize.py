import os
import sys
from decimal import Decimal

import pytest

sys.path.insert(0, os.path.abspath("src"))

from supplylist_automation.domain.models import GradeList, SupplyItem
from supplylist_automation.domain.normalize import (
    DEFAULT_IN_CART,
    UNKNOWN_ITEM_NAME,
    coerce_quantity,
    normalize_items,
)


def _grade_list():
    return GradeList(
        grade="2nd",
        supply_items=[
            SupplyItem(name="Pencils", quantity=24, original_text="24 #2 pencils"),
            SupplyItem(name="Glue stick", quantity=0, original_text=""),
            SupplyItem(name="", quantity="abc", original_text="Tissues"),
            SupplyItem(name="Pencils", quantity=24, original_text="24 #2 pencils"),
        ],
    )


def test_every_item_gets_unique_id_and_defaults():
    items = normalize_items(_grade_list())
    assert len(items) == 4
    assert len({it.id for it in items}) == 4
    for it in items:
        assert it.id
        assert it.price == Decimal("0")
        assert it.brand == ""
        assert it.image == ""
        assert it.product_id is None
        assert it.in_cart is DEFAULT_IN_CART
        assert it.requested_quantity >= 1


def test_quantities_and_terms():
    items = normalize_items(_grade_list())
    assert [it.requested_quantity for it in items] == [24, 1, 1, 24]
    assert items[0].original_term == "24 #2 pencils"
    assert items[1].original_term == "Glue stick"
    assert items[2].name == UNKNOWN_ITEM_NAME
    assert items[2].original_term == "Tissues"


def test_same_input_same_content_fresh_ids():
    first = normalize_items(_grade_list())
    second = normalize_items(_grade_list())

    def strip(items):
        return [(it.name, it.requested_quantity, it.original_term, it.in_cart) for it in items]

    assert strip(first) == strip(second)
    assert {it.id for it in first}.isdisjoint({it.id for it in second})


def test_inclusion_can_start_off():
    items = normalize_items(_grade_list(), in_cart=False)
    assert not any(it.in_cart for it in items)


@pytest.mark.parametrize(
    "raw,expected",
    [(3, 3), (0, 1), (-2, 1), (2.7, 2), ("5", 5), ("3 boxes", 3), ("two", 1), (None, 1), (True, 1), ("", 1)],
)
def test_coerce_quantity(raw, expected):
    assert coerce_quantity(raw) == expected


def test_zero_quantity_clamps_and_keeps_original_text():
    grade_list = GradeList(grade=None, supply_items=[SupplyItem(name="pencils", quantity=0, original_text="2 pencils")])
    [item] = normalize_items(grade_list)
    assert item.name == "pencils"
    assert item.requested_quantity == 1
    assert item.original_term == "2 pencils"
