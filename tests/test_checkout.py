import os
import sys

import pytest

sys.path.insert(0, os.path.abspath("src"))

from supplylist_automation.commerce.checkout import (
    STEP_ATTACH_LINE_ITEMS,
    STEP_BUILD_CHECKOUT_URL,
    STEP_CREATE_ORDER,
    CartProjector,
    CheckoutError,
    EmptySelectionError,
    UnmatchedItemsError,
    build_checkout_url,
    store_base_url,
)
from supplylist_automation.commerce.client import CommerceError
from supplylist_automation.domain.models import CartCandidateItem

API_URL = "https://shop.example/wp-json/wc/v3"


class FakeWoo:
    def __init__(self, *, fail_create=False, fail_attach=False, fail_get=False, order_key="wc_order_abc", remote_lines=None):
        self.fail_create = fail_create
        self.fail_attach = fail_attach
        self.fail_get = fail_get
        self.order_key = order_key
        self.remote_lines = remote_lines
        self.sent_lines = []
        self.calls = []

    def create_order(self):
        self.calls.append("create")
        if self.fail_create:
            raise CommerceError("HTTP 500", status_code=500)
        return {"id": 101, "status": "pending"}

    def update_order_line_items(self, order_id, line_items):
        self.calls.append("attach")
        if self.fail_attach:
            raise CommerceError("HTTP 400", status_code=400)
        self.sent_lines = list(line_items)
        return {"id": order_id}

    def get_order(self, order_id):
        self.calls.append("get")
        if self.fail_get:
            raise CommerceError("HTTP 502", status_code=502)
        lines = self.remote_lines if self.remote_lines is not None else [
            {"id": 900 + i, "product_id": li["product_id"], "quantity": li["quantity"]} for i, li in enumerate(self.sent_lines)
        ]
        return {"id": order_id, "order_key": self.order_key, "line_items": lines}

    def cancel_order(self, order_id):
        self.calls.append("cancel")
        return {"id": order_id, "status": "cancelled"}


def _items():
    return [
        CartCandidateItem(id="a", name="Pencils", in_cart=True, requested_quantity=2, product_id=11),
        CartCandidateItem(id="b", name="Glue", in_cart=False, requested_quantity=1, product_id=21),
        CartCandidateItem(id="c", name="Folder", in_cart=True, requested_quantity=3, product_id=31),
    ]


def test_happy_path_builds_pay_url_for_selected_items():
    woo = FakeWoo()
    items = _items()
    before = [it.to_dict() for it in items]

    result = CartProjector(woo, api_url=API_URL, affiliate_id="aff-1").project(items)

    assert woo.calls == ["create", "attach", "get"]
    assert woo.sent_lines == [{"product_id": 11, "quantity": 2}, {"product_id": 31, "quantity": 3}]
    assert result.order_id == 101
    assert result.order_key == "wc_order_abc"
    assert result.checkout_url == "https://shop.example/checkout/order-pay/101?key=wc_order_abc&ref=aff-1"
    assert [(ln.item_id, ln.product_id, ln.quantity) for ln in result.lines] == [("a", 11, 2), ("c", 31, 3)]
    assert [it.to_dict() for it in items] == before


def test_affiliate_override_and_default():
    woo = FakeWoo()
    projector = CartProjector(woo, api_url=API_URL, affiliate_id="")
    assert projector.affiliate_id == "default-affiliate"
    result = projector.project(_items(), affiliate_id="school-42")
    assert result.checkout_url.endswith("ref=school-42")


def test_empty_selection_makes_no_remote_calls():
    woo = FakeWoo()
    items = [CartCandidateItem(id="a", name="Pencils", in_cart=False, product_id=1)]
    with pytest.raises(EmptySelectionError):
        CartProjector(woo, api_url=API_URL).project(items)
    assert woo.calls == []


def test_unmatched_selected_items_make_no_remote_calls():
    woo = FakeWoo()
    items = _items() + [CartCandidateItem(id="d", name="Kleenex", in_cart=True)]
    with pytest.raises(UnmatchedItemsError) as exc:
        CartProjector(woo, api_url=API_URL).project(items)
    assert exc.value.item_ids == ["d"]
    assert woo.calls == []


def test_create_failure_stops_before_line_items():
    woo = FakeWoo(fail_create=True)
    with pytest.raises(CheckoutError) as exc:
        CartProjector(woo, api_url=API_URL).project(_items())
    assert exc.value.step == STEP_CREATE_ORDER
    assert str(exc.value) == "failed to create cart"
    assert woo.calls == ["create"]


def test_attach_failure_cancels_pending_order():
    woo = FakeWoo(fail_attach=True)
    with pytest.raises(CheckoutError) as exc:
        CartProjector(woo, api_url=API_URL).project(_items())
    assert exc.value.step == STEP_ATTACH_LINE_ITEMS
    assert exc.value.order_id == 101
    assert woo.calls == ["create", "attach", "cancel"]


def test_missing_order_key_fails_url_step():
    woo = FakeWoo(order_key=None)
    with pytest.raises(CheckoutError) as exc:
        CartProjector(woo, api_url=API_URL).project(_items())
    assert exc.value.step == STEP_BUILD_CHECKOUT_URL
    assert woo.calls == ["create", "attach", "get", "cancel"]


def test_remote_line_items_must_match_what_was_sent():
    woo = FakeWoo(remote_lines=[{"product_id": 11, "quantity": 2}])
    with pytest.raises(CheckoutError) as exc:
        CartProjector(woo, api_url=API_URL).project(_items())
    assert exc.value.step == STEP_BUILD_CHECKOUT_URL
    assert woo.calls == ["create", "attach", "get", "cancel"]


def test_read_back_failure_cancels_pending_order():
    woo = FakeWoo(fail_get=True)
    with pytest.raises(CheckoutError) as exc:
        CartProjector(woo, api_url=API_URL).project(_items())
    assert exc.value.step == STEP_BUILD_CHECKOUT_URL
    assert exc.value.order_id == 101
    assert woo.calls == ["create", "attach", "get", "cancel"]


def test_store_base_url():
    assert store_base_url("https://shop.example/wp-json/wc/v3") == "https://shop.example"
    assert store_base_url("https://shop.example/wp-json/wc/v3/") == "https://shop.example"
    assert store_base_url("https://shop.example") == "https://shop.example"


def test_build_checkout_url_encodes_query():
    url = build_checkout_url("https://shop.example/", 5, "wc_order key", "a&b")
    assert url == "https://shop.example/checkout/order-pay/5?key=wc_order+key&ref=a%26b"
