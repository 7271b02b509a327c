"""Project the selected cart items onto a remote pending order and build the pay URL.

The remote sequence is: create a pending guest order, attach every selected line in one
update, then read the order back for its key. Steps are never retried and local items
are never modified.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence
from urllib.parse import urlencode

from ..config import DEFAULT_AFFILIATE_ID
from ..domain.models import CartCandidateItem, RemoteOrder
from ..logging import get_logger
from .client import CommerceError

LOG = get_logger("checkout")

STEP_SELECT = "select"
STEP_CREATE_ORDER = "create_order"
STEP_ATTACH_LINE_ITEMS = "attach_line_items"
STEP_BUILD_CHECKOUT_URL = "build_checkout_url"


class CheckoutError(Exception):
    """A checkout step failed; `step` names which one."""

    def __init__(self, message: str, *, step: str, order_id: Optional[int] = None) -> None:
        super().__init__(message)
        self.step = step
        self.order_id = order_id


class EmptySelectionError(CheckoutError):
    def __init__(self) -> None:
        super().__init__("No items are selected for the cart", step=STEP_SELECT)


class UnmatchedItemsError(CheckoutError):
    def __init__(self, item_ids: Sequence[str]) -> None:
        super().__init__(
            f"{len(item_ids)} selected item(s) have no store product; match or deselect them first",
            step=STEP_SELECT,
        )
        self.item_ids = list(item_ids)


@dataclass(frozen=True)
class LineCorrelation:
    item_id: str
    product_id: int
    quantity: int

    def to_dict(self) -> Dict[str, Any]:
        return {"itemId": self.item_id, "productId": self.product_id, "quantity": self.quantity}


@dataclass
class CheckoutResult:
    order_id: int
    order_key: str
    checkout_url: str
    lines: List[LineCorrelation] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "orderId": self.order_id,
            "orderKey": self.order_key,
            "checkoutUrl": self.checkout_url,
            "lines": [ln.to_dict() for ln in self.lines],
        }


def store_base_url(api_url: str) -> str:
    """`https://shop.example/wp-json/wc/v3` -> `https://shop.example`."""
    return re.sub(r"/wp-json/wc/v3/?$", "", (api_url or "").rstrip("/"))


def build_checkout_url(base_url: str, order_id: int, order_key: str, affiliate_id: str) -> str:
    query = urlencode({"key": order_key, "ref": affiliate_id})
    return f"{base_url.rstrip('/')}/checkout/order-pay/{int(order_id)}?{query}"


def _remote_order(data: Dict[str, Any]) -> RemoteOrder:
    lines = []
    for li in data.get("line_items") or []:
        if not isinstance(li, dict):
            continue
        try:
            lines.append({"product_id": int(li.get("product_id")), "quantity": int(li.get("quantity"))})
        except (TypeError, ValueError):
            continue
    key = data.get("order_key")
    return RemoteOrder(order_id=int(data.get("id")), order_key=str(key) if key else None, line_items=lines)


class CartProjector:
    def __init__(self, client, *, api_url: str, affiliate_id: str = DEFAULT_AFFILIATE_ID) -> None:
        self.client = client
        self.base_url = store_base_url(api_url)
        self.affiliate_id = affiliate_id or DEFAULT_AFFILIATE_ID

    def _cancel_quietly(self, order_id: int) -> None:
        try:
            self.client.cancel_order(order_id)
        except CommerceError as e:
            LOG.warning(f"Could not cancel pending order {order_id}: {e}")

    def project(self, items: Sequence[CartCandidateItem], *, affiliate_id: Optional[str] = None) -> CheckoutResult:
        selected = [it for it in items if it.in_cart]
        if not selected:
            raise EmptySelectionError()
        unmatched = [it.id for it in selected if it.product_id is None]
        if unmatched:
            raise UnmatchedItemsError(unmatched)

        lines = [LineCorrelation(item_id=it.id, product_id=int(it.product_id), quantity=it.requested_quantity) for it in selected]
        payload = [{"product_id": ln.product_id, "quantity": ln.quantity} for ln in lines]

        try:
            created = self.client.create_order()
            order_id = int(created["id"])
        except (CommerceError, KeyError, TypeError, ValueError) as e:
            LOG.error(f"Creating pending order failed: {e}")
            raise CheckoutError("failed to create cart", step=STEP_CREATE_ORDER) from e
        LOG.info(f"Created pending order {order_id} for {len(lines)} line(s)")

        try:
            self.client.update_order_line_items(order_id, payload)
        except CommerceError as e:
            LOG.error(f"Attaching line items to order {order_id} failed: {e}")
            self._cancel_quietly(order_id)
            raise CheckoutError("failed to add items to cart", step=STEP_ATTACH_LINE_ITEMS, order_id=order_id) from e

        try:
            remote = _remote_order(self.client.get_order(order_id))
        except (CommerceError, KeyError, TypeError, ValueError) as e:
            LOG.error(f"Reading back order {order_id} failed: {e}")
            self._cancel_quietly(order_id)
            raise CheckoutError("failed to read order", step=STEP_BUILD_CHECKOUT_URL, order_id=order_id) from e
        if not remote.order_key:
            self._cancel_quietly(order_id)
            raise CheckoutError("order has no order key", step=STEP_BUILD_CHECKOUT_URL, order_id=order_id)

        expected: Dict[int, int] = {}
        for ln in lines:
            expected[ln.product_id] = expected.get(ln.product_id, 0) + ln.quantity
        actual = remote.quantities_by_product()
        if actual != expected:
            LOG.error(f"Order {order_id} line items do not match what was sent: sent={expected} remote={actual}")
            self._cancel_quietly(order_id)
            raise CheckoutError("order line items do not match the cart", step=STEP_BUILD_CHECKOUT_URL, order_id=order_id)

        url = build_checkout_url(self.base_url, order_id, remote.order_key, affiliate_id or self.affiliate_id)
        LOG.info(f"Checkout ready for order {order_id}: {url}")
        return CheckoutResult(order_id=order_id, order_key=remote.order_key, checkout_url=url, lines=lines)
