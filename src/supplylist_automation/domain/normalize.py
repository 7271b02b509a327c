import re
import uuid
from decimal import Decimal
from typing import Any, List, Optional

from ..logging import get_logger
from .models import CartCandidateItem, GradeList

_LOG = get_logger("normalize")

# Items start in the cart; the shopper opts out rather than in.
DEFAULT_IN_CART = True

UNKNOWN_ITEM_NAME = "Unknown Item"


def coerce_quantity(value: Any) -> int:
    """Return a positive integer quantity, falling back to 1.

    Accepts ints, floats ("2.0"), and strings with a leading number ("3 boxes").
    Anything below 1 or not numeric becomes 1.
    """
    if isinstance(value, bool) or value is None:
        return 1
    if isinstance(value, int):
        return value if value >= 1 else 1
    if isinstance(value, float):
        return int(value) if value >= 1 else 1
    m = re.match(r"\s*(\d+(?:\.\d+)?)", str(value))
    if not m:
        return 1
    qty = int(float(m.group(1)))
    return qty if qty >= 1 else 1


def clean_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    s = re.sub(r"\s+", " ", str(value)).strip()
    return s or None


def new_item_id() -> str:
    return uuid.uuid4().hex


def normalize_items(grade_list: GradeList, *, in_cart: bool = DEFAULT_IN_CART) -> List[CartCandidateItem]:
    """Convert a grade list into fresh cart candidate items.

    Same input always yields the same names, quantities and original terms; only the
    generated ids differ between runs.
    """
    items: List[CartCandidateItem] = []
    seen_ids = set()
    for supply in grade_list.supply_items:
        name = clean_text(supply.name) or UNKNOWN_ITEM_NAME
        original = clean_text(supply.original_text)
        item_id = new_item_id()
        while item_id in seen_ids:
            item_id = new_item_id()
        seen_ids.add(item_id)
        items.append(
            CartCandidateItem(
                id=item_id,
                name=name,
                brand="",
                price=Decimal("0"),
                image="",
                in_cart=in_cart,
                original_term=original or name,
                requested_quantity=coerce_quantity(supply.quantity),
            )
        )
    _LOG.debug(f"Normalized {len(items)} item(s) for grade {grade_list.grade!r}")
    return items
