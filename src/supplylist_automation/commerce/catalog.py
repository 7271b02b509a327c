"""Map normalized list items onto store products.

Each item gets one product search; the first hit is taken as the match. The list's
own wording stays the item name, the product contributes id, brand, price and image.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field, replace
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Iterable, List, Optional, Sequence

from ..domain.models import CartCandidateItem
from ..logging import get_logger
from .client import CommerceError, ProductPage

LOG = get_logger("catalog")

# Checked in order; multi-word entries come before their single-word prefixes.
COMMON_SUPPLIES = (
    "notebook", "pencil", "pen", "marker", "crayon", "glue stick", "glue",
    "scissors", "binder", "folder", "paper", "calculator", "ruler",
    "eraser", "highlighter", "backpack", "protractor", "compass",
    "index cards", "sticky notes", "tape", "stapler", "sharpener",
)
CONTEXT_WORDS = 2


def _core_product(text: str) -> Optional[str]:
    words = text.split()
    lowered = [w.lower() for w in words]
    low_text = text.lower()
    for supply in COMMON_SUPPLIES:
        if supply not in low_text:
            continue
        head = supply.split()[0]
        for idx, word in enumerate(lowered):
            if head in word:
                start = max(0, idx - CONTEXT_WORDS)
                end = min(len(words), idx + len(supply.split()) + CONTEXT_WORDS)
                return " ".join(words[start:end])
        return supply
    return None


def build_search_term(name: str) -> str:
    """Turn a list line like "2 x Yellow pencils (sharpened)" into a store query."""
    term = re.sub(r"^\d+\s*x\s*", "", name or "", flags=re.IGNORECASE)
    term = re.sub(r"\(.*?\)", "", term)
    term = re.sub(r"\s+", " ", term).strip()
    return _core_product(term) or term


def _price(value: Any) -> Decimal:
    try:
        return Decimal(str(value)) if value not in (None, "") else Decimal("0")
    except (InvalidOperation, ValueError):
        return Decimal("0")


@dataclass
class ProductMatch:
    product_id: int
    name: str
    brand: str
    price: Decimal
    image: str
    original_term: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.product_id,
            "name": self.name,
            "brand": self.brand,
            "price": str(self.price),
            "image": self.image,
            "originalTerm": self.original_term,
        }


def summarize_product(product: Dict[str, Any], term: str) -> Optional[ProductMatch]:
    pid = product.get("id")
    if not isinstance(pid, int) or isinstance(pid, bool):
        return None
    brand = ""
    for attr in product.get("attributes") or []:
        if isinstance(attr, dict) and attr.get("name") == "Brand":
            options = attr.get("options") or []
            brand = str(options[0]) if options else ""
            break
    images = product.get("images") or []
    image = images[0].get("src", "") if images and isinstance(images[0], dict) else ""
    return ProductMatch(
        product_id=pid,
        name=str(product.get("name") or ""),
        brand=brand,
        price=_price(product.get("price")),
        image=image or "",
        original_term=term,
    )


def _pick(rows: Any, keys: Sequence[str]) -> List[Dict[str, Any]]:
    return [{k: row.get(k) for k in keys} for row in rows or [] if isinstance(row, dict)]


def summarize_listing(product: Dict[str, Any]) -> Dict[str, Any]:
    """Browse-page view of a store product."""
    return {
        "id": product.get("id"),
        "name": product.get("name") or "",
        "description": product.get("short_description") or "",
        "price": str(_price(product.get("price"))),
        "regularPrice": str(_price(product.get("regular_price"))),
        "salePrice": str(_price(product.get("sale_price"))),
        "onSale": bool(product.get("on_sale")),
        "permalink": product.get("permalink") or "",
        "images": _pick(product.get("images"), ("id", "src", "alt")),
        "categories": _pick(product.get("categories"), ("id", "name", "slug")),
        "attributes": _pick(product.get("attributes"), ("id", "name", "options")),
    }


def listing_to_dict(page: ProductPage) -> Dict[str, Any]:
    return {
        "products": [summarize_listing(p) for p in page.products if isinstance(p, dict)],
        "pagination": {
            "page": page.page,
            "perPage": page.per_page,
            "totalProducts": page.total_products,
            "totalPages": page.total_pages,
        },
    }


@dataclass
class MatchReport:
    items: List[CartCandidateItem] = field(default_factory=list)
    matched: List[str] = field(default_factory=list)
    unmatched: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "items": [it.to_dict() for it in self.items],
            "matched": list(self.matched),
            "unmatched": list(self.unmatched),
        }


class CatalogMatcher:
    def __init__(self, client) -> None:
        self.client = client

    def find(self, term: str) -> Optional[ProductMatch]:
        """Best product for `term`, or None. CommerceError propagates."""
        results = self.client.search_products(term, per_page=5)
        for product in results:
            match = summarize_product(product, term) if isinstance(product, dict) else None
            if match is not None:
                return match
        return None

    def search(self, terms: Iterable[str]) -> List[ProductMatch]:
        """One search per term; terms without a hit are left out."""
        cleaned = [str(t).strip() for t in terms if t and str(t).strip()]
        found: List[ProductMatch] = []
        for term in cleaned:
            match = self.find(term)
            if match is not None:
                found.append(match)
        LOG.info(f"Product search: {len(found)} hit(s) for {len(cleaned)} term(s)")
        return found

    def match(self, items: Sequence[CartCandidateItem]) -> MatchReport:
        """Fill product fields on copies of `items`; id, inclusion and quantity are kept."""
        report = MatchReport()
        for item in items:
            term = build_search_term(item.name)
            try:
                match = self.find(term)
            except CommerceError as e:
                LOG.warning(f"Product search for {term!r} failed; leaving item {item.id} unmatched: {e}")
                match = None

            if match is None:
                LOG.info(f"No product found for {item.name!r} (search {term!r})")
                report.items.append(replace(item, product_id=None))
                report.unmatched.append(item.id)
                continue

            report.items.append(
                replace(item, product_id=match.product_id, brand=match.brand, price=match.price, image=match.image)
            )
            report.matched.append(item.id)
        LOG.info(f"Catalog matching: {len(report.matched)} matched, {len(report.unmatched)} unmatched")
        return report

    def browse(self, *, query: str = "", category: str = "", page: int = 1, per_page: int = 20) -> ProductPage:
        """Paged product listing; CommerceError propagates."""
        result = self.client.list_products(query=query, category=category, page=page, per_page=per_page)
        LOG.info(f"Product listing page {page}: {len(result.products)} product(s) of {result.total_products}")
        return result
