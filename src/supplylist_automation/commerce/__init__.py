"""WooCommerce client, product matching and cart projection."""

from .catalog import CatalogMatcher, MatchReport, ProductMatch, build_search_term, listing_to_dict, summarize_listing
from .checkout import (
    CartProjector,
    CheckoutError,
    CheckoutResult,
    EmptySelectionError,
    LineCorrelation,
    UnmatchedItemsError,
    build_checkout_url,
    store_base_url,
)
from .client import CommerceError, ProductPage, WooCommerceClient

__all__ = [
    "CatalogMatcher",
    "MatchReport",
    "ProductMatch",
    "build_search_term",
    "listing_to_dict",
    "summarize_listing",
    "CartProjector",
    "CheckoutError",
    "CheckoutResult",
    "EmptySelectionError",
    "LineCorrelation",
    "UnmatchedItemsError",
    "build_checkout_url",
    "store_base_url",
    "CommerceError",
    "ProductPage",
    "WooCommerceClient",
]
