"""
Supply List Automation – photograph a school supply list, extract it, shop it.

This package turns photographed supply lists into reviewable cart items and hands
them off to a WooCommerce checkout.

Subpackages:
- extraction: image pre-processing, AI/OCR extraction, multi-page aggregation
- domain: typed models, grade resolution, item normalization
- commerce: WooCommerce client, catalog matching, cart projection
- session: persisted session records (items, school info, history)
- orchestrator: end-to-end flow wiring the pieces together
- web: Starlette HTTP API over the flow
- cli: `supplylist-auto` command line entry point
"""

__all__ = [
    "config",
    "logging",
    "paths",
]
