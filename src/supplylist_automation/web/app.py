from __future__ import annotations

import os
from typing import Any, Dict, List, Optional

from starlette.applications import Starlette
from starlette.concurrency import run_in_threadpool
from starlette.middleware.cors import CORSMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.routing import Route

from ..commerce import CheckoutError, CommerceError, EmptySelectionError, UnmatchedItemsError, listing_to_dict
from ..domain.grades import GradeSelectionError
from ..extraction import FAILURE_MESSAGE
from ..logging import get_logger
from ..orchestrator import FLOW_FAILED, SupplyListFlow, build_flow
from ..session import UnknownItemError

LOG = get_logger("web")

DEFAULT_ORIGINS = ["http://localhost:3000", "http://127.0.0.1:3000"]
ORIGINS_ENV = "SUPPLYLIST_ALLOW_ORIGINS"
APP_FACTORY = "supplylist_automation.web.app:create_app"


def _error(status_code: int, message: str, **extra: Any) -> JSONResponse:
    body: Dict[str, Any] = {"error": message}
    body.update(extra)
    return JSONResponse(body, status_code=status_code)


async def _json_body(request: Request) -> Optional[Dict[str, Any]]:
    try:
        data = await request.json()
    except ValueError:
        return None
    return data if isinstance(data, dict) else None


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _env_origins() -> List[str]:
    raw = os.environ.get(ORIGINS_ENV) or ""
    return [o.strip() for o in raw.split(",") if o.strip()]


def create_app(
    flow: Optional[SupplyListFlow] = None,
    *,
    root_dir: Optional[str] = None,
    allow_origins: Optional[List[str]] = None,
) -> Starlette:
    """Create a Starlette app exposing the scan -> review -> checkout API."""

    if flow is None:
        flow = build_flow(root_dir, require_extractor=False)

    async def health(_: Request) -> JSONResponse:
        return JSONResponse(
            {
                "status": "ok",
                "extractor": type(flow.extractor).__name__ if flow.extractor is not None else None,
                "store": flow.projector is not None,
            }
        )

    async def extract(request: Request) -> JSONResponse:
        data = await _json_body(request)
        if data is None:
            return _error(400, "Request body must be a JSON object")
        images = data.get("images")
        if images is None and data.get("image") is not None:
            images = [data.get("image")]
        if not isinstance(images, list) or not images or not all(isinstance(i, str) and i.strip() for i in images):
            return _error(400, "Image data is required")
        if flow.extractor is None:
            return _error(503, "Extraction backend is not configured")

        outcome = await run_in_threadpool(flow.process_pages, images)
        if outcome.status == FLOW_FAILED:
            return _error(502, outcome.message or FAILURE_MESSAGE, failedPage=outcome.failed_page)
        return JSONResponse(outcome.to_dict())

    async def select_grade(request: Request) -> JSONResponse:
        data = await _json_body(request)
        if data is None or not _is_int(data.get("index")):
            return _error(400, "An integer 'index' is required")
        if not flow.session.pending_grade_lists:
            return _error(409, "No grade lists are waiting for a selection")
        try:
            outcome = flow.select_grade(data["index"])
        except GradeSelectionError as exc:
            return _error(400, str(exc))
        return JSONResponse(outcome.to_dict())

    async def items(_: Request) -> JSONResponse:
        current = flow.session.items
        return JSONResponse(
            {
                "items": [it.to_dict() for it in current],
                "selectedCount": sum(1 for it in current if it.in_cart),
            }
        )

    async def update_item(request: Request) -> JSONResponse:
        item_id = request.path_params["item_id"]
        data = await _json_body(request)
        if data is None:
            return _error(400, "Request body must be a JSON object")
        in_cart = data.get("inCart")
        qty = data.get("requestedQuantity")
        if in_cart is not None and not isinstance(in_cart, bool):
            return _error(400, "'inCart' must be a boolean")
        if qty is not None and (not _is_int(qty) or qty < 1):
            return _error(400, "'requestedQuantity' must be an integer >= 1")
        try:
            item = flow.session.update_item(item_id, in_cart=in_cart, requested_quantity=qty)
        except UnknownItemError:
            return _error(404, "Item not found")
        return JSONResponse(item.to_dict())

    async def school_info(_: Request) -> JSONResponse:
        info = flow.session.school_info
        return JSONResponse({"schoolInfo": info.to_dict() if info else None})

    async def history(_: Request) -> JSONResponse:
        entries = sorted(flow.session.history(), key=lambda e: e.id, reverse=True)
        return JSONResponse({"items": [e.to_dict() for e in entries]})

    async def reset(_: Request) -> JSONResponse:
        flow.session.reset()
        return JSONResponse({"status": "ok"})

    async def match_catalog(_: Request) -> JSONResponse:
        if flow.matcher is None:
            return _error(503, "Store is not configured")
        report = await run_in_threadpool(flow.match_catalog)
        return JSONResponse(report.to_dict())

    async def search_products(request: Request) -> JSONResponse:
        data = await _json_body(request)
        terms = data.get("searchTerms") if data else None
        if not isinstance(terms, list):
            return _error(400, "Search terms array is required")
        if flow.matcher is None:
            return _error(503, "Store is not configured")
        try:
            found = await run_in_threadpool(flow.search_products, [str(t) for t in terms])
        except CommerceError as exc:
            LOG.error(f"Product search error: {exc}")
            return _error(502, "Failed to search products")
        return JSONResponse([m.to_dict() for m in found])

    async def list_products(request: Request) -> JSONResponse:
        qp = request.query_params
        try:
            page = int(qp.get("page") or 1)
            per_page = int(qp.get("per_page") or 20)
        except ValueError:
            return _error(400, "'page' and 'per_page' must be integers")
        if page < 1 or not 1 <= per_page <= 100:
            return _error(400, "'page' must be >= 1 and 'per_page' between 1 and 100")
        if flow.matcher is None:
            return _error(503, "Store is not configured")
        try:
            result = await run_in_threadpool(
                flow.browse_products,
                query=(qp.get("query") or "").strip(),
                category=(qp.get("category") or "").strip(),
                page=page,
                per_page=per_page,
            )
        except CommerceError as exc:
            LOG.error(f"Error fetching products: {exc}")
            return _error(502, "Failed to fetch products")
        return JSONResponse(listing_to_dict(result))

    async def checkout(request: Request) -> JSONResponse:
        data = await _json_body(request) or {}
        affiliate = data.get("affiliateId")
        if affiliate is not None and not isinstance(affiliate, str):
            return _error(400, "'affiliateId' must be a string")
        if flow.projector is None:
            return _error(503, "Store is not configured")
        try:
            result = await run_in_threadpool(flow.checkout, affiliate)
        except EmptySelectionError as exc:
            return _error(400, str(exc))
        except UnmatchedItemsError as exc:
            return _error(409, str(exc), itemIds=exc.item_ids)
        except CheckoutError as exc:
            LOG.error(f"Checkout failed at {exc.step}: {exc}")
            return _error(502, "Failed to create checkout. Please try again.", step=exc.step)
        return JSONResponse(result.to_dict())

    routes = [
        Route("/api/health", health, methods=["GET"]),
        Route("/api/extract", extract, methods=["POST"]),
        Route("/api/grades/select", select_grade, methods=["POST"]),
        Route("/api/items", items, methods=["GET"]),
        Route("/api/items/{item_id:str}", update_item, methods=["PATCH"]),
        Route("/api/school-info", school_info, methods=["GET"]),
        Route("/api/history", history, methods=["GET"]),
        Route("/api/session/reset", reset, methods=["POST"]),
        Route("/api/catalog/match", match_catalog, methods=["POST"]),
        Route("/api/products", list_products, methods=["GET"]),
        Route("/api/products/search", search_products, methods=["POST"]),
        Route("/api/checkout", checkout, methods=["POST"]),
    ]

    app = Starlette(debug=False, routes=routes)

    origins = allow_origins or _env_origins() or DEFAULT_ORIGINS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if "*" in origins else origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    return app


__all__ = ["APP_FACTORY", "ORIGINS_ENV", "create_app"]
