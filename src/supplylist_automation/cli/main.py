from __future__ import annotations

import argparse
import base64
import json
import os
import sys
from typing import List, Optional, Sequence

from ..commerce import CheckoutError, CommerceError, UnmatchedItemsError
from ..config import BACKENDS
from ..domain.grades import GradeSelectionError
from ..logging import get_logger
from ..orchestrator import FLOW_FAILED, FLOW_NEEDS_SELECTION, FLOW_OK, FlowOutcome, SupplyListFlow, build_flow
from ..paths import expand_abs, find_project_root
from ..session import open_session

LOG = get_logger("cli-main")


def _print_json(payload) -> None:
    print(json.dumps(payload, ensure_ascii=False, indent=2))


def _read_image(path: str) -> Optional[str]:
    full = expand_abs(path)
    try:
        with open(full, "rb") as fh:
            return base64.b64encode(fh.read()).decode("ascii")
    except OSError as e:
        LOG.error(f"Cannot read image {full}: {e}")
        return None


def _after_items(flow: SupplyListFlow, ns: argparse.Namespace) -> int:
    """Optional catalog matching and checkout once items are in the session."""
    if ns.match or ns.checkout:
        report = flow.match_catalog()
        _print_json(report.to_dict())
    if ns.checkout:
        try:
            result = flow.checkout(ns.affiliate)
        except UnmatchedItemsError as e:
            LOG.error(f"{e}: {', '.join(e.item_ids)}")
            return 1
        except CheckoutError as e:
            LOG.error(f"Checkout failed at step {e.step}: {e}")
            return 1
        _print_json(result.to_dict())
        print(result.checkout_url)
    return 0


def _apply_grade(flow: SupplyListFlow, grade: int) -> Optional[FlowOutcome]:
    try:
        return flow.select_grade(grade - 1)
    except GradeSelectionError as e:
        LOG.error(str(e))
        return None


def _handle_scan(ns: argparse.Namespace) -> int:
    pages: List[str] = []
    for path in ns.images:
        data = _read_image(path)
        if data is None:
            return 2
        pages.append(data)

    try:
        flow = build_flow(os.getcwd(), backend=ns.backend, optimize_images=not ns.no_optimize, max_workers=ns.workers)
    except (RuntimeError, ValueError) as e:
        LOG.error(f"Cannot start extraction: {e}")
        return 1

    try:
        outcome = flow.process_pages(pages)
        if outcome.status == FLOW_FAILED:
            LOG.error(outcome.message)
            return 1
        if outcome.status == FLOW_NEEDS_SELECTION:
            if ns.grade is None:
                _print_json(outcome.to_dict())
                LOG.info("Several grade lists found; rerun with --grade N or use 'select --grade N'")
                return 2
            outcome = _apply_grade(flow, ns.grade)
            if outcome is None:
                return 2
        _print_json(outcome.to_dict())
        if outcome.status != FLOW_OK:
            return 1
        return _after_items(flow, ns)
    except CommerceError as e:
        LOG.error(f"Store request failed: {e}")
        return 1
    finally:
        flow.close()


def _handle_select(ns: argparse.Namespace) -> int:
    flow = build_flow(os.getcwd(), require_extractor=False)
    outcome = _apply_grade(flow, ns.grade)
    if outcome is None:
        return 2
    _print_json(outcome.to_dict())
    try:
        return _after_items(flow, ns)
    except CommerceError as e:
        LOG.error(f"Store request failed: {e}")
        return 1


def _handle_history(ns: argparse.Namespace) -> int:
    session = open_session(find_project_root(os.getcwd()))
    entries = sorted(session.history(), key=lambda e: e.id, reverse=True)
    if ns.limit:
        entries = entries[: ns.limit]
    _print_json([e.to_dict() for e in entries])
    return 0


def _handle_reset(ns: argparse.Namespace) -> int:
    session = open_session(find_project_root(os.getcwd()))
    session.reset(include_history=ns.all)
    return 0


def _handle_serve(ns: argparse.Namespace) -> int:
    from ..web.app import APP_FACTORY, ORIGINS_ENV, create_app
    import uvicorn

    allow_origins = ns.allow_origins
    if allow_origins and len(allow_origins) == 1 and allow_origins[0] == "*":
        allow_origins = ["*"]

    if ns.reload:
        # The reloader re-imports the app in a child process; settings travel via env.
        if allow_origins:
            os.environ[ORIGINS_ENV] = ",".join(allow_origins)
        uvicorn.run(APP_FACTORY, factory=True, host=ns.host, port=ns.port, reload=True, log_level=ns.log_level)
        return 0

    app = create_app(root_dir=os.getcwd(), allow_origins=allow_origins)
    uvicorn.run(app, host=ns.host, port=ns.port, log_level=ns.log_level)
    return 0


def _add_store_args(p: argparse.ArgumentParser) -> None:
    p.add_argument("--match", action="store_true", help="Look up store products for every item")
    p.add_argument("--checkout", action="store_true", help="Create a pending order and print the pay URL (implies --match)")
    p.add_argument("--affiliate", help="Affiliate id for the checkout URL (default: AFFILIATE_ID)")


def main(argv: Sequence[str] | None = None) -> int:
    provided = list(argv) if argv is not None else sys.argv[1:]
    LOG.info(f"CLI invoked with arguments: {provided}")

    parser = argparse.ArgumentParser(
        prog="supplylist-auto",
        description="Scan a school supply list, review the items and hand off to the store checkout.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    scan = subparsers.add_parser("scan", help="Extract items from one or more page images.")
    scan.add_argument("--image", dest="images", action="append", required=True, help="Page image (repeat for multi-page lists)")
    scan.add_argument("--grade", type=int, help="1-based grade list to use when several are found")
    scan.add_argument("--backend", choices=BACKENDS, help="Extraction backend (default: SUPPLYLIST_BACKEND)")
    scan.add_argument("--no-optimize", action="store_true", help="Send images without resizing/re-encoding")
    scan.add_argument("--workers", type=int, default=1, help="Pages extracted in parallel")
    _add_store_args(scan)
    scan.set_defaults(handler=_handle_scan)

    select = subparsers.add_parser("select", help="Choose among grade lists from the last scan.")
    select.add_argument("--grade", type=int, required=True, help="1-based grade list number")
    _add_store_args(select)
    select.set_defaults(handler=_handle_select)

    history = subparsers.add_parser("history", help="Show previously processed lists.")
    history.add_argument("--limit", type=int, help="Only show the newest N entries")
    history.set_defaults(handler=_handle_history)

    reset = subparsers.add_parser("reset", help="Clear the current list and school info.")
    reset.add_argument("--all", action="store_true", help="Also clear list history")
    reset.set_defaults(handler=_handle_reset)

    serve = subparsers.add_parser("serve", help="Run the HTTP API.")
    serve.add_argument("--host", default="127.0.0.1")
    serve.add_argument("--port", type=int, default=8000)
    serve.add_argument("--reload", action="store_true", help="Enable auto-reload (development only)")
    serve.add_argument("--log-level", default="info")
    serve.add_argument(
        "--allow-origin",
        action="append",
        dest="allow_origins",
        help="Allowed CORS origin (can be provided multiple times, use '*' for any).",
    )
    serve.set_defaults(handler=_handle_serve)

    args = parser.parse_args(provided)
    code = args.handler(args)
    LOG.info(f"Subcommand '{args.command}' finished with exit code {code}.")
    return code


if __name__ == "__main__":
    sys.exit(main())
