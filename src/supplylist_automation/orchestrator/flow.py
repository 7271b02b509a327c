"""Orchestrated end-to-end flow: pages -> items in the session -> store checkout."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Union

from .. import config
from ..commerce import CartProjector, CatalogMatcher, CheckoutResult, MatchReport, ProductPage, WooCommerceClient
from ..domain.grades import (
    RESOLUTION_NEEDS_SELECTION,
    GradeOption,
    GradeResolution,
    GradeSelectionError,
    resolve_grades,
)
from ..domain.models import CartCandidateItem, GradeList, ListHistoryEntry, SchoolInfo
from ..domain.normalize import normalize_items
from ..extraction import (
    FAILURE_MESSAGE,
    STATUS_OK,
    AggregationError,
    PreparedImage,
    aggregate,
    build_extractor,
    prepare_payload,
)
from ..logging import get_logger
from ..paths import find_project_root
from ..session import SessionState, open_session

LOG = get_logger("orchestrator-flow")

FLOW_OK = "ok"
FLOW_NEEDS_SELECTION = "needs_selection"
FLOW_FAILED = "failed"


@dataclass
class FlowOutcome:
    """What a flow step produced. Negative extraction statuses pass through unchanged."""

    status: str
    message: Optional[str] = None
    items: List[CartCandidateItem] = field(default_factory=list)
    school_info: Optional[SchoolInfo] = None
    options: List[GradeOption] = field(default_factory=list)
    failed_page: Optional[int] = None
    history_entry: Optional[ListHistoryEntry] = None

    @property
    def ok(self) -> bool:
        return self.status == FLOW_OK

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"status": self.status}
        if self.message:
            out["message"] = self.message
        if self.school_info is not None:
            out["schoolInfo"] = self.school_info.to_dict()
        if self.status == FLOW_OK:
            out["items"] = [it.to_dict() for it in self.items]
        if self.options:
            out["options"] = [o.to_dict() for o in self.options]
        if self.failed_page is not None:
            out["failedPage"] = self.failed_page
        return out


class SupplyListFlow:
    def __init__(
        self,
        extractor,
        session: SessionState,
        *,
        optimize_images: bool = True,
        max_workers: int = 1,
        matcher: Optional[CatalogMatcher] = None,
        projector: Optional[CartProjector] = None,
    ) -> None:
        self.extractor = extractor
        self.session = session
        self.optimize_images = optimize_images
        self.max_workers = max(1, int(max_workers))
        self.matcher = matcher
        self.projector = projector

    # ---------- extraction ----------
    def _prepare(self, pages: Sequence[Union[str, PreparedImage]]) -> List[PreparedImage]:
        # Extractors that opt out of optimization (OCR) get full-resolution pages.
        optimize = self.optimize_images and getattr(self.extractor, "optimize_images", True)
        return [p if isinstance(p, PreparedImage) else prepare_payload(p, optimize=optimize) for p in pages]

    def process_pages(self, pages: Sequence[Union[str, PreparedImage]]) -> FlowOutcome:
        """Extract, merge and resolve an ordered batch of page images.

        On failure or a negative result the session is left as it was.
        """
        if self.extractor is None:
            raise RuntimeError("No extraction backend configured")
        pages = list(pages)
        if not pages:
            raise ValueError("At least one image is required")

        prepared = self._prepare(pages)
        try:
            merged = aggregate(prepared, self.extractor, max_workers=self.max_workers)
        except AggregationError as e:
            message = FAILURE_MESSAGE if len(pages) == 1 else f"{FAILURE_MESSAGE} (page {e.page_index + 1} of {len(pages)})"
            return FlowOutcome(status=FLOW_FAILED, message=message, failed_page=e.page_index)

        if merged.status != STATUS_OK:
            LOG.info(f"Nothing to shop for: {merged.status}")
            return FlowOutcome(status=merged.status, message=merged.message)

        result = merged.result
        info = SchoolInfo(school_name=result.school_name, teacher_name=result.teacher_name, year=result.year)
        resolution = resolve_grades(result.grade_lists)
        self.session.set_pending_grade_lists(resolution.grade_lists)

        if resolution.status == RESOLUTION_NEEDS_SELECTION:
            self.session.set_school_info(info)
            self.session.set_items([])
            return FlowOutcome(status=FLOW_NEEDS_SELECTION, school_info=info, options=resolution.options)

        return self._apply(info, resolution.selected, resolution.selected_index or 0)

    def select_grade(self, index: int) -> FlowOutcome:
        """Apply the shopper's choice among the pending grade lists."""
        pending = self.session.pending_grade_lists
        if not pending:
            raise GradeSelectionError("No grade lists are waiting for a selection")
        grade_list = GradeResolution(status=RESOLUTION_NEEDS_SELECTION, grade_lists=pending).select(index)

        if self.session.selected_grade_index == index:
            LOG.info(f"Grade list {index} already applied; keeping current items")
            return FlowOutcome(status=FLOW_OK, items=self.session.items, school_info=self.session.school_info)

        return self._apply(self.session.school_info or SchoolInfo(), grade_list, index)

    def _apply(self, info: SchoolInfo, grade_list: GradeList, index: int) -> FlowOutcome:
        items = normalize_items(grade_list)
        info = info.with_grade(grade_list.grade)
        self.session.set_school_info(info)
        self.session.set_items(items)
        self.session.mark_grade_selected(index)
        entry = self.session.append_history(info, items)
        return FlowOutcome(status=FLOW_OK, items=items, school_info=info, history_entry=entry)

    # ---------- store ----------
    def match_catalog(self) -> MatchReport:
        if self.matcher is None:
            raise RuntimeError("No store configured for catalog matching")
        report = self.matcher.match(self.session.items)
        self.session.set_items(report.items)
        return report

    def search_products(self, terms: Sequence[str]):
        if self.matcher is None:
            raise RuntimeError("No store configured for product search")
        return self.matcher.search(terms)

    def browse_products(self, *, query: str = "", category: str = "", page: int = 1, per_page: int = 20) -> ProductPage:
        if self.matcher is None:
            raise RuntimeError("No store configured for product listing")
        return self.matcher.browse(query=query, category=category, page=page, per_page=per_page)

    def checkout(self, affiliate_id: Optional[str] = None) -> CheckoutResult:
        if self.projector is None:
            raise RuntimeError("No store configured for checkout")
        return self.projector.project(self.session.items, affiliate_id=affiliate_id)

    def close(self) -> None:
        close = getattr(self.extractor, "close", None)
        if callable(close):
            close()


def build_flow(
    root_dir: Optional[str] = None,
    *,
    backend: Optional[str] = None,
    optimize_images: bool = True,
    max_workers: int = 1,
    require_extractor: bool = True,
) -> SupplyListFlow:
    """Wire a flow from env/.env: extractor backend, sqlite session, WooCommerce store."""
    repo_root = find_project_root(root_dir)
    try:
        extractor = build_extractor(backend, dotenv_dir=repo_root, optimize_images=optimize_images)
    except RuntimeError as e:
        if require_extractor:
            raise
        LOG.error(f"Extraction backend unavailable: {e}")
        extractor = None

    store = config.load_store(repo_root)
    client = WooCommerceClient(store.api_url, store.consumer_key, store.consumer_secret)
    return SupplyListFlow(
        extractor,
        open_session(repo_root),
        optimize_images=optimize_images,
        max_workers=max_workers,
        matcher=CatalogMatcher(client),
        projector=CartProjector(client, api_url=store.api_url, affiliate_id=store.affiliate_id),
    )
