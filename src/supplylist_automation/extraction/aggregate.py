"""Merge per-page extraction outcomes into one logical list.

Rules:
- school info comes from the first page (by position) that has any, never overwritten;
- grade lists are concatenated in page order;
- a failed page fails the batch; a page that is not a supply list or has no items
  contributes nothing.
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from ..domain.grades import grade_label
from ..domain.models import ExtractionResult
from ..logging import get_logger
from .client import (
    NO_ITEMS_MESSAGE,
    STATUS_NO_ITEMS,
    STATUS_NOT_SUPPLY_LIST,
    STATUS_OK,
    ExtractionOutcome,
)
from .prompt import NOT_A_SUPPLY_LIST_ERROR

LOG = get_logger("aggregate")


class AggregationError(Exception):
    """A page failed; the whole batch is rejected."""

    def __init__(self, page_index: int, outcome: ExtractionOutcome) -> None:
        super().__init__(f"Page {page_index + 1} failed to process ({outcome.status})")
        self.page_index = page_index
        self.outcome = outcome


@dataclass
class AggregateOutcome:
    status: str
    result: ExtractionResult
    page_outcomes: List[ExtractionOutcome] = field(default_factory=list)
    message: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status == STATUS_OK


def _run_pages(pages: Sequence, extractor, max_workers: int) -> List[ExtractionOutcome]:
    if max_workers <= 1 or len(pages) == 1:
        outcomes = []
        for idx, page in enumerate(pages):
            LOG.info(f"Extracting page {idx + 1}/{len(pages)}")
            outcome = extractor.extract(page)
            outcomes.append(outcome)
            if outcome.failed:
                # Later pages cannot rescue the batch.
                break
        return outcomes

    LOG.info(f"Extracting {len(pages)} pages with {max_workers} workers")
    with ThreadPoolExecutor(max_workers=max_workers) as pool:
        # map() yields in submission order, which is page order.
        return list(pool.map(extractor.extract, pages))


def merge_results(
    results: Sequence[ExtractionResult], *, info_sources: Optional[Sequence[ExtractionResult]] = None
) -> ExtractionResult:
    """Merge page results that have already passed the failure check.

    `info_sources` (default: `results`) are the pages school info may be taken from; a
    page with a header but no items can still name the school.
    """
    merged = ExtractionResult()
    for page_result in results if info_sources is None else info_sources:
        if page_result.has_school_info():
            merged.school_name = page_result.school_name
            merged.year = page_result.year
            merged.teacher_name = page_result.teacher_name
            break
    for page_result in results:
        merged.grade_lists.extend(page_result.grade_lists)

    labels = [grade_label(gl, i) for i, gl in enumerate(merged.grade_lists)]
    if len(set(labels)) != len(labels):
        LOG.warning(f"Merged pages repeat grade labels {labels}; lists are kept separate, not merged")
    return merged


def aggregate(pages: Sequence, extractor, *, max_workers: int = 1) -> AggregateOutcome:
    """Extract every page and merge them, or raise AggregationError naming the failed page."""
    pages = list(pages)
    if not pages:
        raise ValueError("At least one page is required")

    outcomes = _run_pages(pages, extractor, max_workers)
    for idx, outcome in enumerate(outcomes):
        if outcome.failed:
            LOG.error(f"Page {idx + 1}/{len(pages)} failed with {outcome.status}; rejecting the whole batch")
            raise AggregationError(idx, outcome)

    contributing: List[ExtractionResult] = []
    for idx, outcome in enumerate(outcomes):
        if outcome.status == STATUS_OK and outcome.result is not None:
            contributing.append(outcome.result)
        else:
            LOG.info(f"Page {idx + 1} contributed no items ({outcome.status})")
    info_sources = [o.result for o in outcomes if o.result is not None and not o.result.error]

    merged = merge_results(contributing, info_sources=info_sources)
    if merged.item_count():
        status, message = STATUS_OK, None
    elif all(o.status == STATUS_NOT_SUPPLY_LIST for o in outcomes):
        status, message = STATUS_NOT_SUPPLY_LIST, outcomes[0].message or NOT_A_SUPPLY_LIST_ERROR
        merged.error = message
    else:
        status, message = STATUS_NO_ITEMS, NO_ITEMS_MESSAGE
    LOG.info(f"Merged {len(pages)} page(s): {len(merged.grade_lists)} grade list(s), {merged.item_count()} item(s), status={status}")
    return AggregateOutcome(status=status, result=merged, page_outcomes=outcomes, message=message)


__all__ = ["AggregationError", "AggregateOutcome", "aggregate", "merge_results"]
