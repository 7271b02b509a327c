"""Decide which extracted grade list becomes the active shopping list."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from ..logging import get_logger
from .models import GradeList

LOG = get_logger("grades")

RESOLUTION_EMPTY = "empty"
RESOLUTION_AUTO = "auto"
RESOLUTION_NEEDS_SELECTION = "needs_selection"


class GradeSelectionError(ValueError):
    """Raised when a selection index does not name one of the offered grade lists."""


@dataclass(frozen=True)
class GradeOption:
    index: int
    label: str
    item_count: int

    def to_dict(self) -> dict:
        return {"index": self.index, "label": self.label, "itemCount": self.item_count}


def grade_label(grade_list: GradeList, index: int) -> str:
    label = (grade_list.grade or "").strip()
    return label or f"List {index + 1}"


@dataclass
class GradeResolution:
    status: str
    grade_lists: List[GradeList] = field(default_factory=list)
    selected: Optional[GradeList] = None
    selected_index: Optional[int] = None

    @property
    def options(self) -> List[GradeOption]:
        return [
            GradeOption(index=i, label=grade_label(gl, i), item_count=len(gl.non_empty_items()))
            for i, gl in enumerate(self.grade_lists)
        ]

    @property
    def needs_selection(self) -> bool:
        return self.status == RESOLUTION_NEEDS_SELECTION

    def select(self, index: int) -> GradeList:
        """Return the grade list at `index`; the resolution itself is not modified."""
        if isinstance(index, bool) or not isinstance(index, int):
            raise GradeSelectionError(f"Grade index must be an integer, got {index!r}")
        if not 0 <= index < len(self.grade_lists):
            raise GradeSelectionError(
                f"Grade index {index} out of range; choose 0..{len(self.grade_lists) - 1}"
                if self.grade_lists
                else "No grade lists available to select from"
            )
        LOG.info(f"Grade list {index} selected: {grade_label(self.grade_lists[index], index)!r}")
        return self.grade_lists[index]


def resolve_grades(grade_lists: Sequence[GradeList]) -> GradeResolution:
    lists = list(grade_lists)
    if not lists:
        LOG.info("No grade lists extracted; nothing to select")
        return GradeResolution(status=RESOLUTION_EMPTY)
    if len(lists) == 1:
        return GradeResolution(status=RESOLUTION_AUTO, grade_lists=lists, selected=lists[0], selected_index=0)

    labels = [grade_label(gl, i) for i, gl in enumerate(lists)]
    if len(set(labels)) != len(labels):
        LOG.warning(f"Duplicate grade labels across lists: {labels}; each stays separately selectable")
    LOG.info(f"{len(lists)} grade lists found; waiting for a selection")
    return GradeResolution(status=RESOLUTION_NEEDS_SELECTION, grade_lists=lists)
