from .models import (
    CartCandidateItem,
    ExtractionResult,
    GradeList,
    ListHistoryEntry,
    RemoteOrder,
    SchoolInfo,
    SupplyItem,
)
from .grades import GradeOption, GradeResolution, GradeSelectionError, resolve_grades
from .normalize import DEFAULT_IN_CART, normalize_items

__all__ = [
    "CartCandidateItem",
    "ExtractionResult",
    "GradeList",
    "ListHistoryEntry",
    "RemoteOrder",
    "SchoolInfo",
    "SupplyItem",
    "GradeOption",
    "GradeResolution",
    "GradeSelectionError",
    "resolve_grades",
    "DEFAULT_IN_CART",
    "normalize_items",
]
