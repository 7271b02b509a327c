from __future__ import annotations

from dataclasses import dataclass, field, replace
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional, Tuple


def _text(value: Any) -> Optional[str]:
    if value is None:
        return None
    s = str(value).strip()
    return s or None


def _decimal(value: Any) -> Decimal:
    try:
        return Decimal(str(value)) if value not in (None, "") else Decimal("0")
    except (InvalidOperation, ValueError):
        return Decimal("0")


def _count(value: Any, default: int) -> int:
    if isinstance(value, int) and not isinstance(value, bool) and value >= 0:
        return value
    return default


@dataclass
class SupplyItem:
    name: str
    quantity: int = 1
    original_text: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "quantity": self.quantity, "originalText": self.original_text}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SupplyItem":
        try:
            qty = int(data.get("quantity") or 1)
        except (TypeError, ValueError):
            qty = 1
        return cls(
            name=str(data.get("name") or ""),
            quantity=max(qty, 1),
            original_text=str(data.get("originalText") or ""),
        )


@dataclass
class GradeList:
    grade: Optional[str]
    supply_items: List[SupplyItem] = field(default_factory=list)

    def non_empty_items(self) -> List[SupplyItem]:
        return [it for it in self.supply_items if (it.name or "").strip() or (it.original_text or "").strip()]

    def to_dict(self) -> Dict[str, Any]:
        return {"grade": self.grade, "supplyItems": [it.to_dict() for it in self.supply_items]}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "GradeList":
        return cls(
            grade=_text(data.get("grade")),
            supply_items=[SupplyItem.from_dict(it) for it in data.get("supplyItems") or [] if isinstance(it, dict)],
        )


@dataclass
class ExtractionResult:
    """One extractor reply for one image (or the merge of several)."""

    school_name: Optional[str] = None
    year: Optional[str] = None
    teacher_name: Optional[str] = None
    grade_lists: List[GradeList] = field(default_factory=list)
    error: Optional[str] = None
    raw_text: Optional[str] = None

    def has_school_info(self) -> bool:
        return any((self.school_name, self.year, self.teacher_name))

    def item_count(self) -> int:
        return sum(len(gl.non_empty_items()) for gl in self.grade_lists)

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "schoolName": self.school_name,
            "year": self.year,
            "teacherName": self.teacher_name,
            "gradeLists": [gl.to_dict() for gl in self.grade_lists],
        }
        if self.error:
            out["error"] = self.error
        return out


@dataclass
class CartCandidateItem:
    """Locally owned cart row. `id` is the correlation key, `product_id` the catalog link."""

    id: str
    name: str
    brand: str = ""
    price: Decimal = Decimal("0")
    image: str = ""
    in_cart: bool = True
    original_term: str = ""
    requested_quantity: int = 1
    product_id: Optional[int] = None

    @property
    def is_matched(self) -> bool:
        return self.product_id is not None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "brand": self.brand,
            "price": str(self.price),
            "image": self.image,
            "inCart": self.in_cart,
            "originalTerm": self.original_term,
            "requestedQuantity": self.requested_quantity,
            "productId": self.product_id,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CartCandidateItem":
        product_id = data.get("productId")
        try:
            qty = int(data.get("requestedQuantity") or 1)
        except (TypeError, ValueError):
            qty = 1
        return cls(
            id=str(data["id"]),
            name=str(data.get("name") or ""),
            brand=str(data.get("brand") or ""),
            price=_decimal(data.get("price")),
            image=str(data.get("image") or ""),
            in_cart=bool(data.get("inCart")),
            original_term=str(data.get("originalTerm") or ""),
            requested_quantity=max(qty, 1),
            product_id=int(product_id) if isinstance(product_id, int) else None,
        )


@dataclass
class SchoolInfo:
    school_name: Optional[str] = None
    grade: Optional[str] = None
    teacher_name: Optional[str] = None
    year: Optional[str] = None

    def with_grade(self, grade: Optional[str]) -> "SchoolInfo":
        return replace(self, grade=grade)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "schoolName": self.school_name,
            "grade": self.grade,
            "teacherName": self.teacher_name,
            "year": self.year,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SchoolInfo":
        return cls(
            school_name=_text(data.get("schoolName")),
            grade=_text(data.get("grade")),
            teacher_name=_text(data.get("teacherName")),
            year=_text(data.get("year")),
        )


@dataclass(frozen=True)
class ListHistoryEntry:
    id: str
    timestamp: str
    school_name: Optional[str]
    grade: Optional[str]
    teacher_name: Optional[str]
    year: Optional[str]
    item_count: int
    items: Tuple[CartCandidateItem, ...]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "timestamp": self.timestamp,
            "schoolName": self.school_name,
            "grade": self.grade,
            "teacherName": self.teacher_name,
            "year": self.year,
            "itemCount": self.item_count,
            "items": [it.to_dict() for it in self.items],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ListHistoryEntry":
        items = tuple(CartCandidateItem.from_dict(it) for it in data.get("items") or [] if isinstance(it, dict))
        return cls(
            id=str(data.get("id")),
            timestamp=str(data.get("timestamp") or ""),
            school_name=_text(data.get("schoolName")),
            grade=_text(data.get("grade")),
            teacher_name=_text(data.get("teacherName")),
            year=_text(data.get("year")),
            item_count=_count(data.get("itemCount"), len(items)),
            items=items,
        )


@dataclass
class RemoteOrder:
    order_id: int
    order_key: Optional[str]
    line_items: List[Dict[str, int]] = field(default_factory=list)

    def quantities_by_product(self) -> Dict[int, int]:
        totals: Dict[int, int] = {}
        for li in self.line_items:
            pid = int(li["product_id"])
            totals[pid] = totals.get(pid, 0) + int(li["quantity"])
        return totals
