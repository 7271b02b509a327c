"""Turn the extractor's free-text reply into a typed ExtractionResult.

The reply may be bare JSON, JSON inside a ```json fence, or JSON surrounded by prose.
Two strategies are tried in order: the fenced block, then the slice between the
first `{` and the last `}`. Shape validation is lenient: anything that cannot be
read as a grade list or supply item is dropped rather than failing the whole reply.
"""

from __future__ import annotations

import json
import re
from typing import Any, Dict, List, Optional

from ..domain.models import ExtractionResult, GradeList, SupplyItem
from ..domain.normalize import clean_text, coerce_quantity
from ..logging import get_logger

LOG = get_logger("interpreter")

_FENCE_RE = re.compile(r"```(?:json)?\s*(.*?)```", re.DOTALL | re.IGNORECASE)


class ReplyParseError(Exception):
    """The reply contained no JSON object that could be decoded."""

    def __init__(self, message: str, raw_reply: Optional[str] = None) -> None:
        super().__init__(message)
        self.raw_reply = raw_reply


def extract_fenced_json(text: str) -> Optional[str]:
    """If the model wrapped JSON in ``` or ```json fences, return the inner content."""
    if not isinstance(text, str):
        return None
    match = _FENCE_RE.search(text)
    if match and match.group(1).strip():
        return match.group(1).strip()
    return None


def extract_braced_json(text: str) -> Optional[str]:
    """Return the slice from the first `{` to the last `}` (inclusive)."""
    if not isinstance(text, str):
        return None
    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end == -1 or end <= start:
        return None
    return text[start : end + 1]


def interpret_reply(text: Optional[str]) -> Dict[str, Any]:
    """Locate and decode the JSON object in a reply, raising ReplyParseError otherwise."""
    if not text or not text.strip():
        raise ReplyParseError("Extractor returned an empty reply", raw_reply=text)

    candidates: List[str] = []
    for strategy in (extract_fenced_json, extract_braced_json):
        candidate = strategy(text)
        if candidate and candidate not in candidates:
            candidates.append(candidate)
    if not candidates:
        raise ReplyParseError("Could not extract JSON from the extractor reply", raw_reply=text)

    last_error: Optional[Exception] = None
    for candidate in candidates:
        try:
            parsed = json.loads(candidate)
        except json.JSONDecodeError as e:
            last_error = e
            continue
        if isinstance(parsed, dict):
            return parsed
        last_error = ValueError(f"expected a JSON object, got {type(parsed).__name__}")
    raise ReplyParseError(f"Could not interpret extractor reply: {last_error}", raw_reply=text)


def _supply_items(raw_items: Any) -> List[SupplyItem]:
    if not isinstance(raw_items, list):
        return []
    items: List[SupplyItem] = []
    for idx, raw in enumerate(raw_items):
        if isinstance(raw, str):
            raw = {"name": raw, "originalText": raw}
        if not isinstance(raw, dict):
            LOG.debug(f"Dropping supply item {idx}: not an object ({raw!r})")
            continue
        name = clean_text(raw.get("name"))
        original = clean_text(raw.get("originalText") or raw.get("original_text"))
        if not name and not original:
            LOG.debug(f"Dropping supply item {idx}: no name or original text")
            continue
        items.append(SupplyItem(name=name or "", quantity=coerce_quantity(raw.get("quantity")), original_text=original or ""))
    return items


def build_result(payload: Dict[str, Any], *, raw_text: Optional[str] = None) -> ExtractionResult:
    """Validate a decoded reply and convert it into an ExtractionResult."""
    error = payload.get("error")
    if error:
        return ExtractionResult(error=str(error).strip() or "Not a school supply list", raw_text=raw_text)

    raw_lists = payload.get("gradeLists")
    if raw_lists is None and "supplyItems" in payload:
        raw_lists = [{"grade": payload.get("grade"), "supplyItems": payload.get("supplyItems")}]
    if not isinstance(raw_lists, list):
        raw_lists = []

    grade_lists: List[GradeList] = []
    for idx, raw in enumerate(raw_lists):
        if not isinstance(raw, dict):
            LOG.debug(f"Dropping grade list {idx}: not an object")
            continue
        grade_lists.append(GradeList(grade=clean_text(raw.get("grade")), supply_items=_supply_items(raw.get("supplyItems"))))

    return ExtractionResult(
        school_name=clean_text(payload.get("schoolName")),
        year=clean_text(payload.get("year")),
        teacher_name=clean_text(payload.get("teacherName")),
        grade_lists=grade_lists,
        raw_text=raw_text,
    )
