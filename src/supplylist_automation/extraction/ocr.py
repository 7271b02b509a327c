"""Offline extraction backend: Tesseract text plus line heuristics.

Much weaker than the vision models, but needs no API key. It produces a single grade
list and fills school info from simple patterns.
"""

from __future__ import annotations

import re
from typing import List, Optional, Union

import cv2
import numpy as np
import pytesseract

from ..domain.models import ExtractionResult, GradeList, SupplyItem
from ..domain.normalize import clean_text
from ..logging import get_logger
from .client import FAILURE_MESSAGE, STATUS_TRANSPORT_ERROR, ExtractionOutcome, classify_result
from .preprocess import PreparedImage, prepare_payload

LOG = get_logger("ocr")

SCHOOL_RE = re.compile(r"(.*school|.*academy|.*elementary|.*middle|.*high)", re.IGNORECASE)
GRADE_RE = re.compile(r"(kindergarten|grade\s*[k0-9]{1,2}|[0-9]{1,2}(?:st|nd|rd|th)\s*grade)", re.IGNORECASE)
HONORIFIC_RE = re.compile(r"M(?:rs|r|s)\.?\s+[A-Z][a-z]+")
TEACHER_LABEL_RE = re.compile(r"[Tt]eacher\s*:\s*([A-Z][a-z]+)")
YEAR_RE = re.compile(r"20[0-9]{2}(?:-|/)20[0-9]{2}|20[0-9]{2}")

QTY_LINE_RE = re.compile(r"^(\d+)\s+(.+)$")
BULLET_LINE_RE = re.compile(r"^[•\-\*]\s*(.+)$")

HEADER_WORDS = ("school supply", "grade", "teacher", "year")
SUPPLY_TERMS = (
    "pencil", "pen", "notebook", "folder", "binder", "paper", "marker", "crayon",
    "scissor", "glue", "eraser", "ruler", "calculator", "highlighter", "backpack",
    "box", "tissue", "wipe", "sanitizer", "book", "sheet", "divider",
)


def _first_match(pattern: re.Pattern, text: str) -> Optional[str]:
    m = pattern.search(text)
    if not m:
        return None
    groups = [g for g in m.groups() if g] if m.groups() else []
    return clean_text(groups[0] if groups else m.group(0))


def _is_header(line: str) -> bool:
    low = line.lower()
    return len(line) < 3 or any(word in low for word in HEADER_WORDS)


def parse_supply_line(line: str) -> Optional[SupplyItem]:
    """Read one OCR line as a supply item, or None when it does not look like one."""
    m = QTY_LINE_RE.match(line)
    if m:
        return SupplyItem(name=m.group(2).strip(), quantity=max(int(m.group(1)), 1), original_text=line)
    m = BULLET_LINE_RE.match(line)
    if m:
        return SupplyItem(name=m.group(1).strip(), quantity=1, original_text=line)
    low = line.lower()
    if any(term in low for term in SUPPLY_TERMS):
        return SupplyItem(name=line, quantity=1, original_text=line)
    return None


def parse_ocr_text(text: str) -> ExtractionResult:
    lines = [ln.strip() for ln in (text or "").splitlines() if ln.strip()]

    school = None
    for line in lines[:5]:
        if SCHOOL_RE.search(line):
            school = clean_text(line)
            break

    items: List[SupplyItem] = []
    for line in lines:
        if _is_header(line):
            continue
        item = parse_supply_line(line)
        if item is not None:
            items.append(item)

    return ExtractionResult(
        school_name=school,
        year=_first_match(YEAR_RE, text or ""),
        teacher_name=_first_match(HONORIFIC_RE, text or "") or _first_match(TEACHER_LABEL_RE, text or ""),
        grade_lists=[GradeList(grade=_first_match(GRADE_RE, text or ""), supply_items=items)],
        raw_text=text,
    )


def _binarize(raw: bytes):
    data = np.frombuffer(raw, dtype=np.uint8)
    img = cv2.imdecode(data, cv2.IMREAD_COLOR)
    if img is None:
        return None
    gray = cv2.cvtColor(img, cv2.COLOR_BGR2GRAY)
    gray = cv2.bilateralFilter(gray, 7, 60, 60)
    return cv2.adaptiveThreshold(gray, 255, cv2.ADAPTIVE_THRESH_GAUSSIAN_C, cv2.THRESH_BINARY, 31, 10)


class TesseractExtractor:
    """Same `extract()` contract as ExtractionClient, backed by pytesseract."""

    def __init__(self, *, lang: str = "eng", config: str = "--psm 6", optimize_images: bool = False) -> None:
        self.lang = lang
        self.config = config
        self.optimize_images = optimize_images

    def read_text(self, image: PreparedImage) -> str:
        th = _binarize(image.raw_bytes())
        if th is None:
            raise ValueError("image could not be decoded")
        return pytesseract.image_to_string(th, lang=self.lang, config=self.config)

    def extract(self, payload: Union[str, PreparedImage]) -> ExtractionOutcome:
        image = payload if isinstance(payload, PreparedImage) else prepare_payload(payload, optimize=self.optimize_images)
        try:
            text = self.read_text(image)
        except (pytesseract.TesseractNotFoundError, pytesseract.TesseractError, ValueError, OSError) as e:
            LOG.error(f"Tesseract OCR failed: {e}")
            return ExtractionOutcome(STATUS_TRANSPORT_ERROR, message=FAILURE_MESSAGE)
        LOG.debug(f"OCR produced {len(text)} chars")
        return classify_result(parse_ocr_text(text), raw_reply=text)
