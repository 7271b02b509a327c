import os
import sys

import pytesseract

sys.path.insert(0, os.path.abspath("src"))

from supplylist_automation.extraction.client import STATUS_NO_ITEMS, STATUS_OK, STATUS_TRANSPORT_ERROR
from supplylist_automation.extraction.ocr import TesseractExtractor, parse_ocr_text, parse_supply_line
from supplylist_automation.extraction.preprocess import PreparedImage

SAMPLE = """
Lincoln Elementary School
2nd Grade Supply List
Teacher: Ms. Rivera
2024-2025
24 Yellow pencils
- Glue sticks
Crayola crayons
Please label everything
"""

IMAGE = PreparedImage(data="aGVsbG8=", mime_type="image/jpeg", original_bytes=5, optimized_bytes=5)


def test_header_fields():
    result = parse_ocr_text(SAMPLE)
    assert result.school_name == "Lincoln Elementary School"
    assert result.grade_lists[0].grade == "2nd Grade"
    assert result.teacher_name == "Ms. Rivera"
    assert result.year == "2024-2025"


def test_supply_lines():
    items = parse_ocr_text(SAMPLE).grade_lists[0].supply_items
    assert [(it.name, it.quantity) for it in items] == [
        ("Yellow pencils", 24),
        ("Glue sticks", 1),
        ("Crayola crayons", 1),
    ]
    assert items[0].original_text == "24 Yellow pencils"


def test_teacher_label_without_honorific():
    assert parse_ocr_text("Teacher: Johnson\n2 folders").teacher_name == "Johnson"


def test_parse_supply_line_rejects_plain_text():
    assert parse_supply_line("Please label everything") is None
    assert parse_supply_line("* Scissors").name == "Scissors"


def test_extractor_classifies_text(monkeypatch):
    extractor = TesseractExtractor()
    monkeypatch.setattr(extractor, "read_text", lambda image: SAMPLE)
    outcome = extractor.extract(IMAGE)
    assert outcome.status == STATUS_OK
    assert outcome.result.item_count() == 3

    monkeypatch.setattr(extractor, "read_text", lambda image: "Lincoln Elementary School\n")
    assert extractor.extract(IMAGE).status == STATUS_NO_ITEMS


def test_missing_tesseract_is_a_transport_failure(monkeypatch):
    extractor = TesseractExtractor()

    def boom(image):
        raise pytesseract.TesseractNotFoundError()

    monkeypatch.setattr(extractor, "read_text", boom)
    outcome = extractor.extract(IMAGE)
    assert outcome.status == STATUS_TRANSPORT_ERROR
    assert outcome.failed


def test_undecodable_image_is_a_transport_failure():
    outcome = TesseractExtractor().extract(IMAGE)
    assert outcome.status == STATUS_TRANSPORT_ERROR
