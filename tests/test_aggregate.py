import os
import sys
import time

import pytest

sys.path.insert(0, os.path.abspath("src"))

from supplylist_automation.domain.models import ExtractionResult, GradeList, SupplyItem
from supplylist_automation.extraction.aggregate import AggregationError, aggregate
from supplylist_automation.extraction.client import (
    NO_ITEMS_MESSAGE,
    STATUS_NO_ITEMS,
    STATUS_NOT_SUPPLY_LIST,
    STATUS_OK,
    STATUS_PARSE_ERROR,
    STATUS_TRANSPORT_ERROR,
    ExtractionOutcome,
)


def _list(grade, *names):
    return GradeList(grade=grade, supply_items=[SupplyItem(name=n) for n in names])


def ok(*lists, school=None, year=None, teacher=None):
    return ExtractionOutcome(
        STATUS_OK,
        result=ExtractionResult(school_name=school, year=year, teacher_name=teacher, grade_lists=list(lists)),
    )


def not_supply():
    return ExtractionOutcome(STATUS_NOT_SUPPLY_LIST, result=ExtractionResult(error="nope"), message="nope")


def no_items(school=None):
    return ExtractionOutcome(STATUS_NO_ITEMS, result=ExtractionResult(school_name=school), message=NO_ITEMS_MESSAGE)


class MappedExtractor:
    def __init__(self, outcomes, delays=None):
        self.outcomes = outcomes
        self.delays = delays or {}
        self.seen = []

    def extract(self, page):
        self.seen.append(page)
        time.sleep(self.delays.get(page, 0))
        return self.outcomes[page]


def test_school_info_from_first_page_that_has_it():
    extractor = MappedExtractor(
        {
            "p1": ok(_list("K", "Crayons")),
            "p2": ok(_list("1st", "Glue"), school="Lincoln", year="2024"),
            "p3": ok(_list("2nd", "Paper"), school="Other School", teacher="Ms. Lee"),
        }
    )
    merged = aggregate(["p1", "p2", "p3"], extractor)
    assert merged.status == STATUS_OK
    assert merged.result.school_name == "Lincoln"
    assert merged.result.year == "2024"
    assert merged.result.teacher_name is None
    assert [gl.grade for gl in merged.result.grade_lists] == ["K", "1st", "2nd"]


def test_grade_lists_keep_page_and_inner_order():
    extractor = MappedExtractor(
        {
            "a": ok(_list("K", "1", "2"), _list("1st", "3")),
            "b": ok(_list("2nd", "4", "5")),
        }
    )
    merged = aggregate(["a", "b"], extractor)
    names = [it.name for gl in merged.result.grade_lists for it in gl.supply_items]
    assert names == ["1", "2", "3", "4", "5"]


@pytest.mark.parametrize("status", [STATUS_PARSE_ERROR, STATUS_TRANSPORT_ERROR])
@pytest.mark.parametrize("workers", [1, 3])
def test_any_page_failure_fails_the_batch(status, workers):
    extractor = MappedExtractor(
        {
            "p1": ok(_list("K", "Crayons"), school="Lincoln"),
            "p2": ExtractionOutcome(status, message="boom"),
            "p3": ok(_list("1st", "Glue")),
        }
    )
    with pytest.raises(AggregationError) as exc:
        aggregate(["p1", "p2", "p3"], extractor, max_workers=workers)
    assert exc.value.page_index == 1
    assert exc.value.outcome.status == status


def test_sequential_mode_stops_at_first_failure():
    extractor = MappedExtractor(
        {"p1": ExtractionOutcome(STATUS_TRANSPORT_ERROR), "p2": ok(_list("K", "Crayons"))}
    )
    with pytest.raises(AggregationError):
        aggregate(["p1", "p2"], extractor)
    assert extractor.seen == ["p1"]


def test_negative_pages_contribute_nothing():
    extractor = MappedExtractor(
        {
            "cover": no_items(school="Lincoln"),
            "junk": not_supply(),
            "list": ok(_list("K", "Crayons")),
        }
    )
    merged = aggregate(["cover", "junk", "list"], extractor)
    assert merged.status == STATUS_OK
    assert merged.result.school_name == "Lincoln"
    assert len(merged.result.grade_lists) == 1


def test_all_pages_not_a_supply_list():
    merged = aggregate(["a", "b"], MappedExtractor({"a": not_supply(), "b": not_supply()}))
    assert merged.status == STATUS_NOT_SUPPLY_LIST
    assert merged.result.error


def test_mixed_negatives_report_no_items():
    merged = aggregate(["a", "b"], MappedExtractor({"a": not_supply(), "b": no_items()}))
    assert merged.status == STATUS_NO_ITEMS
    assert merged.message == NO_ITEMS_MESSAGE


def test_concurrent_extraction_keeps_page_order():
    pages = ["p0", "p1", "p2", "p3"]
    extractor = MappedExtractor(
        {p: ok(_list(p, f"item-{p}")) for p in pages},
        delays={"p0": 0.15, "p1": 0.1, "p2": 0.05, "p3": 0.0},
    )
    merged = aggregate(pages, extractor, max_workers=4)
    assert [gl.grade for gl in merged.result.grade_lists] == pages


def test_duplicate_grade_labels_stay_separate():
    extractor = MappedExtractor({"a": ok(_list("3rd", "Glue")), "b": ok(_list("3rd", "Paper"))})
    merged = aggregate(["a", "b"], extractor)
    assert len(merged.result.grade_lists) == 2


def test_empty_batch_is_rejected():
    with pytest.raises(ValueError):
        aggregate([], MappedExtractor({}))


@pytest.mark.parametrize("order", [["a", "b"], ["b", "a"]])
def test_school_name_follows_page_position(order):
    extractor = MappedExtractor({"a": ok(_list("K", "Crayons")), "b": ok(_list("1st", "Glue"), school="Lincoln")})
    merged = aggregate(order, extractor)
    assert merged.result.school_name == "Lincoln"
    assert [gl.grade for gl in merged.result.grade_lists] == ["K" if p == "a" else "1st" for p in order]
