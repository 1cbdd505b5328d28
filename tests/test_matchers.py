import pytest

from gymsync.matchers import (
    completeness_score,
    dedup_key,
    match_score,
    phone_similarity,
    quality_score,
    score_confidence,
    string_similarity,
)
from gymsync.models import NO_INFO, BaselineRecord, CrawledRecord


def test_string_similarity():
    assert string_similarity("ABC Gym", "abc   gym") == 1.0
    assert string_similarity("바디짐", "바디짐 강남점") == 0.8
    assert string_similarity("", "gym") == 0.0
    assert string_similarity(None, None) == 0.0
    assert string_similarity("abcd", "abcf") == pytest.approx(0.75)


def test_phone_similarity():
    assert phone_similarity("02-555-1234", "025551234") == 1.0
    assert phone_similarity("+82 2-555-1234", "2-555-1234") == 0.9
    assert phone_similarity("02-555-1234", "031-777-0000") == 0.0
    assert phone_similarity(None, "02-555-1234") == 0.0


def test_dedup_key_ignores_case_and_spacing():
    assert dedup_key("ABC Gym", "Seoul 1") == dedup_key("abc  gym", "seoul1")


def test_match_score_uses_only_shared_fields():
    baseline = BaselineRecord(name="A Gym", address="X")
    crawled = CrawledRecord(name="A Gym", address="X", phone="555-1234")
    assert match_score(baseline, crawled) == 1.0


def test_match_score_ignores_placeholders():
    baseline = BaselineRecord(name="A Gym", address="X", phone="02-111-2222")
    crawled = CrawledRecord(name="A Gym", address="X", phone=NO_INFO)
    assert match_score(baseline, crawled) == 1.0


def test_match_score_penalizes_different_phone():
    baseline = BaselineRecord(name="A Gym", address="X", phone="02-111-2222")
    crawled = CrawledRecord(name="A Gym", address="X", phone="02-999-8888")
    assert match_score(baseline, crawled) == pytest.approx(0.7)


def test_score_confidence():
    assert score_confidence() == 0.0
    assert score_confidence(phone="02-555-1234", open_hour="06:00", price="월 5만원") == pytest.approx(0.7)
    full = score_confidence(
        phone="02-555-1234", open_hour="06:00", price="월 5만원", rating=4.5,
        facilities=["PT"], additional_info=["운영시간 안내"],
    )
    assert full == 1.0


def test_quality_score():
    complete = BaselineRecord(name="A", address="X", phone="1", rating=4.0, review_count=3, confidence=1.0)
    assert completeness_score(complete) == 1.0
    assert quality_score([]) == 0.0
    assert quality_score([complete, complete]) == 1.0
