from gymsync.extractors import extract_fields, extract_region
from gymsync.extractors.html_extractor import (
    extract_hours,
    extract_phone,
    extract_price,
    extract_rating,
    extract_review_count,
    page_text,
)
from gymsync.search.query_set import expand_queries, simplify_name


def test_extract_region():
    assert extract_region("서울특별시 강남구 테헤란로 123") == "강남구"
    assert extract_region("강남 역삼동 1-2") == "강남구"
    assert extract_region("경기도 성남시 분당구 정자동") == "분당구"
    assert extract_region("판교 삼평동") == "성남시"
    assert extract_region("부산 해운대구 우동") == "해운대구"
    assert extract_region("") is None
    assert extract_region(None) is None
    assert extract_region("123 Main St") is None


def test_field_patterns():
    assert extract_phone("문의 02 555 1234") == "02-555-1234"
    assert extract_phone("문의 01012345678") == "01012345678"
    assert extract_hours("평일 06:00 ~ 23:00 운영") == ("06:00", "23:00")
    assert extract_hours("오픈 05:30") == ("05:30", None)
    assert extract_price("회원권 월 50,000원부터") == "월 50,000원"
    assert extract_rating("평점 4.7 (리뷰 120)") == 4.7
    assert extract_rating("9/5 stars") is None
    assert extract_review_count("평점 4.7 (리뷰 120)") == 120


def test_page_text_drops_scripts():
    _, text = page_text("<html><body><script>var x = 1;</script><p>헬스장</p></body></html>")
    assert text == "헬스장"


def test_extract_fields_prefers_snippets_about_the_gym():
    html = """
    <html><body>
      <div class="cafe_content">다른짐 010-1111-2222 월 30,000원</div>
      <div class="cafe_content">바디짐 02-555-1234 PT 샤워시설 평점 4.5</div>
    </body></html>
    """
    fields = extract_fields(html, name="바디짐")

    assert fields.phone == "02-555-1234"
    assert fields.price is None
    assert fields.rating == 4.5
    assert "PT" in fields.facilities
    assert "샤워시설" in fields.facilities
    assert fields.additional_info[:2] == ["다른짐 010-1111-2222 월 30,000원", "바디짐 02-555-1234 PT 샤워시설 평점 4.5"]


def test_extract_fields_on_empty_page():
    fields = extract_fields("<html><body></body></html>", name="바디짐")
    assert fields.phone is None
    assert fields.facilities == []
    assert fields.additional_info == []


def test_simplify_name():
    assert simplify_name("바디짐 (Body Gym) 강남점") == "바디짐"
    assert simplify_name("[이벤트] 파워 피트니스!") == "파워 피트니스"
    assert simplify_name("헬스") == "헬스"


def test_expand_queries():
    queries = expand_queries("Body Gym", "서울특별시 강남구 테헤란로 1")
    assert queries[0] == "Body Gym"
    assert "Body Gym 헬스장" in queries
    assert "Body Gym 강남구 헬스장" in queries
    assert "강남구 Body Gym" in queries
    assert "Body 헬스장" in queries
    assert len(queries) == len(set(queries))


def test_expand_queries_without_address():
    assert expand_queries("파워 피트니스", None) == ["파워 피트니스", "파워 피트니스 헬스장", "파워 피트니스 피트니스"]
