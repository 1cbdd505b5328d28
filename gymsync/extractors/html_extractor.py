"""
Field extraction from search result pages.

Pages of search results mention many businesses, so the chain scores
whatever is found here rather than trusting it.
"""
import re
from dataclasses import dataclass, field
from typing import List, Optional, Tuple
from bs4 import BeautifulSoup

PHONE_PATTERNS = [
    re.compile(r"(\d{2,3}-\d{3,4}-\d{4})"),
    re.compile(r"(\d{2,3}\s\d{3,4}\s\d{4})"),
    re.compile(r"(?<!\d)(0\d{9,10})(?!\d)"),
]

HOURS_PATTERNS = [
    re.compile(r"(\d{1,2}:\d{2})\s*[-~]\s*(\d{1,2}:\d{2})"),
    re.compile(r"(\d{1,2}시)\s*[-~]\s*(\d{1,2}시)"),
    re.compile(r"오픈\s*(\d{1,2}:\d{2})"),
    re.compile(r"open\s*(\d{1,2}:\d{2})", re.IGNORECASE),
]

PRICE_PATTERNS = [
    re.compile(r"월\s*\d{1,3}(?:,\d{3})*\s*원"),
    re.compile(r"회원권\s*\d{1,3}(?:,\d{3})*\s*원"),
    re.compile(r"일일권\s*\d{1,3}(?:,\d{3})*\s*원"),
    re.compile(r"\d{1,3}(?:,\d{3})*\s*만원"),
    re.compile(r"\d{1,3}(?:,\d{3})+\s*원"),
]

RATING_PATTERNS = [
    re.compile(r"평점\s*(\d+(?:\.\d+)?)"),
    re.compile(r"별점\s*(\d+(?:\.\d+)?)"),
    re.compile(r"(\d+(?:\.\d+)?)\s*/\s*5(?!\d)"),
    re.compile(r"rating\s*(\d+(?:\.\d+)?)", re.IGNORECASE),
]

REVIEW_PATTERNS = [
    re.compile(r"리뷰\s*(\d+)"),
    re.compile(r"후기\s*(\d+)"),
    re.compile(r"(\d+)\s*개\s*(?:리뷰|후기)"),
    re.compile(r"(\d+)\s*reviews?", re.IGNORECASE),
]

FACILITY_KEYWORDS = [
    "PT", "GX", "요가", "필라테스", "크로스핏", "웨이트", "유산소",
    "24시간", "샤워시설", "주차장", "락커룸", "운동복", "사우나",
    "개인트레이너", "그룹레슨", "회원권", "일일권",
]

SENTENCE_KEYWORDS = ["운영시간", "가격", "시설", "트레이너", "후기", "추천"]

SNIPPET_SELECTORS = ".cafe_title, .cafe_subject, .cafe_content, .title_link, .dsc_txt, .api_txt_lines"

MAX_SENTENCES = 5
MAX_ADDITIONAL_INFO = 10


@dataclass
class ExtractedFields:
    phone: Optional[str] = None
    open_hour: Optional[str] = None
    close_hour: Optional[str] = None
    price: Optional[str] = None
    rating: Optional[float] = None
    review_count: Optional[int] = None
    facilities: List[str] = field(default_factory=list)
    additional_info: List[str] = field(default_factory=list)


def page_text(html: str) -> Tuple[BeautifulSoup, str]:
    soup = BeautifulSoup(html, "html.parser")
    for tag in soup(["script", "style", "noscript"]):
        tag.decompose()
    root = soup.body or soup
    return soup, root.get_text(" ", strip=True)


def extract_phone(text: str) -> Optional[str]:
    for pattern in PHONE_PATTERNS:
        match = pattern.search(text)
        if match:
            return re.sub(r"\s+", "-", match.group(1))
    return None


def extract_hours(text: str) -> Tuple[Optional[str], Optional[str]]:
    for pattern in HOURS_PATTERNS:
        match = pattern.search(text)
        if match:
            groups = match.groups()
            close = groups[1] if len(groups) > 1 else None
            return groups[0], close
    return None, None


def extract_price(text: str) -> Optional[str]:
    for pattern in PRICE_PATTERNS:
        match = pattern.search(text)
        if match:
            return match.group(0)
    return None


def extract_rating(text: str) -> Optional[float]:
    for pattern in RATING_PATTERNS:
        for match in pattern.finditer(text):
            rating = float(match.group(1))
            if 0 <= rating <= 5:
                return rating
    return None


def extract_review_count(text: str) -> Optional[int]:
    for pattern in REVIEW_PATTERNS:
        match = pattern.search(text)
        if match:
            return int(match.group(1))
    return None


def extract_facilities(text: str) -> List[str]:
    lowered = text.lower()
    return [keyword for keyword in FACILITY_KEYWORDS if keyword.lower() in lowered]


def extract_keyword_sentences(text: str) -> List[str]:
    sentences = []
    for line in re.split(r"[.!?]\s*", text):
        line = line.strip()
        if 10 < len(line) < 100 and any(keyword in line for keyword in SENTENCE_KEYWORDS):
            sentences.append(line)
        if len(sentences) >= MAX_SENTENCES:
            break
    return sentences


def extract_fields(html: str, name: str = "", address: str = "") -> ExtractedFields:
    """
    Pull gym fields out of a result page.

    Args:
        html (str): Raw page body.
        name (str): Gym being searched; snippets mentioning it are preferred.
        address (str): Gym address. Accepted so extractors share one signature.

    Returns:
        ExtractedFields: Whatever could be found; missing fields stay None/empty.
    """
    soup, text = page_text(html)

    # Narrow to snippets mentioning the gym when there are any
    snippets = [el.get_text(" ", strip=True) for el in soup.select(SNIPPET_SELECTORS)]
    snippets = [s for s in snippets if s]
    relevant = [s for s in snippets if name and name.replace(" ", "") in s.replace(" ", "")]
    focus = " ".join(relevant) if relevant else text

    open_hour, close_hour = extract_hours(focus)
    additional = (snippets + extract_keyword_sentences(text))[:MAX_ADDITIONAL_INFO]

    return ExtractedFields(
        phone=extract_phone(focus),
        open_hour=open_hour,
        close_hour=close_hour,
        price=extract_price(focus),
        rating=extract_rating(focus),
        review_count=extract_review_count(focus),
        facilities=extract_facilities(focus),
        additional_info=additional,
    )
