import re
from typing import Optional

# Common short forms of Seoul districts and nearby cities found in addresses
REGION_ALIASES = {
    "강남": "강남구",
    "서초": "서초구",
    "송파": "송파구",
    "마포": "마포구",
    "용산": "용산구",
    "성동": "성동구",
    "광진": "광진구",
    "영등포": "영등포구",
    "관악": "관악구",
    "노원": "노원구",
    "분당": "성남시",
    "일산": "고양시",
    "판교": "성남시",
}

# Administrative units, most specific first
REGION_PATTERNS = [
    re.compile(r"서울특별시\s+(\S+구)"),
    re.compile(r"서울\s+(\S+구)"),
    re.compile(r"(\S+구)(?:\s|$)"),
    re.compile(r"(\S+시)(?:\s|$)"),
    re.compile(r"(\S+군)(?:\s|$)"),
    re.compile(r"(\S+동)(?:\s|$)"),
]


def extract_region(address: Optional[str]) -> Optional[str]:
    """
    Extract a locality to qualify search queries with.

    The alias table is tried first, then the administrative-unit patterns.
    Returns None when nothing matches.
    """
    if not address:
        return None

    for token in address.split():
        if token in REGION_ALIASES:
            return REGION_ALIASES[token]

    for pattern in REGION_PATTERNS:
        match = pattern.search(address)
        if match:
            return match.group(1)

    return None
