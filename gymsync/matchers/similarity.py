import re
from typing import Optional
from rapidfuzz.distance import Levenshtein

from gymsync.models import NO_INFO, GymRecord

_WHITESPACE = re.compile(r"\s+")
_NON_DIGIT = re.compile(r"\D")

NAME_WEIGHT = 0.4
ADDRESS_WEIGHT = 0.3
PHONE_WEIGHT = 0.3


def normalize_text(value: Optional[str]) -> str:
    """Lowercase and strip every whitespace character."""
    return _WHITESPACE.sub("", str(value or "")).lower()


def dedup_key(name: Optional[str], address: Optional[str]) -> str:
    """Composite key identifying the same facility across datasets."""
    return f"{normalize_text(name)}-{normalize_text(address)}"


def string_similarity(a: Optional[str], b: Optional[str]) -> float:
    """
    Similarity of two strings in [0, 1].

    Exact match after normalization scores 1.0, containment 0.8, otherwise
    1 - levenshtein / longest length.
    """
    s1, s2 = normalize_text(a), normalize_text(b)
    if s1 == s2:
        return 1.0 if s1 else 0.0
    if not s1 or not s2:
        return 0.0
    if s1 in s2 or s2 in s1:
        return 0.8
    distance = Levenshtein.distance(s1, s2)
    return 1 - distance / max(len(s1), len(s2))


def phone_similarity(a: Optional[str], b: Optional[str]) -> float:
    p1, p2 = _NON_DIGIT.sub("", str(a or "")), _NON_DIGIT.sub("", str(b or ""))
    if not p1 or not p2:
        return 0.0
    if p1 == p2:
        return 1.0
    if p1 in p2 or p2 in p1:
        return 0.9
    return 0.0


def _known(value) -> bool:
    return bool(value) and value != NO_INFO


def match_score(baseline: GymRecord, crawled: GymRecord) -> float:
    """
    Weighted name/address/phone similarity between two records.

    Only factors present on both sides contribute, and the sum is normalized
    by their combined weight. Placeholder values count as absent.

    Args:
        baseline (GymRecord): Authoritative record.
        crawled (GymRecord): Candidate record from a web source.

    Returns:
        float: Score in [0, 1].
    """
    score = 0.0
    weights = 0.0

    if _known(baseline.name) and _known(crawled.name):
        score += string_similarity(baseline.name, crawled.name) * NAME_WEIGHT
        weights += NAME_WEIGHT

    if _known(baseline.address) and _known(crawled.address):
        score += string_similarity(baseline.address, crawled.address) * ADDRESS_WEIGHT
        weights += ADDRESS_WEIGHT

    if _known(baseline.phone) and _known(crawled.phone):
        score += phone_similarity(baseline.phone, crawled.phone) * PHONE_WEIGHT
        weights += PHONE_WEIGHT

    return score / weights if weights > 0 else 0.0

