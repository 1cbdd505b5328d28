from typing import Optional, Sequence

from gymsync.models import GymRecord

# Presence weights for extracted fields
PHONE_WEIGHT = 0.3
HOURS_WEIGHT = 0.2
PRICE_WEIGHT = 0.2
RATING_WEIGHT = 0.1
FACILITIES_WEIGHT = 0.1
EXTRA_INFO_WEIGHT = 0.1

# Completeness weights used for the dataset quality score
COMPLETENESS_WEIGHTS = {
    "name": 0.2,
    "address": 0.2,
    "phone": 0.15,
    "rating": 0.1,
    "review_count": 0.1,
}
CONFIDENCE_COMPLETENESS_WEIGHT = 0.1


def score_confidence(
    phone: Optional[str] = None,
    open_hour: Optional[str] = None,
    price: Optional[str] = None,
    rating: Optional[float] = None,
    facilities: Sequence[str] = (),
    additional_info: Sequence[str] = (),
) -> float:
    """
    Confidence of an extracted record from the presence of its fields.

    Returns:
        float: Sum of the weights of present fields, capped at 1.0.
    """
    confidence = 0.0
    if phone:
        confidence += PHONE_WEIGHT
    if open_hour:
        confidence += HOURS_WEIGHT
    if price:
        confidence += PRICE_WEIGHT
    if rating:
        confidence += RATING_WEIGHT
    if facilities:
        confidence += FACILITIES_WEIGHT
    if additional_info:
        confidence += EXTRA_INFO_WEIGHT
    return min(round(confidence, 4), 1.0)


def completeness_score(record: GymRecord) -> float:
    """Weighted completeness of one record, normalized by the weights of present fields."""
    score = 0.0
    weights = 0.0
    for attr, weight in COMPLETENESS_WEIGHTS.items():
        if getattr(record, attr, None):
            score += weight
            weights += weight
    if record.confidence:
        score += record.confidence * CONFIDENCE_COMPLETENESS_WEIGHT
        weights += CONFIDENCE_COMPLETENESS_WEIGHT
    return score / weights if weights > 0 else 0.0


def quality_score(records: Sequence[GymRecord]) -> float:
    if not records:
        return 0.0
    return sum(completeness_score(record) for record in records) / len(records)
