"""Similarity and confidence scoring for gym records."""
from gymsync.matchers.similarity import (
    dedup_key,
    match_score,
    normalize_text,
    phone_similarity,
    string_similarity,
)
from gymsync.matchers.confidence import completeness_score, quality_score, score_confidence

__all__ = [
    "dedup_key",
    "match_score",
    "normalize_text",
    "phone_similarity",
    "string_similarity",
    "completeness_score",
    "quality_score",
    "score_confidence",
]
