"""
Reconcile authoritative baseline records with crawled records.

Baseline values always win; crawled data only fills gaps and extends the
facility/service sets. Every input record ends up in the output, either
merged with its best match or passed through on its own.
"""
import asyncio
import time
from collections.abc import Mapping
from dataclasses import fields, replace
from typing import Any, Dict, List, Optional, Sequence, Tuple, Type, TypeVar
from loguru import logger

from gymsync.config import MergerConfig
from gymsync.errors import InvalidShape
from gymsync.matchers.confidence import quality_score
from gymsync.matchers.similarity import dedup_key, match_score
from gymsync.models import (
    BASELINE_FALLBACK_SOURCE,
    DEFAULT_FACILITIES,
    NO_INFO,
    BaselineRecord,
    Conflict,
    CrawledRecord,
    GymRecord,
    MergedRecord,
    MergeResult,
    clamp_confidence,
    now_iso,
)

R = TypeVar("R", bound=GymRecord)

DEFAULT_BASELINE_CONFIDENCE = 0.5

# Scalar fields filled from the crawled side only when the baseline lacks them
FILL_FIELDS = [
    "name", "address", "phone", "rating", "review_count", "open_hour", "close_hour",
    "price", "membership_price", "pt_price", "gx_price", "day_pass_price",
    "price_details", "minimum_price", "discount_info", "website", "instagram", "facebook",
]
FLAG_FIELDS = ["has_gx", "has_pt", "has_group_pt", "is_24_hours", "has_parking", "has_shower"]
SET_FIELDS = ["facilities", "services"]
CONFLICT_FIELDS = [
    "name", "address", "phone", "rating", "review_count", "open_hour", "close_hour",
    "price", "membership_price", "pt_price", "gx_price", "day_pass_price",
    "website", "instagram", "facebook",
]

SERVICE_TYPE_KEYWORDS = [
    ("crossfit", ("크로스핏", "crossfit")),
    ("pt", ("pt", "개인트레이닝")),
    ("gx", ("gx", "그룹")),
    ("yoga", ("요가", "yoga")),
    ("pilates", ("필라테스", "pilates")),
]

_MERGED_FIELDS = {f.name for f in fields(MergedRecord)}


def _copy_value(value):
    return list(value) if isinstance(value, list) else value


_PLACEHOLDERS = frozenset([NO_INFO, *DEFAULT_FACILITIES])


def is_present(value: Any) -> bool:
    """Values that count as data; placeholders from fallback records do not."""
    if value is None or (isinstance(value, str) and value in _PLACEHOLDERS):
        return False
    if isinstance(value, (str, list, tuple, set)) and len(value) == 0:
        return False
    return True


def infer_service_type(name: Optional[str]) -> str:
    lowered = (name or "").lower()
    for service_type, keywords in SERVICE_TYPE_KEYWORDS:
        if any(keyword in lowered for keyword in keywords):
            return service_type
    return "gym"


def merge_sources(*sources: Optional[str]) -> str:
    """Distinct union of source tags, joined with ' + '."""
    parts: List[str] = []
    for source in sources:
        for part in (source or "").split(" + "):
            part = part.strip()
            if part and part not in parts:
                parts.append(part)
    return " + ".join(parts)


def union_lists(*values: Optional[Sequence[str]]) -> List[str]:
    merged: Dict[str, None] = {}
    for value in values:
        for item in value or []:
            if is_present(item):
                merged.setdefault(item, None)
    return list(merged)


def to_merged(record: GymRecord) -> MergedRecord:
    return MergedRecord(**{
        f.name: _copy_value(getattr(record, f.name))
        for f in fields(record)
        if f.name in _MERGED_FIELDS
    })


class UnifiedDataMerger:
    def __init__(self, config: Optional[MergerConfig] = None):
        self.config = config or MergerConfig()

    async def merge(self, baseline: Sequence[Any], crawled: Sequence[Any]) -> MergeResult:
        """
        Merge baseline and crawled datasets into one reconciled dataset.

        Args:
            baseline: Baseline records, as BaselineRecord or plain mappings.
            crawled: Crawled records, as CrawledRecord or plain mappings.

        Returns:
            MergeResult with the merged records, statistics and the conflict log.
        """
        start = time.perf_counter()
        result = MergeResult()
        logger.info(f"🔄 Merging {len(baseline)} baseline and {len(crawled)} crawled records")

        baseline_records = self._coerce_all(baseline, BaselineRecord, result)
        crawled_records = self._coerce_all(crawled, CrawledRecord, result)

        unique_baseline = self.deduplicate(baseline_records)
        unique_crawled = self.deduplicate(crawled_records)
        result.statistics.duplicates_removed = (
            len(baseline_records) + len(crawled_records) - len(unique_baseline) - len(unique_crawled)
        )

        pairs, unmatched_baseline, unmatched_crawled = await self._match_all(unique_baseline, unique_crawled, result)
        logger.info(f"🔗 Matched pairs: {len(pairs)}")

        for chunk in self._chunks(pairs, self.config.merge_chunk_size):
            for base, crawl in chunk:
                try:
                    merged, conflicts = self.merge_pair(base, crawl)
                except Exception as e:
                    logger.warning(f"⚠️ Merging '{base.name}' failed, passing both records through: {e}")
                    result.errors.append(f"merge {dedup_key(base.name, base.address)}: {e}")
                    unmatched_baseline.append(base)
                    unmatched_crawled.append(crawl)
                    continue
                result.merged_data.append(merged)
                result.conflicts.extend(conflicts)
                if (merged.confidence or 0) >= self.config.quality_threshold:
                    result.statistics.successfully_merged += 1
                else:
                    result.statistics.fallback_used += 1
            await asyncio.sleep(0)

        for base in unmatched_baseline:
            result.merged_data.append(self.pass_through_baseline(base))
            result.statistics.fallback_used += 1

        for crawl in unmatched_crawled:
            result.merged_data.append(to_merged(crawl))
            result.statistics.successfully_merged += 1

        result.statistics.total_processed = len(result.merged_data)
        result.statistics.quality_score = quality_score(result.merged_data)
        result.statistics.processing_time_ms = (time.perf_counter() - start) * 1000

        logger.info(
            f"✅ Merge complete: {len(result.merged_data)} records, {len(result.conflicts)} conflicts "
            f"({result.statistics.processing_time_ms:.0f}ms)"
        )
        return result

    def _coerce_all(self, records: Sequence[Any], record_type: Type[R], result: MergeResult) -> List[R]:
        coerced = []
        for position, record in enumerate(records):
            try:
                coerced.append(self._coerce(record, record_type))
            except (InvalidShape, TypeError, ValueError) as e:
                logger.warning(f"⚠️ Skipping {record_type.__name__} #{position}: {e}")
                result.errors.append(f"{record_type.__name__} #{position}: {e}")
                result.statistics.invalid_records += 1
        return coerced

    @staticmethod
    def _coerce(record: Any, record_type: Type[R]) -> R:
        if isinstance(record, record_type):
            if record.confidence is not None:
                return replace(record, confidence=clamp_confidence(record.confidence))
            return record
        if isinstance(record, GymRecord):
            return record_type.from_dict(record.to_dict())
        if isinstance(record, Mapping):
            coerced = record_type.from_dict(dict(record))
            if coerced.confidence is not None:
                coerced.confidence = clamp_confidence(coerced.confidence)
            return coerced
        raise InvalidShape(f"expected a record or mapping, got {type(record).__name__}")

    @staticmethod
    def deduplicate(records: Sequence[R]) -> List[R]:
        """Keep the first record for each dedup key."""
        unique: Dict[str, R] = {}
        for record in records:
            unique.setdefault(dedup_key(record.name, record.address), record)
        return list(unique.values())

    async def _match_all(
        self,
        baseline: List[BaselineRecord],
        crawled: List[CrawledRecord],
        result: MergeResult,
    ) -> Tuple[List[Tuple[BaselineRecord, CrawledRecord]], List[BaselineRecord], List[CrawledRecord]]:
        pairs = []
        unmatched_baseline = []
        available = list(crawled)

        for chunk in self._chunks(baseline, self.config.match_chunk_size):
            for base in chunk:
                try:
                    match = self.find_best_match(base, available)
                except Exception as e:
                    logger.warning(f"⚠️ Matching '{base.name}' failed: {e}")
                    result.errors.append(f"match {dedup_key(base.name, base.address)}: {e}")
                    match = None
                if match is None:
                    unmatched_baseline.append(base)
                    continue
                available = [candidate for candidate in available if candidate is not match]
                pairs.append((base, match))
            await asyncio.sleep(0)

        return pairs, unmatched_baseline, available

    def find_best_match(self, base: BaselineRecord, candidates: Sequence[CrawledRecord]) -> Optional[CrawledRecord]:
        """Highest scoring candidate above the duplicate threshold, if any."""
        best = None
        best_score = 0.0
        for candidate in candidates:
            score = match_score(base, candidate)
            if score > self.config.duplicate_threshold and score > best_score:
                best = candidate
                best_score = score
        return best

    def merge_pair(self, base: BaselineRecord, crawled: CrawledRecord) -> Tuple[MergedRecord, List[Conflict]]:
        merged = to_merged(base)

        for name in FILL_FIELDS:
            if not is_present(getattr(merged, name)) and is_present(getattr(crawled, name)):
                setattr(merged, name, getattr(crawled, name))

        for name in FLAG_FIELDS:
            if getattr(merged, name) is None:
                setattr(merged, name, getattr(crawled, name))

        for name in SET_FIELDS:
            setattr(merged, name, union_lists(getattr(base, name), getattr(crawled, name)))

        base_confidence = base.confidence if base.confidence is not None else DEFAULT_BASELINE_CONFIDENCE
        merged.confidence = clamp_confidence(max(base_confidence, crawled.confidence))
        merged.source = merge_sources(base.source, crawled.source)
        merged.service_type = base.service_type or infer_service_type(base.name or crawled.name)
        merged.is_currently_open = base.is_currently_open if base.is_currently_open is not None else True
        merged.crawled_at = crawled.crawled_at
        merged.updated_at = now_iso()

        return merged, self.detect_conflicts(base, crawled)

    @staticmethod
    def detect_conflicts(base: BaselineRecord, crawled: CrawledRecord) -> List[Conflict]:
        key = dedup_key(base.name, base.address)
        conflicts = []
        for name in CONFLICT_FIELDS:
            base_value = getattr(base, name)
            crawled_value = getattr(crawled, name)
            if is_present(base_value) and is_present(crawled_value) and base_value != crawled_value:
                conflicts.append(Conflict(key, name, base_value, crawled_value))
        return conflicts

    @staticmethod
    def pass_through_baseline(base: BaselineRecord) -> MergedRecord:
        merged = to_merged(base)
        now = now_iso()
        merged.source = base.source or BASELINE_FALLBACK_SOURCE
        merged.confidence = base.confidence if base.confidence is not None else DEFAULT_BASELINE_CONFIDENCE
        merged.service_type = base.service_type or infer_service_type(base.name)
        merged.is_currently_open = base.is_currently_open if base.is_currently_open is not None else True
        merged.updated_at = now
        merged.crawled_at = now
        return merged

    @staticmethod
    def _chunks(items: Sequence, size: int):
        for i in range(0, len(items), size):
            yield items[i:i + size]
