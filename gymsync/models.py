"""
Typed data models for the gym crawl and reconciliation pipeline.
All data structures used throughout the codebase should be defined here.
"""
import re
from dataclasses import asdict, dataclass, field, fields
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

NO_INFO = "정보 없음"
DEFAULT_FACILITIES = ["기본 헬스장"]
FALLBACK_SOURCE = "enhanced_fallback"
BASELINE_FALLBACK_SOURCE = "gyms_raw_fallback"
BASIC_INFO_SOURCE = "basic_info"

# camelCase keys that the generic conversion gets wrong
_KEY_ALIASES = {
    "hasGX": "has_gx",
    "hasPT": "has_pt",
    "hasGroupPT": "has_group_pt",
    "is24Hours": "is_24_hours",
}
_CAMEL_BOUNDARY = re.compile(r"(?<!^)(?=[A-Z])")


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _snake_case(key: str) -> str:
    if key in _KEY_ALIASES:
        return _KEY_ALIASES[key]
    return _CAMEL_BOUNDARY.sub("_", key).lower()


def _to_float(value) -> Optional[float]:
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _to_int(value) -> Optional[int]:
    number = _to_float(value)
    return int(number) if number is not None else None


def _to_str_list(value) -> List[str]:
    if not value:
        return []
    if isinstance(value, str):
        return [value]
    if isinstance(value, (list, tuple, set)):
        return [str(item) for item in value if item]
    return [str(value)]


def clamp_confidence(value: Optional[float]) -> float:
    if value is None:
        return 0.0
    return max(0.0, min(float(value), 1.0))


@dataclass
class GymRecord:
    """Fields shared by baseline, crawled and merged gym records."""
    name: str
    address: str = ""
    phone: Optional[str] = None
    rating: Optional[float] = None
    review_count: Optional[int] = None
    open_hour: Optional[str] = None
    close_hour: Optional[str] = None
    price: Optional[str] = None
    membership_price: Optional[str] = None
    pt_price: Optional[str] = None
    gx_price: Optional[str] = None
    day_pass_price: Optional[str] = None
    price_details: Optional[str] = None
    minimum_price: Optional[str] = None
    discount_info: Optional[str] = None
    facilities: List[str] = field(default_factory=list)
    services: List[str] = field(default_factory=list)
    website: Optional[str] = None
    instagram: Optional[str] = None
    facebook: Optional[str] = None
    has_gx: Optional[bool] = None
    has_pt: Optional[bool] = None
    has_group_pt: Optional[bool] = None
    is_24_hours: Optional[bool] = None
    has_parking: Optional[bool] = None
    has_shower: Optional[bool] = None
    service_type: Optional[str] = None
    source: Optional[str] = None
    confidence: Optional[float] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]):
        """
        Build a record from plain data, accepting camelCase or snake_case keys.
        Unknown keys are ignored; unparseable numbers become None.
        """
        known = {f.name for f in fields(cls)}
        values: Dict[str, Any] = {}
        for key, value in data.items():
            name = _snake_case(str(key))
            if name in known:
                values[name] = value

        values["name"] = str(values.get("name") or "")
        values["address"] = str(values.get("address") or "")
        values["rating"] = _to_float(values.get("rating"))
        values["review_count"] = _to_int(values.get("review_count"))
        values["confidence"] = _to_float(values.get("confidence"))
        values["facilities"] = _to_str_list(values.get("facilities"))
        values["services"] = _to_str_list(values.get("services"))
        return cls(**values)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class BaselineRecord(GymRecord):
    """Authoritative seed record. business_status, management_number and site_area are never overwritten."""
    id: Optional[Union[int, str]] = None
    business_status: Optional[str] = None
    management_number: Optional[str] = None
    site_area: Optional[str] = None
    is_currently_open: Optional[bool] = None


@dataclass
class CrawledRecord(GymRecord):
    """Candidate record produced by one search strategy."""
    confidence: float = 0.0
    crawled_at: str = field(default_factory=now_iso)

    def __post_init__(self):
        self.confidence = clamp_confidence(self.confidence)

    @property
    def has_details(self) -> bool:
        return bool(self.phone or self.open_hour or self.price or self.facilities)

    def is_valid(self) -> bool:
        """A usable result has a name and at least one descriptive field."""
        return bool(self.name) and self.has_details

    @classmethod
    def fallback_for(cls, item, confidence: float, source: str = FALLBACK_SOURCE) -> "CrawledRecord":
        """Synthesize a placeholder record so an item that failed every attempt is never dropped."""
        def get(attr):
            if isinstance(item, dict):
                return item.get(attr)
            return getattr(item, attr, None)

        return cls(
            name=str(get("name") or ""),
            address=str(get("address") or ""),
            phone=get("phone") or NO_INFO,
            rating=get("rating"),
            review_count=get("review_count"),
            open_hour=get("open_hour") or NO_INFO,
            close_hour=get("close_hour") or NO_INFO,
            price=get("price") or NO_INFO,
            membership_price=get("membership_price") or NO_INFO,
            pt_price=get("pt_price") or NO_INFO,
            gx_price=get("gx_price") or NO_INFO,
            day_pass_price=get("day_pass_price") or NO_INFO,
            price_details=get("price_details") or NO_INFO,
            minimum_price=get("minimum_price") or NO_INFO,
            discount_info=get("discount_info") or NO_INFO,
            facilities=_to_str_list(get("facilities")) or list(DEFAULT_FACILITIES),
            services=_to_str_list(get("services")) or [NO_INFO],
            website=get("website") or NO_INFO,
            instagram=get("instagram") or NO_INFO,
            facebook=get("facebook") or NO_INFO,
            service_type=get("service_type"),
            source=source,
            confidence=confidence,
        )


@dataclass
class MergedRecord(BaselineRecord):
    """Reconciled record; source lists every contributing source joined with ' + '."""
    crawled_at: Optional[str] = None
    updated_at: Optional[str] = None


@dataclass
class CandidateStub:
    """Input business to look up on the web."""
    name: str
    address: str = ""
    service_type: Optional[str] = None
    phone: Optional[str] = None


@dataclass
class SearchAttempt:
    """Outcome of a single strategy invocation inside the fallback chain."""
    engine_name: str
    success: bool
    data: Optional[CrawledRecord] = None
    confidence: float = 0.0
    processing_time_ms: float = 0.0
    error: Optional[str] = None


@dataclass
class Conflict:
    """Audit entry for a field both sides filled differently. Never changes the merged value."""
    record_key: str
    field: str
    baseline_value: Any
    crawled_value: Any
    resolution: str = "baseline wins"


@dataclass
class BatchResult:
    results: List[CrawledRecord]
    total_batches: int
    successful_batches: int
    failed_batches: int
    average_batch_size: float
    processing_time_ms: float
    final_batch_size: int
    cancelled: bool = False


@dataclass
class MergeStatistics:
    total_processed: int = 0
    successfully_merged: int = 0
    fallback_used: int = 0
    duplicates_removed: int = 0
    quality_score: float = 0.0
    processing_time_ms: float = 0.0
    invalid_records: int = 0


@dataclass
class MergeResult:
    merged_data: List[MergedRecord] = field(default_factory=list)
    statistics: MergeStatistics = field(default_factory=MergeStatistics)
    conflicts: List[Conflict] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
