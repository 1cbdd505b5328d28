"""
Search strategies for the fallback chain.

A strategy is a named, prioritized coroutine `execute(name, address)` that
returns a CrawledRecord or None. Web strategies share one implementation and
differ only by engine and query shape.
"""
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, List, Optional
from urllib.parse import quote_plus
from loguru import logger

from gymsync.clients.page_fetcher import PageFetcher
from gymsync.config import BASIC_INFO_CONFIDENCE
from gymsync.extractors.html_extractor import ExtractedFields, extract_fields
from gymsync.matchers.confidence import score_confidence
from gymsync.models import BASIC_INFO_SOURCE, CrawledRecord
from gymsync.search.query_set import DOMAIN_QUALIFIERS, simplify_name

StrategyFn = Callable[[str, str], Awaitable[Optional[CrawledRecord]]]
Extractor = Callable[[str, str, str], ExtractedFields]


@dataclass(frozen=True)
class SearchEngine:
    name: str
    url_template: str

    def url_for(self, query: str) -> str:
        return self.url_template.format(query=quote_plus(query))


ENGINES: Dict[str, SearchEngine] = {
    "naver_cafe": SearchEngine("naver_cafe", "https://search.naver.com/search.naver?where=cafe&query={query}"),
    "naver": SearchEngine("naver", "https://search.naver.com/search.naver?where=nexearch&query={query}"),
    "naver_blog": SearchEngine("naver_blog", "https://search.naver.com/search.naver?where=blog&query={query}"),
    "daum": SearchEngine("daum", "https://search.daum.net/search?w=tot&q={query}"),
    "google": SearchEngine("google", "https://www.google.com/search?hl=ko&q={query}"),
}


@dataclass
class SearchStrategy:
    name: str
    priority: int
    execute: StrategyFn
    enabled: bool = True

    def is_available(self) -> bool:
        return self.enabled


def build_record(fields: ExtractedFields, name: str, address: str, source: str) -> CrawledRecord:
    """Turn extracted fields into a scored candidate record."""
    confidence = score_confidence(
        phone=fields.phone,
        open_hour=fields.open_hour,
        price=fields.price,
        rating=fields.rating,
        facilities=fields.facilities,
        additional_info=fields.additional_info,
    )
    return CrawledRecord(
        name=name,
        address=address or "",
        phone=fields.phone,
        rating=fields.rating,
        review_count=fields.review_count,
        open_hour=fields.open_hour,
        close_hour=fields.close_hour,
        price=fields.price,
        facilities=list(dict.fromkeys(fields.facilities + fields.additional_info)),
        source=source,
        confidence=confidence,
    )


async def search_engine_once(
    fetcher: PageFetcher,
    engine: SearchEngine,
    query: str,
    name: str,
    address: str,
    extractor: Extractor = extract_fields,
) -> Optional[CrawledRecord]:
    """
    Fetch one result page and extract a candidate from it.

    SourceBlocked from the fetcher propagates; a non-200 page yields None.
    """
    response = await fetcher.fetch(engine.url_for(query), source=engine.name)
    if response.status != 200:
        logger.debug(f"⚠️ {engine.name} answered HTTP {response.status} for '{query}'")
        return None
    fields = extractor(response.body, name, address)
    return build_record(fields, name, address, engine.name)


def web_search(
    fetcher: PageFetcher,
    engine: SearchEngine,
    query_for: Callable[[str, str], str],
    extractor: Extractor = extract_fields,
) -> StrategyFn:
    """Strategy that runs a single query on one engine and keeps only valid results."""
    async def execute(name: str, address: str) -> Optional[CrawledRecord]:
        query = query_for(name, address)
        record = await search_engine_once(fetcher, engine, query, name, address, extractor)
        if record is not None and record.is_valid():
            return record
        return None

    return execute


def basic_info(confidence: float = BASIC_INFO_CONFIDENCE) -> StrategyFn:
    """Strategy that always succeeds with the name and address alone."""
    async def execute(name: str, address: str) -> Optional[CrawledRecord]:
        return CrawledRecord(
            name=name,
            address=address or "",
            source=BASIC_INFO_SOURCE,
            confidence=confidence,
        )

    return execute


def unavailable() -> StrategyFn:
    async def execute(name: str, address: str) -> Optional[CrawledRecord]:
        return None

    return execute


def simplified_query(name: str, address: str) -> str:
    return f"{simplify_name(name)} {DOMAIN_QUALIFIERS[0]}"


def qualified_query(name: str, address: str) -> str:
    return f"{name} {DOMAIN_QUALIFIERS[0]}"


def default_fallback_strategies(
    fetcher: PageFetcher,
    primary_engine: SearchEngine = ENGINES["naver_cafe"],
    extractor: Extractor = extract_fields,
    basic_info_confidence: float = BASIC_INFO_CONFIDENCE,
) -> List[SearchStrategy]:
    """
    Fallbacks tried after the primary strategy, lowest priority number first.

    The cached-data and external-API slots are reserved and always unavailable.
    """
    return [
        SearchStrategy("simplified_query", 1, web_search(fetcher, primary_engine, simplified_query, extractor)),
        SearchStrategy("general_search", 2, web_search(fetcher, ENGINES["naver"], qualified_query, extractor)),
        SearchStrategy("blog_search", 3, web_search(fetcher, ENGINES["naver_blog"], qualified_query, extractor)),
        SearchStrategy("alternate_engine", 4, web_search(fetcher, ENGINES["daum"], qualified_query, extractor)),
        SearchStrategy("basic_info", 5, basic_info(basic_info_confidence)),
        SearchStrategy("cached_data", 6, unavailable(), enabled=False),
        SearchStrategy("external_api", 7, unavailable(), enabled=False),
    ]
