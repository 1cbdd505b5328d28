import random
import time
from datetime import datetime
from typing import Dict, List, Optional, Tuple
from loguru import logger

from gymsync.clients.page_fetcher import PageFetcher
from gymsync.config import SearchChainConfig
from gymsync.errors import ChainExhausted, InvalidShape, SourceBlocked
from gymsync.extractors.html_extractor import extract_fields
from gymsync.models import CrawledRecord, SearchAttempt
from gymsync.search.query_set import expand_queries
from gymsync.search.strategies import (
    ENGINES,
    Extractor,
    SearchEngine,
    SearchStrategy,
    default_fallback_strategies,
    search_engine_once,
)
from gymsync.timing import jitter_ms, sleep_ms

PRIMARY_STRATEGY = "primary_search"


class FallbackSearchChain:
    """
    Look a gym up on the primary engine, then walk the fallback strategies.

    The primary strategy tries several query variants and stops at the first
    valid result. A block signal aborts it immediately. Results at or below
    the low-quality confidence keep the chain going; the best candidate seen
    is returned once the strategies run out.
    """

    def __init__(
        self,
        fetcher: Optional[PageFetcher] = None,
        primary_engine: SearchEngine = ENGINES["naver_cafe"],
        fallbacks: Optional[List[SearchStrategy]] = None,
        extractor: Extractor = extract_fields,
        config: Optional[SearchChainConfig] = None,
        rng: Optional[random.Random] = None,
    ):
        self.config = config or SearchChainConfig()
        self.fetcher = fetcher or PageFetcher()
        self.primary_engine = primary_engine
        self.extractor = extractor
        self.rng = rng or random.Random()
        if fallbacks is None:
            fallbacks = default_fallback_strategies(
                self.fetcher,
                primary_engine=primary_engine,
                extractor=extractor,
                basic_info_confidence=self.config.basic_info_confidence,
            )
        self.fallbacks = sorted(fallbacks, key=lambda strategy: strategy.priority)
        self.last_attempts: List[SearchAttempt] = []

    async def search(self, name: str, address: str = "") -> CrawledRecord:
        """Find the best available record for one gym. See search_with_attempts."""
        record, _ = await self.search_with_attempts(name, address)
        return record

    async def search_with_attempts(self, name: str, address: str = "") -> Tuple[CrawledRecord, List[SearchAttempt]]:
        """
        Find the best available record for one gym.

        Args:
            name (str): Gym name.
            address (str): Gym address.

        Returns:
            Tuple[CrawledRecord, List[SearchAttempt]]: First result above the low-quality
            threshold (else the best seen), and every strategy attempt made.

        Raises:
            ChainExhausted: Only if every strategy, basic info included, was unavailable or failed.
        """
        attempts: List[SearchAttempt] = []
        self.last_attempts = attempts
        logger.debug(f"🔍 [{datetime.now().strftime('%H:%M:%S')}] Searching '{name}' ({address})")

        best = await self._run_attempt(attempts, PRIMARY_STRATEGY, self._primary_search, name, address)
        if best is not None and best.confidence > self.config.low_quality_confidence:
            return best, attempts

        for strategy in self.fallbacks:
            if not strategy.is_available():
                logger.debug(f"⏭️ Strategy '{strategy.name}' unavailable, skipping")
                continue

            result = await self._run_attempt(attempts, strategy.name, strategy.execute, name, address)
            if result is None:
                continue
            if result.confidence > self.config.low_quality_confidence:
                logger.debug(f"✅ '{name}' found by {strategy.name} (confidence {result.confidence:.2f})")
                return result, attempts
            if best is None or result.confidence > best.confidence:
                best = result

        if best is None:
            raise ChainExhausted(f"No strategy produced a record for '{name}'")
        logger.debug(f"🔄 Settling on best candidate for '{name}': {best.source} ({best.confidence:.2f})")
        return best, attempts

    async def _run_attempt(
        self, attempts: List[SearchAttempt], engine_name: str, execute, name: str, address: str
    ) -> Optional[CrawledRecord]:
        """Run one strategy, recording a SearchAttempt and absorbing its errors."""
        start = time.perf_counter()
        error = None
        result = None
        try:
            result = await execute(name, address)
            if result is not None and not isinstance(result, CrawledRecord):
                raise InvalidShape(f"{engine_name} returned {type(result).__name__}")
        except SourceBlocked as e:
            logger.warning(f"🚫 {engine_name} blocked for '{name}': {e}")
            error = str(e)
            result = None
        except Exception as e:
            logger.debug(f"⚠️ {engine_name} failed for '{name}': {e}")
            error = str(e)
            result = None

        attempts.append(
            SearchAttempt(
                engine_name=engine_name,
                success=result is not None,
                data=result,
                confidence=result.confidence if result is not None else 0.0,
                processing_time_ms=(time.perf_counter() - start) * 1000,
                error=error,
            )
        )
        return result

    async def _primary_search(self, name: str, address: str) -> Optional[CrawledRecord]:
        """
        Try each query variant on the primary engine.

        SourceBlocked is not caught here so that one block abandons every
        remaining variant.
        """
        queries = expand_queries(name, address)
        for i, query in enumerate(queries):
            logger.debug(f"🔍 {self.primary_engine.name} query {i + 1}/{len(queries)}: {query}")
            try:
                record = await search_engine_once(
                    self.fetcher, self.primary_engine, query, name, address, self.extractor
                )
            except SourceBlocked:
                raise
            except Exception as e:
                logger.debug(f"⚠️ Query '{query}' failed: {e}")
                record = None

            if record is not None and record.is_valid():
                return record

            if i < len(queries) - 1:
                await sleep_ms(jitter_ms(self.config.query_delay, self.rng))

        logger.debug(f"❌ Every {self.primary_engine.name} query failed for '{name}'")
        return None

    def attempt_stats(self) -> Dict[str, float]:
        """Summary of the attempts made by the most recent search."""
        return summarize_attempts(self.last_attempts)


def summarize_attempts(attempts: List[SearchAttempt]) -> Dict[str, float]:
    successes = [a for a in attempts if a.success]
    return {
        "attempts": len(attempts),
        "successes": len(successes),
        "average_confidence": (
            sum(a.confidence for a in successes) / len(successes) if successes else 0.0
        ),
        "average_time_ms": (
            sum(a.processing_time_ms for a in attempts) / len(attempts) if attempts else 0.0
        ),
    }
