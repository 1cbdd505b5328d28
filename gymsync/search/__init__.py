"""Priority-ordered fallback search over web sources."""
from gymsync.search.fallback_chain import FallbackSearchChain
from gymsync.search.strategies import ENGINES, SearchEngine, SearchStrategy, default_fallback_strategies

__all__ = [
    "ENGINES",
    "FallbackSearchChain",
    "SearchEngine",
    "SearchStrategy",
    "default_fallback_strategies",
]
