"""Client singletons for external page fetching."""
from gymsync.clients.page_fetcher import FetchResponse, PageFetcher

__all__ = ["FetchResponse", "PageFetcher"]
