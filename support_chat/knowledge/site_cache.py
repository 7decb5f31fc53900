"""In-memory cache of website page text with substring lookup."""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Sequence, Tuple

from .site_fetcher import failure_placeholder

NO_MATCH_TEXT = "No relevant information found on the website."

logger = logging.getLogger("support_chat.cache")

Fetcher = Callable[[str], str]


@dataclass(frozen=True)
class CacheHit:
    """First cached page whose text contains the query."""
    url: str
    snippet: str

    def render(self) -> str:
        return f"Found relevant information on {self.url}:\n{self.snippet}"


class SiteCache:
    """Map of configured URL to its most recently fetched text."""

    def __init__(self, urls: Sequence[str], fetcher: Fetcher, snippet_chars: int = 300) -> None:
        """Purpose: Hold the URL list and fetcher; the cache starts empty.
        Inputs/Outputs: Inputs are URLs (in lookup order), fetcher callable, snippet size.
        Side Effects / State: Creates the lock and empty page map.
        Dependencies: fetcher is usually site_fetcher.fetch_text bound to a timeout.
        Failure Modes: None at init.
        If Removed: Website lookups before the LLM call are unavailable.
        Testing Notes: A fresh cache returns None for every search.
        """
        # Deduplicate while keeping order; the key set must equal this list.
        self._urls: Tuple[str, ...] = tuple(dict.fromkeys(urls))
        self._fetcher = fetcher
        self._snippet_chars = snippet_chars
        self._pages: Dict[str, str] = {}
        self._lock = threading.Lock()
        self._last_refreshed: Optional[float] = None

    @property
    def urls(self) -> Tuple[str, ...]:
        return self._urls

    @property
    def last_refreshed(self) -> Optional[float]:
        return self._last_refreshed

    def refresh(self) -> int:
        """Purpose: Re-fetch every configured URL and replace the whole cache.
        Inputs/Outputs: No inputs; returns the count of successful fetches.
        Side Effects / State: Swaps the page map in one assignment under the lock.
        Dependencies: Calls the fetcher sequentially in URL order.
        Failure Modes: A failing URL stores a placeholder naming it; the cycle continues.
        If Removed: Cached text never updates and stays empty.
        Testing Notes: After refresh the keys equal the URL list even if fetches fail.
        """
        # Build the new map completely before readers can see it.
        pages: Dict[str, str] = {}
        fetched = 0
        for url in self._urls:
            try:
                pages[url] = self._fetcher(url)
                fetched += 1
            except Exception as exc:
                logger.warning("cache refresh failed url=%s error=%s", url, exc)
                pages[url] = failure_placeholder(url)

        with self._lock:
            self._pages = pages
            self._last_refreshed = time.time()
        logger.info("website content cached urls=%d fetched=%d", len(pages), fetched)
        return fetched

    def search(self, query: str) -> Optional[CacheHit]:
        """Purpose: Find the first cached page containing the query, ignoring case.
        Inputs/Outputs: Input is the query text; output is a CacheHit or None.
        Side Effects / State: None; reads one consistent snapshot.
        Dependencies: Uses the current page map in URL order.
        Failure Modes: Blank queries and empty caches return None.
        If Removed: Every message falls through to the LLM.
        Testing Notes: search("scs") and search("SCS") return the same hit.
        """
        # Take the snapshot reference once so a concurrent swap cannot mix versions.
        if not query or not query.strip():
            return None
        with self._lock:
            pages = self._pages
        needle = query.lower()
        for url in self._urls:
            content = pages.get(url)
            if content is not None and needle in content.lower():
                return CacheHit(url=url, snippet=f"{content[: self._snippet_chars]}...")
        return None

    def snapshot(self) -> Dict[str, str]:
        with self._lock:
            return dict(self._pages)
