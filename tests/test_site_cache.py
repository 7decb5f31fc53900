"""Tests for the website content cache."""

import threading

from conftest import SITE_PAGES, SITE_URLS, FakeFetcher

from support_chat.knowledge.site_cache import CacheHit, SiteCache
from support_chat.knowledge.site_fetcher import failure_placeholder


def make_cache(fetcher, urls=SITE_URLS, snippet_chars=300):
    return SiteCache(urls, fetcher, snippet_chars=snippet_chars)


class TestRefresh:
    def test_keys_equal_url_list(self, fetcher):
        cache = make_cache(fetcher)
        assert cache.refresh() == len(SITE_URLS)
        assert list(cache.snapshot()) == list(SITE_URLS)
        assert fetcher.calls == list(SITE_URLS)

    def test_failed_url_stores_placeholder_and_continues(self):
        fetcher = FakeFetcher(SITE_PAGES, failing={SITE_URLS[1]})
        cache = make_cache(fetcher)
        assert cache.refresh() == 2
        pages = cache.snapshot()
        assert list(pages) == list(SITE_URLS)
        assert pages[SITE_URLS[1]] == failure_placeholder(SITE_URLS[1])
        assert pages[SITE_URLS[2]] == SITE_PAGES[SITE_URLS[2]]

    def test_every_url_failing_keeps_key_set(self):
        cache = make_cache(FakeFetcher({}, failing=SITE_URLS))
        assert cache.refresh() == 0
        assert set(cache.snapshot()) == set(SITE_URLS)

    def test_refresh_replaces_whole_map(self, fetcher):
        cache = make_cache(fetcher)
        cache.refresh()
        fetcher.pages[SITE_URLS[0]] = "Fresh homepage text"
        cache.refresh()
        assert cache.snapshot()[SITE_URLS[0]] == "Fresh homepage text"
        assert cache.last_refreshed is not None

    def test_duplicate_urls_collapse(self, fetcher):
        cache = make_cache(fetcher, urls=[SITE_URLS[0], SITE_URLS[0], SITE_URLS[2]])
        cache.refresh()
        assert list(cache.snapshot()) == [SITE_URLS[0], SITE_URLS[2]]


class TestSearch:
    def test_empty_cache_misses(self, fetcher):
        assert make_cache(fetcher).search("SCS") is None

    def test_case_insensitive(self, fetcher):
        cache = make_cache(fetcher)
        cache.refresh()
        assert cache.search("scs") == cache.search("SCS")
        assert cache.search("scs") is not None

    def test_first_match_in_url_order(self, fetcher):
        cache = make_cache(fetcher)
        cache.refresh()
        hit = cache.search("scs")
        assert hit.url == SITE_URLS[1]

    def test_snippet_capped_with_ellipsis(self, fetcher):
        cache = make_cache(fetcher)
        cache.refresh()
        hit = cache.search("captured spring")
        assert hit.snippet == SITE_PAGES[SITE_URLS[1]][:300] + "..."
        assert len(hit.snippet) == 303

    def test_short_page_snippet_is_whole_text(self, fetcher):
        cache = make_cache(fetcher)
        cache.refresh()
        hit = cache.search("competition rifles")
        assert hit == CacheHit(url=SITE_URLS[0], snippet=SITE_PAGES[SITE_URLS[0]] + "...")
        assert hit.render() == f"Found relevant information on {SITE_URLS[0]}:\n{hit.snippet}"

    def test_absent_query_misses(self, fetcher):
        cache = make_cache(fetcher)
        cache.refresh()
        assert cache.search("q8Zk3vX1pL0mN7bR4tY6wE2uI9oA5sDf") is None

    def test_blank_query_misses(self, fetcher):
        cache = make_cache(fetcher)
        cache.refresh()
        assert cache.search("   ") is None

    def test_search_during_refresh_sees_whole_snapshot(self):
        started = threading.Event()
        release = threading.Event()

        class SlowFetcher(FakeFetcher):
            def __call__(self, url):
                if url == SITE_URLS[-1]:
                    started.set()
                    release.wait(timeout=5)
                return "new " + super().__call__(url)

        cache = make_cache(FakeFetcher(SITE_PAGES))
        cache.refresh()
        cache._fetcher = SlowFetcher(SITE_PAGES)
        worker = threading.Thread(target=cache.refresh)
        worker.start()
        assert started.wait(timeout=5)
        during = cache.snapshot()
        release.set()
        worker.join(timeout=5)
        assert not any(text.startswith("new ") for text in during.values())
        assert all(text.startswith("new ") for text in cache.snapshot().values())
