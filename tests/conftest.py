"""Shared fixtures: fake collaborators, in-memory database, configured settings."""

from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence

import pytest
from sqlalchemy import insert

from support_chat.catalog import build_engine, create_schema, products_table
from support_chat.config import BASE_DIR, Settings
from support_chat.errors import CompletionError, ContentFetchError
from support_chat.models import ConversationMessage

SITE_URLS = (
    "https://example.test/",
    "https://example.test/scs.php",
    "https://example.test/rifles.php",
)

SITE_PAGES = {
    "https://example.test/": "Welcome to JP Rifles. We build competition rifles and parts.",
    "https://example.test/scs.php": "The Silent Captured Spring (SCS) system replaces the carbine buffer. " + "x" * 400,
    "https://example.test/rifles.php": "Our rifles ship with the JP SCS installed.",
}


class FakeFetcher:
    """Serve page text from a dict; listed URLs fail like a dead server."""

    def __init__(self, pages: Dict[str, str], failing: Iterable[str] = ()) -> None:
        self.pages = dict(pages)
        self.failing = set(failing)
        self.calls: List[str] = []

    def __call__(self, url: str) -> str:
        self.calls.append(url)
        if url in self.failing or url not in self.pages:
            raise ContentFetchError(url, "connection refused")
        return self.pages[url]


class FakeCompletion:
    """Record the history it was given and return a canned reply."""

    def __init__(self, reply: str = "JP Rifles is happy to help.", error: Optional[Exception] = None) -> None:
        self.reply = reply
        self.error = error
        self.calls: List[List[ConversationMessage]] = []

    def __call__(self, messages: Sequence[ConversationMessage]) -> str:
        self.calls.append(list(messages))
        if self.error is not None:
            raise self.error
        return self.reply


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(
        gemini_api_key="test-key",
        gemini_model="gemini-2.5-flash",
        max_output_tokens=512,
        temperature=0.2,
        database_url="sqlite://",
        content_urls=SITE_URLS,
        cache_refresh_hours=24,
        snippet_chars=300,
        fetch_timeout=5,
        brand_names=("JP Rifles", "JP Enterprises"),
        max_sessions=None,
        max_history_messages=None,
        rollback_failed_turns=False,
        data_dir=tmp_path / "data",
        sessions_path=tmp_path / "data" / "sessions.json",
        prompts_dir=BASE_DIR / "prompts",
        port=3000,
        log_level="INFO",
        cors_origins=("*",),
    )


@pytest.fixture
def engine():
    engine = build_engine("sqlite://")
    create_schema(engine)
    with engine.begin() as conn:
        conn.execute(
            insert(products_table),
            [
                {"name": "JPSCS2-15", "description": "Silent Captured Spring for AR-15", "is_active": True},
                {"name": "JP-5 Barrel", "description": "Match grade barrel", "is_active": True},
                {"name": "Old Trigger", "description": "Discontinued", "is_active": False},
            ],
        )
    yield engine
    engine.dispose()


@pytest.fixture
def fetcher() -> FakeFetcher:
    return FakeFetcher(SITE_PAGES)


@pytest.fixture
def completion() -> FakeCompletion:
    return FakeCompletion()


@pytest.fixture
def failing_completion() -> FakeCompletion:
    return FakeCompletion(error=CompletionError("quota exceeded"))
