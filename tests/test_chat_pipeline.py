"""Tests for per-message routing and state handling."""

import json

import pytest
from conftest import SITE_URLS, FakeCompletion

from support_chat.catalog import ProductCatalog
from support_chat.chat_pipeline import (
    ROUTE_CATALOG,
    ROUTE_LLM,
    ROUTE_RECOMMENDATION,
    ROUTE_SITE_CACHE,
    ChatPipeline,
)
from support_chat.errors import CompletionError
from support_chat.finalizer import ResponseFinalizer
from support_chat.interaction_log import InteractionLog
from support_chat.knowledge.site_cache import SiteCache
from support_chat.recommendation import CLARIFYING_QUESTIONS
from support_chat.session_store import DEFAULT_SESSION_ID, SessionStore

SEED = [("system", "You are a helpful assistant for JP Rifles.")]


@pytest.fixture
def site_cache(fetcher):
    cache = SiteCache(SITE_URLS, fetcher)
    cache.refresh()
    return cache


@pytest.fixture
def interaction_log(tmp_path):
    return InteractionLog(tmp_path / "interactions.jsonl", tmp_path / "errors.log")


def build_pipeline(engine, site_cache, completion, interaction_log, rollback=False):
    return ChatPipeline(
        sessions=SessionStore(SEED),
        site_cache=site_cache,
        catalog=ProductCatalog(engine),
        finalizer=ResponseFinalizer(("JP Rifles", "JP Enterprises")),
        completion=completion,
        interaction_log=interaction_log,
        rollback_failed_turns=rollback,
    )


class TestRouting:
    def test_recommendation_without_attributes_asks_six_questions(
        self, engine, site_cache, completion, interaction_log
    ):
        pipeline = build_pipeline(engine, site_cache, completion, interaction_log)
        turn = pipeline.handle_message(None, "Can you recommend a product?")
        assert turn.route == ROUTE_RECOMMENDATION
        assert turn.answer_text == " ".join(CLARIFYING_QUESTIONS.values())
        assert completion.calls == []

    def test_recommendation_with_attributes(self, engine, site_cache, completion, interaction_log):
        pipeline = build_pipeline(engine, site_cache, completion, interaction_log)
        attributes = {
            "frame": "AR-15",
            "config": True,
            "suppressed": True,
            "subsonic": False,
            "lawFolder": False,
            "lowMass": False,
        }
        turn = pipeline.handle_message("alice", "Which buffer do you recommend?", attributes)
        assert turn.answer_text == "Based on your setup, we recommend the AR-15 H2 SCS: Heavier buffer for AR-15"

    def test_catalog_listing(self, engine, site_cache, completion, interaction_log):
        pipeline = build_pipeline(engine, site_cache, completion, interaction_log)
        turn = pipeline.handle_message(None, "Show me your product list")
        assert turn.route == ROUTE_CATALOG
        assert turn.answer_text.startswith("Here are our active products:\n")

    def test_site_cache_hit_is_finalized(self, engine, site_cache, completion, interaction_log):
        pipeline = build_pipeline(engine, site_cache, completion, interaction_log)
        turn = pipeline.handle_message(None, "competition rifles")
        assert turn.route == ROUTE_SITE_CACHE
        assert turn.answer_text.startswith(f"Found relevant information on {SITE_URLS[0]}:")
        assert "JP Rifles" not in turn.answer_text
        assert completion.calls == []

    def test_llm_fallback_gets_full_history(self, engine, site_cache, completion, interaction_log):
        pipeline = build_pipeline(engine, site_cache, completion, interaction_log)
        turn = pipeline.handle_message("alice", "Do you ship to Canada?")
        assert turn.route == ROUTE_LLM
        assert turn.answer_text == "We are happy to help."
        sent = completion.calls[0]
        assert [(m.role, m.content) for m in sent] == [SEED[0], ("user", "Do you ship to Canada?")]

    def test_second_llm_turn_replays_previous_exchange(self, engine, site_cache, completion, interaction_log):
        pipeline = build_pipeline(engine, site_cache, completion, interaction_log)
        pipeline.handle_message("alice", "Do you ship to Canada?")
        pipeline.handle_message("alice", "How long does it take?")
        roles = [m.role for m in completion.calls[1]]
        assert roles == ["system", "user", "assistant", "user"]


class TestState:
    def test_turns_are_recorded(self, engine, site_cache, completion, interaction_log):
        pipeline = build_pipeline(engine, site_cache, completion, interaction_log)
        pipeline.handle_message(None, "Can you recommend a product?")
        messages = pipeline._sessions.get_messages(DEFAULT_SESSION_ID)
        assert [m.role for m in messages] == ["system", "user", "assistant"]

    def test_reset_restores_seed(self, engine, site_cache, completion, interaction_log):
        pipeline = build_pipeline(engine, site_cache, completion, interaction_log)
        pipeline.handle_message("alice", "Do you ship to Canada?")
        pipeline.reset("alice")
        assert [(m.role, m.content) for m in pipeline._sessions.get_messages("alice")] == SEED

    def test_interaction_log_line(self, engine, site_cache, completion, interaction_log, tmp_path):
        pipeline = build_pipeline(engine, site_cache, completion, interaction_log)
        pipeline.handle_message("alice", "Do you ship to Canada?")
        lines = (tmp_path / "interactions.jsonl").read_text(encoding="utf-8").splitlines()
        entry = json.loads(lines[0])
        assert entry["session_id"] == "alice"
        assert entry["route"] == ROUTE_LLM
        assert entry["response"] == "We are happy to help."


class TestCompletionFailure:
    def test_failure_keeps_user_turn_by_default(
        self, engine, site_cache, failing_completion, interaction_log, tmp_path
    ):
        pipeline = build_pipeline(engine, site_cache, failing_completion, interaction_log)
        with pytest.raises(CompletionError):
            pipeline.handle_message("alice", "Do you ship to Canada?")
        messages = pipeline._sessions.get_messages("alice")
        assert [m.role for m in messages] == ["system", "user"]
        errors = (tmp_path / "errors.log").read_text(encoding="utf-8")
        assert "session=alice" in errors and "quota exceeded" in errors

    def test_failure_rolls_back_when_configured(self, engine, site_cache, failing_completion, interaction_log):
        pipeline = build_pipeline(engine, site_cache, failing_completion, interaction_log, rollback=True)
        with pytest.raises(CompletionError):
            pipeline.handle_message("alice", "Do you ship to Canada?")
        assert [m.role for m in pipeline._sessions.get_messages("alice")] == ["system"]

    def test_unexpected_error_is_wrapped(self, engine, site_cache, interaction_log):
        pipeline = build_pipeline(engine, site_cache, FakeCompletion(error=TimeoutError("slow")), interaction_log)
        with pytest.raises(CompletionError):
            pipeline.handle_message("alice", "Do you ship to Canada?")

    def test_empty_reply_is_a_failure(self, engine, site_cache, interaction_log):
        pipeline = build_pipeline(engine, site_cache, FakeCompletion(reply="   "), interaction_log)
        with pytest.raises(CompletionError):
            pipeline.handle_message("alice", "Do you ship to Canada?")
