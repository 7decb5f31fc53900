"""Per-message orchestration for the support assistant.

Routing contract (first match wins):
    catalog: message asks for the product list; reply is the active catalog.
    recommendation: message mentions "recommend" or "product"; the reply is the
        clarifying questions or the SCS recommendation.
    site_cache: the whole message occurs in a cached website page.
    llm: everything else goes to the completion client with full history.

The user turn is appended before routing and the assistant turn after it.
The whole turn runs under the session lock so concurrent requests for the
same session cannot interleave.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, List, Mapping, Optional, Sequence

from .catalog import ProductCatalog, is_catalog_request
from .errors import CompletionError
from .finalizer import ResponseFinalizer
from .interaction_log import InteractionLog
from .knowledge.site_cache import SiteCache
from .models import ConversationMessage
from .pipeline_runtime import PipelineRunner, PipelineStep
from .recommendation import (
    RecommendationAttributes,
    build_recommendation_reply,
    is_recommendation_request,
)
from .session_store import DEFAULT_SESSION_ID, SessionStore

logger = logging.getLogger("support_chat.chat")

ROUTE_RECOMMENDATION = "recommendation"
ROUTE_CATALOG = "catalog"
ROUTE_SITE_CACHE = "site_cache"
ROUTE_LLM = "llm"

# Routes whose text comes from outside and needs the finalizer.
FINALIZED_ROUTES = {ROUTE_SITE_CACHE, ROUTE_LLM}

Completion = Callable[[Sequence[ConversationMessage]], str]


@dataclass
class ChatTurn:
    """Mutable context passed through each pipeline step."""
    session_id: str
    user_message: str
    attributes: RecommendationAttributes
    route: str = ""
    answer_text: str = ""


class ChatPipeline:
    def __init__(
        self,
        sessions: SessionStore,
        site_cache: SiteCache,
        catalog: ProductCatalog,
        finalizer: ResponseFinalizer,
        completion: Completion,
        interaction_log: InteractionLog,
        rollback_failed_turns: bool = False,
    ) -> None:
        """Purpose: Wire the routing sources and build the ordered step runner.
        Inputs/Outputs: Inputs are the stores, reply sources, and failure policy; no return.
        Side Effects / State: Constructs a PipelineRunner with the chat steps.
        Dependencies: PipelineRunner/PipelineStep and step methods on this class.
        Failure Modes: None at init; runtime errors surface from handle_message.
        If Removed: The chat endpoint has nothing to call.
        Testing Notes: Build with a fake completion callable and in-memory stores.
        """
        # Store dependencies and build the step runner.
        self._sessions = sessions
        self._site_cache = site_cache
        self._catalog = catalog
        self._finalizer = finalizer
        self._completion = completion
        self._interaction_log = interaction_log
        self._rollback_failed_turns = rollback_failed_turns
        self._runner: PipelineRunner[ChatTurn] = PipelineRunner(
            steps=[
                PipelineStep("record_user_turn", self._step_record_user_turn),
                PipelineStep("route", self._step_route),
                PipelineStep("generation", self._step_generation, skip_if=lambda turn: bool(turn.route)),
                PipelineStep("finalize", self._step_finalize),
            ]
        )

    def handle_message(
        self,
        session_id: Optional[str],
        user_message: str,
        attributes: Optional[Mapping[str, Any]] = None,
    ) -> ChatTurn:
        """Purpose: Answer one user message within its session.
        Inputs/Outputs: Inputs are session id (None means the shared default session),
            message text, and optional recommendation attributes; output is the ChatTurn.
        Side Effects / State: Appends user and assistant turns; writes the interaction log.
        Dependencies: SessionStore.lock and the step runner.
        Failure Modes: CompletionError propagates after the error log line is written;
            the user turn is kept unless rollback_failed_turns is set.
        If Removed: No chat turn can be processed.
        Testing Notes: "Can you recommend a product?" yields the six questions.
        """
        # Serialize the whole turn on the session lock.
        turn = ChatTurn(
            session_id=session_id or DEFAULT_SESSION_ID,
            user_message=user_message,
            attributes=RecommendationAttributes.from_payload(attributes),
        )
        with self._sessions.lock(turn.session_id):
            logger.info("session=%s question=%s", turn.session_id, user_message)
            try:
                self._runner.run(turn)
            except Exception as exc:
                self._interaction_log.record_error(turn.session_id, exc)
                if self._rollback_failed_turns:
                    self._sessions.pop_last(turn.session_id, "user")
                    logger.info("session=%s user turn rolled back", turn.session_id)
                raise
        return turn

    def reset(self, session_id: Optional[str]) -> None:
        """Reset a session (or the default one) to its seed messages."""
        target = session_id or DEFAULT_SESSION_ID
        with self._sessions.lock(target):
            self._sessions.clear(target)
        logger.info("session=%s cleared", target)

    def _step_record_user_turn(self, turn: ChatTurn) -> None:
        self._sessions.append(turn.session_id, "user", turn.user_message)

    def _step_route(self, turn: ChatTurn) -> None:
        """Purpose: Try the local reply sources in priority order.
        Inputs/Outputs: Input is ChatTurn; sets route and answer_text on a match.
        Side Effects / State: May query the catalog database.
        Dependencies: recommendation engine, ProductCatalog, SiteCache.
        Failure Modes: Catalog failures are already recovered into an apology.
        If Removed: Every message costs an LLM call.
        Testing Notes: A cache hit leaves generation skipped.
        """
        # Catalog phrases outrank the bare word "product".
        message = turn.user_message
        if is_recommendation_request(message) and not is_catalog_request(message):
            turn.route = ROUTE_RECOMMENDATION
            turn.answer_text = build_recommendation_reply(turn.attributes)
        elif is_catalog_request(message):
            turn.route = ROUTE_CATALOG
            turn.answer_text = self._catalog.listing_reply()
        else:
            hit = self._site_cache.search(message)
            if hit is not None:
                turn.route = ROUTE_SITE_CACHE
                turn.answer_text = hit.render()
        if turn.route:
            logger.info("session=%s route=%s", turn.session_id, turn.route)

    def _step_generation(self, turn: ChatTurn) -> None:
        """Purpose: Ask the completion client for a reply over the full history.
        Inputs/Outputs: Input is ChatTurn; sets route "llm" and answer_text.
        Side Effects / State: One remote completion call.
        Dependencies: The injected completion callable.
        Failure Modes: Raises CompletionError for failures and empty replies.
        If Removed: Messages missing every local route get no answer.
        Testing Notes: The fake completion receives the seed plus the new user turn.
        """
        # Replay the history exactly as stored.
        history: List[ConversationMessage] = self._sessions.get_messages(turn.session_id)
        try:
            reply = self._completion(history)
        except CompletionError:
            raise
        except Exception as exc:
            raise CompletionError(str(exc)) from exc
        if not reply or not reply.strip():
            raise CompletionError("Empty completion")
        turn.route = ROUTE_LLM
        turn.answer_text = reply.strip()
        logger.info("session=%s route=%s", turn.session_id, turn.route)

    def _step_finalize(self, turn: ChatTurn) -> None:
        """Purpose: Post-process the reply, record it, and log the exchange.
        Inputs/Outputs: Input is ChatTurn; rewrites answer_text for external routes.
        Side Effects / State: Appends the assistant turn and one interaction log line.
        Dependencies: ResponseFinalizer, SessionStore, InteractionLog.
        Failure Modes: Session persistence IO errors propagate.
        If Removed: Replies are neither stored nor cleaned up.
        Testing Notes: LLM text "JP Rifles is ready" is stored as "We are ready".
        """
        # Local replies are already written in the first person.
        if turn.route in FINALIZED_ROUTES:
            turn.answer_text = self._finalizer.finalize(turn.answer_text)
        self._sessions.append(turn.session_id, "assistant", turn.answer_text)
        self._interaction_log.record_exchange(
            turn.session_id, turn.route, turn.user_message, turn.answer_text
        )
        logger.info("session=%s answer=%s", turn.session_id, turn.answer_text)
