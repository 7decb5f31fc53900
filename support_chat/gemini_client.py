from __future__ import annotations

import logging
from typing import Dict, List, Optional, Sequence, Tuple

import google.generativeai as genai

from .config import Settings
from .errors import CompletionError
from .models import ConversationMessage

logger = logging.getLogger("support_chat.llm")

ROLE_MAP = {"user": "user", "assistant": "model"}


class GeminiClient:
    """Thin wrapper around the Gemini SDK with model caching."""

    def __init__(self, settings: Settings) -> None:
        """Purpose: Configure the Gemini SDK and initialize the model cache.
        Inputs/Outputs: Input is Settings; no return value.
        Side Effects / State: Configures the SDK API key and caches model instances.
        Dependencies: Uses google.generativeai and Settings from config.
        Failure Modes: Raises ValueError if the API key or model name is missing.
        If Removed: Messages that miss every local route cannot be answered.
        Testing Notes: Validate missing key raises ValueError.
        """
        # Configure API key and remember generation defaults.
        if not settings.gemini_api_key:
            raise ValueError("GEMINI_API_KEY is required")
        self._default_model = _normalize_model_name(settings.gemini_model)
        if not self._default_model:
            raise ValueError("Gemini model name is required")
        genai.configure(api_key=settings.gemini_api_key)
        self._max_output_tokens = settings.max_output_tokens
        self._temperature = settings.temperature
        self._models: Dict[Tuple[str, str], genai.GenerativeModel] = {}

    def complete(
        self,
        messages: Sequence[ConversationMessage],
        model: Optional[str] = None,
        max_output_tokens: Optional[int] = None,
    ) -> str:
        """Purpose: Generate the next assistant turn from the conversation history.
        Inputs/Outputs: Input is the ordered history; returns stripped reply text.
        Side Effects / State: One remote call; may add a model to the cache.
        Dependencies: to_gemini_contents and GenerativeModel.generate_content.
        Failure Modes: SDK errors and empty replies raise CompletionError.
        If Removed: The chat pipeline has no fallback beyond the local routes.
        Testing Notes: Inject a fake completion in pipeline tests; this class needs a key.
        """
        # Split system text from dialogue turns and call the cached model.
        model_name = _normalize_model_name(model) if model else self._default_model
        system_instruction, contents = to_gemini_contents(messages)
        if not contents:
            raise CompletionError("No user or assistant turns to send")
        cache_key = (model_name, system_instruction)
        if cache_key not in self._models:
            self._models[cache_key] = genai.GenerativeModel(
                model_name,
                system_instruction=system_instruction or None,
            )
        try:
            response = self._models[cache_key].generate_content(
                contents,
                generation_config={
                    "temperature": self._temperature,
                    "max_output_tokens": max_output_tokens or self._max_output_tokens,
                },
            )
            text: Optional[str] = getattr(response, "text", None)
        except Exception as exc:
            logger.error("completion failed model=%s error=%s", model_name, exc)
            raise CompletionError(str(exc)) from exc
        if not text or not text.strip():
            raise CompletionError("Empty completion")
        return text.strip()


def to_gemini_contents(messages: Sequence[ConversationMessage]) -> Tuple[str, List[dict]]:
    """Purpose: Convert role-tagged history into Gemini's system text plus contents.
    Inputs/Outputs: Input is ConversationMessage list; output is (system_instruction, contents).
    Side Effects / State: None.
    Dependencies: ROLE_MAP; used by GeminiClient.complete.
    Failure Modes: None; unknown roles are skipped.
    If Removed: History cannot be replayed to the model.
    Testing Notes: assistant turns become role "model"; system text is joined.
    """
    # System turns become the instruction; the rest keep their order.
    system_parts: List[str] = []
    contents: List[dict] = []
    for message in messages:
        if message.role == "system":
            system_parts.append(message.content)
            continue
        role = ROLE_MAP.get(message.role)
        if not role:
            continue
        contents.append({"role": role, "parts": [{"text": message.content}]})
    return "\n\n".join(system_parts), contents


def _normalize_model_name(name: Optional[str]) -> str:
    """Strip whitespace and a leading "models/" prefix."""
    if not name:
        return ""
    cleaned = name.strip()
    if cleaned.startswith("models/"):
        return cleaned.split("/", 1)[1]
    return cleaned
