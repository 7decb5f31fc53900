"""SCS buffer recommendation rules.

The engine maps a rifle setup to one catalog record through a fixed decision
table. Callers must run ``missing_attributes`` first: while any attribute is
unset the user gets clarifying questions and no recommendation is computed.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional

from .utils import contains_any_term

FRAME_AR15 = "AR-15"
FRAME_AR10 = "AR-10"

RECOMMENDATION_TERMS = ("recommend", "product")

_FRAME_RE = re.compile(r"^ar[\s\-_]?(15|10)$", re.IGNORECASE)


@dataclass(frozen=True)
class ProductRecord:
    """Static catalog entry returned by the recommendation table."""
    id: str
    name: str
    description: str


SCS_PRODUCTS: Dict[str, ProductRecord] = {
    record.id: record
    for record in (
        ProductRecord("JPSCS2-15", "AR-15 Standard SCS", "Standard for AR-15"),
        ProductRecord("JPSCS2-15H2", "AR-15 H2 SCS", "Heavier buffer for AR-15"),
        ProductRecord(
            "JPSCS2-15-LAW",
            "AR-15 Standard for Law Tactical Folder",
            "Compatible with Law Tactical Folder",
        ),
        ProductRecord("JPSCS2-10", "AR-10 Standard SCS", "Standard for AR-10"),
        ProductRecord("JPSCS2-10H2", "AR-10 H2 SCS", "Heavier buffer for AR-10"),
        ProductRecord(
            "JPSCS2-10-LAW",
            "AR-10 Standard for Law Tactical Folder",
            "Compatible with Law Tactical Folder",
        ),
    )
}

NO_RECOMMENDATION = ProductRecord(
    "NONE", "No specific recommendation", "Please consult additional details"
)


@dataclass(frozen=True)
class RecommendationAttributes:
    """Rifle setup collected from the request; None marks an unanswered question."""
    frame: Optional[str] = None
    config: Optional[bool] = None
    suppressed: Optional[bool] = None
    subsonic: Optional[bool] = None
    law_folder: Optional[bool] = None
    low_mass: Optional[bool] = None

    @classmethod
    def from_payload(cls, payload: Optional[Mapping[str, Any]]) -> "RecommendationAttributes":
        """Purpose: Build attributes leniently from a request payload.
        Inputs/Outputs: Input is a mapping (or None); output is RecommendationAttributes.
        Side Effects / State: None.
        Dependencies: Uses normalize_frame; accepts camelCase and snake_case keys.
        Failure Modes: Wrong-typed values are treated as unset instead of raising.
        If Removed: The chat route cannot turn request fields into an engine input.
        Testing Notes: {"lawFolder": "yes"} leaves law_folder unset; {} is all unset.
        """
        # Ignore anything that is not a mapping; a malformed set counts as empty.
        if not isinstance(payload, Mapping):
            return cls()

        def pick(*keys: str) -> Any:
            for key in keys:
                if key in payload:
                    return payload[key]
            return None

        frame = pick("frame")
        return cls(
            frame=normalize_frame(frame) if isinstance(frame, str) and frame.strip() else None,
            config=_as_flag(pick("config")),
            suppressed=_as_flag(pick("suppressed")),
            subsonic=_as_flag(pick("subsonic")),
            law_folder=_as_flag(pick("lawFolder", "law_folder")),
            low_mass=_as_flag(pick("lowMass", "low_mass")),
        )


# Field order is the order questions are asked in.
CLARIFYING_QUESTIONS: Dict[str, str] = {
    "frame": "What is the frame size (AR-15 or AR-10)?",
    "config": "Are you using any special configurations?",
    "suppressed": "Will you be using a suppressor?",
    "subsonic": "Do you need to use subsonic ammunition?",
    "law_folder": "Will you be using a Law Tactical Folder?",
    "low_mass": "Are you using a low mass setup?",
}


def normalize_frame(value: str) -> str:
    """Map "ar15", "AR 15", "ar-10" and similar to the canonical frame names."""
    cleaned = value.strip()
    match = _FRAME_RE.match(cleaned)
    if not match:
        return cleaned
    return FRAME_AR15 if match.group(1) == "15" else FRAME_AR10


def missing_attributes(attrs: RecommendationAttributes) -> List[str]:
    """Purpose: List the clarifying questions for every unset attribute.
    Inputs/Outputs: Input is RecommendationAttributes; output is an ordered list of questions.
    Side Effects / State: None; pure function.
    Dependencies: Uses CLARIFYING_QUESTIONS ordering.
    Failure Modes: None; explicit False values count as answered.
    If Removed: Recommendations would be computed from incomplete setups.
    Testing Notes: frame-only input yields five questions without the frame question.
    """
    # Walk the fields in the fixed question order.
    return [
        question
        for name, question in CLARIFYING_QUESTIONS.items()
        if getattr(attrs, name) is None
    ]


def recommend(attrs: RecommendationAttributes) -> ProductRecord:
    """Purpose: Pick the SCS record for a complete rifle setup.
    Inputs/Outputs: Input is RecommendationAttributes; output is a ProductRecord.
    Side Effects / State: None; deterministic.
    Dependencies: Uses SCS_PRODUCTS and NO_RECOMMENDATION.
    Failure Modes: Unknown frames return NO_RECOMMENDATION; unset flags read as False.
    If Removed: The assistant cannot answer buffer recommendation requests.
    Testing Notes: lawFolder overrides every other flag for both frames.
    """
    # Law folder first, then the stricter conjunction, then config+suppressed.
    config = bool(attrs.config)
    suppressed = bool(attrs.suppressed)

    if attrs.frame == FRAME_AR15:
        if attrs.law_folder:
            return SCS_PRODUCTS["JPSCS2-15-LAW"]
        if config and suppressed and attrs.subsonic:
            return SCS_PRODUCTS["JPSCS2-15"]
        if config and suppressed:
            return SCS_PRODUCTS["JPSCS2-15H2"]
        return SCS_PRODUCTS["JPSCS2-15"]

    if attrs.frame == FRAME_AR10:
        if attrs.law_folder:
            return SCS_PRODUCTS["JPSCS2-10-LAW"]
        if config and suppressed and attrs.low_mass:
            return SCS_PRODUCTS["JPSCS2-10H2"]
        if config and suppressed:
            return SCS_PRODUCTS["JPSCS2-10"]
        return SCS_PRODUCTS["JPSCS2-10"]

    return NO_RECOMMENDATION


def build_recommendation_reply(attrs: RecommendationAttributes) -> str:
    """Purpose: Produce the assistant reply for a recommendation request.
    Inputs/Outputs: Input is RecommendationAttributes; output is reply text.
    Side Effects / State: None.
    Dependencies: Uses missing_attributes and recommend.
    Failure Modes: None.
    If Removed: The chat pipeline has no recommendation route.
    Testing Notes: Empty attributes return the six questions joined by spaces.
    """
    # Questions short-circuit the decision table.
    questions = missing_attributes(attrs)
    if questions:
        return " ".join(questions)
    record = recommend(attrs)
    return f"Based on your setup, we recommend the {record.name}: {record.description}"


def is_recommendation_request(message: str) -> bool:
    return contains_any_term(message, RECOMMENDATION_TERMS)


def _as_flag(value: Any) -> Optional[bool]:
    return value if isinstance(value, bool) else None
