"""Deterministic post-processing of assistant text before it reaches the user."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Callable, List, Sequence, Union

_MARKER_CHARS_RE = re.compile(r"[*`]")
_HEADING_RE = re.compile(r"^[^\S\n]*(?:#{1,6}[^\S\n]+)+", re.MULTILINE)
_SENTENCE_START_RE = re.compile(r"(^|[.!?]\s+)(we|our|ours|us)\b", re.IGNORECASE | re.MULTILINE)

Replacement = Union[str, Callable[[re.Match], str]]


@dataclass(frozen=True)
class RewriteRule:
    """One ordered (pattern, replacement) step of the brand rewrite."""
    name: str
    pattern: re.Pattern
    replacement: Replacement

    def apply(self, text: str) -> str:
        return self.pattern.sub(self.replacement, text)


def strip_formatting(text: str) -> str:
    """Purpose: Remove markdown emphasis, code ticks, and heading markers.
    Inputs/Outputs: Input is raw model text; output is plain text.
    Side Effects / State: None; pure function.
    Dependencies: Uses _MARKER_CHARS_RE then _HEADING_RE.
    Failure Modes: Returns an empty string for falsy input.
    If Removed: Chat widgets render literal asterisks and hashes.
    Testing Notes: strip_formatting(strip_formatting(x)) == strip_formatting(x).
    """
    # Characters go first so a removed "*" cannot expose a new heading later.
    if not text:
        return ""
    cleaned = _MARKER_CHARS_RE.sub("", text)
    cleaned = _HEADING_RE.sub("", cleaned)
    return cleaned.strip()


def build_brand_rules(brand_names: Sequence[str]) -> List[RewriteRule]:
    """Purpose: Compile the ordered brand-to-pronoun rewrite rules.
    Inputs/Outputs: Input is the organization's proper names; output is ordered rules.
    Side Effects / State: None.
    Dependencies: Uses re; consumed by substitute_brand.
    Failure Modes: Empty brand list still yields the pronoun-only rules.
    If Removed: Replies talk about the company in the third person.
    Testing Notes: "JP Rifles is" must become "we are", never "we is".
    """
    # Possessive and "is/are" forms must be consumed before the bare name rule.
    rules: List[RewriteRule] = []
    names = sorted({name.strip() for name in brand_names if name.strip()}, key=len, reverse=True)
    if names:
        brand = "(?:" + "|".join(re.escape(name) for name in names) + ")"
        rules.extend(
            [
                RewriteRule("brand_possessive", re.compile(rf"\b{brand}(?:'s\b|')", re.IGNORECASE), "our"),
                RewriteRule("brand_subject", re.compile(rf"\b{brand}\b(?!\s+(?:is|are)\b)", re.IGNORECASE), "we"),
                RewriteRule("brand_is", re.compile(rf"\b{brand}\s+is\b", re.IGNORECASE), "we are"),
                RewriteRule("brand_are", re.compile(rf"\b{brand}\s+are\b", re.IGNORECASE), "we are"),
            ]
        )
    rules.extend(
        [
            RewriteRule("their", re.compile(r"\btheir\b", re.IGNORECASE), "our"),
            RewriteRule("theirs", re.compile(r"\btheirs\b", re.IGNORECASE), "ours"),
            RewriteRule("them", re.compile(r"\bthem\b", re.IGNORECASE), "us"),
            RewriteRule("they_are", re.compile(r"\bthey are\b", re.IGNORECASE), "we are"),
            RewriteRule("they_re", re.compile(r"\bthey're\b", re.IGNORECASE), "we're"),
        ]
    )
    return rules


def substitute_brand(text: str, rules: Sequence[RewriteRule]) -> str:
    for rule in rules:
        text = rule.apply(text)
    return text


def capitalize_sentence_starts(text: str) -> str:
    """Upper-case the first letter of we/our/ours/us when it opens a sentence or a line."""
    def _upper(match: re.Match) -> str:
        word = match.group(2)
        return match.group(1) + word[0].upper() + word[1:]

    return _SENTENCE_START_RE.sub(_upper, text)


class ResponseFinalizer:
    """Apply formatting strip, brand rewrite, and capitalization in that order."""

    def __init__(self, brand_names: Sequence[str]) -> None:
        self._rules = build_brand_rules(brand_names)

    @property
    def rules(self) -> List[RewriteRule]:
        return list(self._rules)

    def finalize(self, text: str) -> str:
        """Purpose: Turn raw model or cache text into the user-facing reply.
        Inputs/Outputs: Input is raw text; output is the finalized reply.
        Side Effects / State: None.
        Dependencies: strip_formatting, substitute_brand, capitalize_sentence_starts.
        Failure Modes: None; empty input returns an empty string.
        If Removed: Replies keep markdown and third-person brand references.
        Testing Notes: "**JP Rifles is** great." -> "We are great."
        """
        # Order matters: markers, then brand rules, then sentence capitalization.
        text = strip_formatting(text)
        text = substitute_brand(text, self._rules)
        return capitalize_sentence_starts(text)
