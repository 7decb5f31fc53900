import re
import unicodedata
from typing import Iterable

_WHITESPACE_RE = re.compile(r"\s+")


def normalize_text(text: str) -> str:
    """Purpose: Normalize free-form text for stable keyword matching.
    Inputs/Outputs: Input is a raw string; output is a lowercase string with
        diacritics removed and whitespace collapsed.
    Side Effects / State: None; pure function.
    Dependencies: Uses unicodedata and regex; called by routing keyword checks.
    Failure Modes: Returns an empty string when input is falsy.
    If Removed: Keyword routing misses messages with odd casing or spacing.
    Testing Notes: "  Can you RECOMMEND\\n a part? " -> "can you recommend a part?".
    """
    # Lowercase and strip combining marks before collapsing whitespace.
    if not text:
        return ""
    decomposed = unicodedata.normalize("NFD", text.lower())
    stripped = "".join(ch for ch in decomposed if unicodedata.category(ch) != "Mn")
    return collapse_whitespace(stripped)


def collapse_whitespace(text: str) -> str:
    """Purpose: Collapse runs of whitespace to single spaces and trim.
    Inputs/Outputs: Input is a raw string; output is the collapsed string.
    Side Effects / State: None; pure function.
    Dependencies: Used by the site fetcher and normalize_text.
    Failure Modes: Returns an empty string for falsy input.
    If Removed: Cached page text keeps layout whitespace and snippets waste characters.
    Testing Notes: Tabs/newlines/multiple spaces all become one space.
    """
    # Replace every whitespace run with one space.
    if not text:
        return ""
    return _WHITESPACE_RE.sub(" ", text).strip()


def contains_any_term(text: str, terms: Iterable[str]) -> bool:
    """Purpose: Check whether a message contains any of the given keyword terms.
    Inputs/Outputs: Inputs are message text and terms; output is a boolean.
    Side Effects / State: None; pure function.
    Dependencies: Uses normalize_text on both sides; used by route detection.
    Failure Modes: Empty text or empty terms return False.
    If Removed: Recommendation and catalog routing cannot detect their keywords.
    Testing Notes: Matching is substring-based and case-insensitive.
    """
    # Compare normalized forms so casing and spacing do not matter.
    normalized = normalize_text(text)
    if not normalized:
        return False
    return any(normalize_text(term) in normalized for term in terms if term)
