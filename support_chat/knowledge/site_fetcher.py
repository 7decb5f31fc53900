"""HTTP fetch and plain-text extraction for the retailer's website pages."""

from __future__ import annotations

import io
import logging

import requests
from bs4 import BeautifulSoup
from pypdf import PdfReader

from ..errors import ContentFetchError
from ..utils import collapse_whitespace

USER_AGENT = "SupportChatBot/1.0 (+https://jprifles.com)"
DROPPED_TAGS = ["script", "style", "noscript"]

logger = logging.getLogger("support_chat.fetcher")


def fetch_text(url: str, timeout: int = 20) -> str:
    """Purpose: Download one page and return its readable text.
    Inputs/Outputs: Inputs are the URL and timeout in seconds; output is collapsed text.
    Side Effects / State: Performs one HTTP GET.
    Dependencies: requests for transport, BeautifulSoup for HTML, pypdf for PDF bodies.
    Failure Modes: Network, HTTP status, and parse errors raise ContentFetchError.
    If Removed: The site cache has nothing to store and every lookup misses.
    Testing Notes: Monkeypatch requests.get with a fake response and check the body text.
    """
    # Fetch first; any transport failure is reported against the URL.
    try:
        response = requests.get(url, headers={"User-Agent": USER_AGENT}, timeout=timeout)
        response.raise_for_status()
    except requests.RequestException as exc:
        logger.warning("fetch failed url=%s error=%s", url, exc)
        raise ContentFetchError(url, str(exc)) from exc

    try:
        if _is_pdf(url, response.headers.get("Content-Type", "")):
            text = extract_pdf_text(response.content)
        else:
            text = extract_html_text(response.text)
    except Exception as exc:
        logger.warning("parse failed url=%s error=%s", url, exc)
        raise ContentFetchError(url, f"parse error: {exc}") from exc

    logger.debug("fetched url=%s chars=%d", url, len(text))
    return text


def extract_html_text(html: str) -> str:
    """Return the collapsed text of the document body."""
    soup = BeautifulSoup(html, "html.parser")
    for tag in soup(DROPPED_TAGS):
        tag.decompose()
    root = soup.body or soup
    return collapse_whitespace(root.get_text(separator=" "))


def extract_pdf_text(data: bytes) -> str:
    reader = PdfReader(io.BytesIO(data))
    pages = [page.extract_text() or "" for page in reader.pages]
    return collapse_whitespace(" ".join(pages))


def failure_placeholder(url: str) -> str:
    return f"Could not retrieve information from {url}."


def _is_pdf(url: str, content_type: str) -> bool:
    return "application/pdf" in content_type.lower() or url.lower().split("?", 1)[0].endswith(".pdf")
