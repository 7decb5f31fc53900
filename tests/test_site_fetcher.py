"""Tests for page download and text extraction."""

import pytest
import requests

from support_chat.errors import ContentFetchError
from support_chat.knowledge import site_fetcher
from support_chat.knowledge.site_fetcher import extract_html_text, failure_placeholder, fetch_text

PAGE = """
<html>
  <head><title>JP Rifles</title><style>body { color: red; }</style></head>
  <body>
    <script>var tracking = 1;</script>
    <h1>Silent   Captured Spring</h1>
    <p>Replaces the carbine
       buffer and spring.</p>
  </body>
</html>
"""


class FakeResponse:
    def __init__(self, text="", status=200, content_type="text/html", content=b""):
        self.text = text
        self.content = content
        self.status_code = status
        self.headers = {"Content-Type": content_type}

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} Server Error")


@pytest.fixture
def fake_get(monkeypatch):
    calls = []

    def install(response=None, error=None):
        def fake(url, headers=None, timeout=None):
            calls.append({"url": url, "headers": headers, "timeout": timeout})
            if error is not None:
                raise error
            return response

        monkeypatch.setattr(site_fetcher.requests, "get", fake)
        return calls

    return install


def test_extract_html_drops_scripts_and_collapses_whitespace():
    assert extract_html_text(PAGE) == "Silent Captured Spring Replaces the carbine buffer and spring."


def test_fetch_text_returns_body_text(fake_get):
    calls = fake_get(FakeResponse(PAGE))
    assert fetch_text("https://example.test/scs.php", timeout=7) == (
        "Silent Captured Spring Replaces the carbine buffer and spring."
    )
    assert calls[0]["timeout"] == 7
    assert calls[0]["headers"]["User-Agent"] == site_fetcher.USER_AGENT


def test_http_error_raises_fetch_error(fake_get):
    fake_get(FakeResponse(status=503))
    with pytest.raises(ContentFetchError) as info:
        fetch_text("https://example.test/down")
    assert info.value.url == "https://example.test/down"


def test_connection_error_raises_fetch_error(fake_get):
    fake_get(error=requests.ConnectionError("refused"))
    with pytest.raises(ContentFetchError):
        fetch_text("https://example.test/")


def test_unreadable_pdf_raises_fetch_error(fake_get):
    fake_get(FakeResponse(content_type="application/pdf", content=b"not a pdf"))
    with pytest.raises(ContentFetchError):
        fetch_text("https://example.test/manual.pdf")


def test_failure_placeholder_names_url():
    assert failure_placeholder("https://example.test/") == "Could not retrieve information from https://example.test/."
