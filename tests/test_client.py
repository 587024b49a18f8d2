import asyncio
import json

import httpx
import pytest

from note_corpus.client import NotesClient
from note_corpus.corpus import CorpusUnavailableError


def _client(handler, base_url="http://notes.test"):
    return NotesClient(base_url, transport=httpx.MockTransport(handler))


def test_fetch_corpus_passes_values_through():
    seen = []

    def handler(request):
        seen.append((request.method, request.url.path))
        return httpx.Response(200, json={"a.md": "text", "b.md": 42})

    corpus = asyncio.run(_client(handler, "http://notes.test/api/").fetch_corpus())

    assert corpus == {"a.md": "text", "b.md": 42}
    assert seen == [("POST", "/api/notes")]


@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(503, text="unavailable"),
        httpx.Response(200, content=b"not json"),
        httpx.Response(200, json=["a.md"]),
    ],
)
def test_fetch_corpus_failures(response):
    client = _client(lambda request: response)
    with pytest.raises(CorpusUnavailableError):
        asyncio.run(client.fetch_corpus())


def test_fetch_corpus_transport_error():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(CorpusUnavailableError):
        asyncio.run(_client(handler).fetch_corpus())


def test_import_files_success():
    received = {}

    def handler(request):
        assert request.url.path == "/import_notes"
        received.update(json.loads(request.content))
        return httpx.Response(200, json={"message": "success"})

    result = asyncio.run(_client(handler).import_files({"vault/a.md": "Alpha"}))

    assert result.ok
    assert result.status == "success"
    assert received == {"vault/a.md": "Alpha"}


def test_import_files_unexpected_message():
    client = _client(lambda request: httpx.Response(200, json={"message": "nope"}))
    result = asyncio.run(client.import_files({"a.md": "Alpha"}))
    assert result.status == "failure"
    assert "nope" in result.detail


def test_import_files_http_error_is_failure():
    client = _client(lambda request: httpx.Response(500))
    result = asyncio.run(client.import_files({"a.md": "Alpha"}))
    assert not result.ok
