"""Regression tests for HTTP app construction."""

from starlette.testclient import TestClient

from note_corpus.server import Settings, create_server


def _settings():
    return Settings(
        notes_api_url="http://notes.test",
        host="127.0.0.1",
        port=0,
        log_level="INFO",
    )


def test_http_app_builds():
    server = create_server(_settings())

    app = server.http_app()

    assert app is not None


def test_health_route_reports_corpus_status():
    server = create_server(_settings())
    client = TestClient(server.http_app())

    response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok", "notes": "not_loaded"}
