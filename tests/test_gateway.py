# tests/test_gateway.py
"""Tests for the ledger gateway routes"""
import json
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import aiohttp
import pytest
from fastapi.testclient import TestClient

from app.config import settings
from app.transport.http_app import app

UPSTREAM = settings.ledger_upstream_url


def _upstream(body: str, status: int = 200, content_type: str = "application/json") -> MagicMock:
    resp = MagicMock()
    resp.status = status
    resp.headers = {"content-type": content_type}
    resp.text = AsyncMock(return_value=body)
    session = MagicMock()
    session.request.return_value.__aenter__.return_value = resp
    return session


@pytest.fixture
def client():
    return TestClient(app, raise_server_exceptions=False)


class TestGetForwarding:
    def test_root_forwards_query(self, client):
        session = _upstream('{"status": 200, "data": {"serialNo": "1"}}')
        with patch("app.transport.gateway.get_upstream_session", return_value=session):
            resp = client.get("/api", params={"date": "2024-05-01", "serialNo": "1"})

        assert resp.status_code == 200
        assert resp.json() == {"status": 200, "data": {"serialNo": "1"}}
        method, url = session.request.call_args.args
        assert method == "GET"
        assert url == f"{UPSTREAM}?date=2024-05-01&serialNo=1"

    def test_suffix_appended(self, client):
        session = _upstream('{"status": 200}')
        with patch("app.transport.gateway.get_upstream_session", return_value=session):
            client.get("/api/records/today?type=oil_dispatch")

        _, url = session.request.call_args.args
        assert url == f"{UPSTREAM}/records/today?type=oil_dispatch"

    def test_text_upstream_relayed_as_text(self, client):
        session = _upstream("<html>quota exceeded</html>", status=429, content_type="text/html")
        with patch("app.transport.gateway.get_upstream_session", return_value=session):
            resp = client.get("/api")

        assert resp.status_code == 429
        assert resp.text == "<html>quota exceeded</html>"
        assert resp.headers["content-type"].startswith("text/plain")

    def test_json_content_type_with_charset(self, client):
        session = _upstream('{"status": 404, "message": "No record"}',
                            content_type="application/json; charset=utf-8")
        with patch("app.transport.gateway.get_upstream_session", return_value=session):
            resp = client.get("/api")

        assert resp.status_code == 200
        assert resp.json()["message"] == "No record"


class TestPostForwarding:
    def test_suffix_ignored_and_body_reserialized(self, client):
        session = _upstream('{"status": 200, "message": "Saved"}')
        payload = {"type": "oil_dispatch", "serialNo": "S-1", "mt": "0.23"}
        with patch("app.transport.gateway.get_upstream_session", return_value=session):
            resp = client.post("/api/anything/here", json=payload)

        assert resp.status_code == 200
        assert resp.json()["message"] == "Saved"

        call = session.request.call_args
        assert call.args == ("POST", UPSTREAM)
        assert json.loads(call.kwargs["data"]) == payload
        assert call.kwargs["headers"] == {"Content-Type": "application/json"}

    def test_body_parsed_regardless_of_content_type(self, client):
        session = _upstream('{"status": 200}')
        with patch("app.transport.gateway.get_upstream_session", return_value=session):
            client.post("/api", content='{"serialNo": "1"}', headers={"Content-Type": "text/plain"})

        assert json.loads(session.request.call_args.kwargs["data"]) == {"serialNo": "1"}

    def test_empty_body_forwarded_as_empty_object(self, client):
        session = _upstream('{"status": 200}')
        with patch("app.transport.gateway.get_upstream_session", return_value=session):
            client.post("/api")

        assert json.loads(session.request.call_args.kwargs["data"]) == {}

    def test_invalid_json_rejected(self, client):
        session = _upstream('{"status": 200}')
        with patch("app.transport.gateway.get_upstream_session", return_value=session):
            resp = client.post("/api", content="serialNo=1",
                               headers={"Content-Type": "application/x-www-form-urlencoded"})

        assert resp.status_code == 400
        assert "error" in resp.json()
        session.request.assert_not_called()


class TestTransportFailures:
    @pytest.mark.parametrize("method", ["get", "post"])
    def test_connection_error_becomes_500(self, client, method):
        session = MagicMock()
        session.request.side_effect = aiohttp.ClientConnectionError("Connection refused")
        with patch("app.transport.gateway.get_upstream_session", return_value=session):
            resp = getattr(client, method)("/api")

        assert resp.status_code == 500
        assert resp.json() == {"error": "Connection refused"}

    def test_production_hides_details(self, client):
        session = MagicMock()
        session.request.side_effect = aiohttp.ClientConnectionError("10.0.0.5:443 refused")
        prod = SimpleNamespace(is_production=True, ledger_upstream_url=UPSTREAM, normalized_api_prefix="/api")
        with patch("app.transport.gateway.get_upstream_session", return_value=session), \
                patch("app.transport.gateway.settings", new=prod):
            resp = client.get("/api")

        assert resp.status_code == 500
        assert resp.json() == {"error": "Upstream request failed"}


class TestAppSurface:
    def test_health(self, client):
        resp = client.get("/health")
        assert resp.status_code == 200
        assert resp.json() == {"status": "healthy"}

    def test_cors_allows_any_origin(self, client):
        session = _upstream('{"status": 200}')
        with patch("app.transport.gateway.get_upstream_session", return_value=session):
            resp = client.get("/api", headers={"Origin": "https://field-device.example"})
        assert resp.headers["access-control-allow-origin"] == "*"

    def test_cors_preflight(self, client):
        resp = client.options(
            "/api",
            headers={
                "Origin": "https://field-device.example",
                "Access-Control-Request-Method": "POST",
                "Access-Control-Request-Headers": "content-type",
            },
        )
        assert resp.status_code == 200
        assert resp.headers["access-control-allow-origin"] == "*"

    def test_request_id_header(self, client):
        resp = client.get("/health")
        assert "X-Request-ID" in resp.headers
