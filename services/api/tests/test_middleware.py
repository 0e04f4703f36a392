"""
Tests for the API middleware stack and error envelope.
"""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

from fastapi.testclient import TestClient

from pt_common.models import VerificationStats

from api.dependencies import resolve_client_ip


class TestRequestId:
    def test_generated_when_absent(self, client: TestClient):
        resp = client.get("/health")
        assert len(resp.headers["X-Request-ID"]) == 36

    def test_valid_incoming_id_is_echoed(self, client: TestClient):
        resp = client.get("/health", headers={"X-Request-ID": "abc-123"})
        assert resp.headers["X-Request-ID"] == "abc-123"

    def test_invalid_incoming_id_is_replaced(self, client: TestClient):
        resp = client.get("/health", headers={"X-Request-ID": "bad id <script>"})
        assert resp.headers["X-Request-ID"] != "bad id <script>"

    def test_error_envelope_carries_request_id(self, client: TestClient):
        resp = client.get("/api/v1/nope", headers={"X-Request-ID": "req-42"})
        assert resp.status_code == 404
        error = resp.json()["error"]
        assert error["code"] == "NOT_FOUND"
        assert error["requestId"] == "req-42"


class TestBrowseRateLimit:
    def test_get_requests_are_limited(self, client: TestClient, mock_service: MagicMock):
        mock_service.verification_stats = AsyncMock(return_value=VerificationStats())
        for remaining in range(4, -1, -1):
            resp = client.get("/api/v1/verify/stats")
            assert resp.status_code == 200
            assert resp.headers["X-RateLimit-Remaining"] == str(remaining)
        resp = client.get("/api/v1/verify/stats")
        assert resp.status_code == 429
        assert resp.json()["error"]["code"] == "RATE_LIMITED"
        assert "Retry-After" in resp.headers

    def test_writes_are_not_counted(self, client: TestClient):
        body = {"npi": "1234567890", "planId": "PLAN-001", "acceptsInsurance": True}
        client.post("/api/v1/verify", json=body)
        resp = client.get("/api/v1/verify/recent")
        assert resp.headers["X-RateLimit-Limit"] == "5"
        assert resp.headers["X-RateLimit-Remaining"] == "4"


class TestUnhandledErrors:
    def test_unexpected_exception_returns_generic_500(self, app, mock_service: MagicMock):
        mock_service.verification_stats = AsyncMock(side_effect=RuntimeError("secret detail"))
        client = TestClient(app, raise_server_exceptions=False)
        resp = client.get("/api/v1/verify/stats")
        assert resp.status_code == 500
        error = resp.json()["error"]
        assert error["code"] == "INTERNAL_ERROR"
        assert "secret detail" not in error["message"]


class TestClientIp:
    def _request(self, forwarded: str | None = None, host: str = "10.0.0.1"):
        request = MagicMock()
        request.headers = {"X-Forwarded-For": forwarded} if forwarded else {}
        request.client.host = host
        return request

    def test_peer_address_by_default(self):
        assert resolve_client_ip(self._request("1.2.3.4, 10.0.0.1")) == "10.0.0.1"

    def test_first_forwarded_hop_when_trusted(self):
        assert resolve_client_ip(self._request("1.2.3.4, 10.0.0.1"), trust_forwarded_for=True) == "1.2.3.4"

    def test_falls_back_to_peer_without_header(self):
        assert resolve_client_ip(self._request(), trust_forwarded_for=True) == "10.0.0.1"
