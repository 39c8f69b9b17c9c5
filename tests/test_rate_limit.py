"""
Tests for rate limit keys and the 429 response.
"""
import json
from types import SimpleNamespace
from unittest.mock import MagicMock

from starlette.requests import Request

from storefront.core.config import settings
from storefront.core.rate_limit import buyer_key, client_ip, rate_limit_exceeded_handler
from storefront.core.security import create_access_token


def make_request(headers: dict = None, peer: str = "10.0.0.9") -> Request:
    return Request({
        "type": "http",
        "method": "POST",
        "scheme": "http",
        "server": ("testserver", 80),
        "path": "/api/orders",
        "query_string": b"",
        "headers": [(k.lower().encode(), v.encode()) for k, v in (headers or {}).items()],
        "client": (peer, 51000),
    })


class TestClientAddress:
    def test_forwarded_header_ignored_by_default(self, monkeypatch):
        monkeypatch.setattr(settings, "RATE_LIMIT_TRUST_FORWARDED", False)
        request = make_request({"X-Forwarded-For": "203.0.113.7"})

        assert client_ip(request) == "10.0.0.9"

    def test_first_forwarded_hop_behind_trusted_proxy(self, monkeypatch):
        monkeypatch.setattr(settings, "RATE_LIMIT_TRUST_FORWARDED", True)
        request = make_request({"X-Forwarded-For": "203.0.113.7, 10.0.0.1"})

        assert client_ip(request) == "203.0.113.7"


class TestBuyerKey:
    def test_authenticated_buyer_keyed_by_subject(self):
        token = create_access_token({"sub": 42})
        request = make_request({"Authorization": f"Bearer {token}"})

        assert buyer_key(request) == "user:42"

    def test_same_buyer_from_two_addresses_shares_a_key(self):
        token = create_access_token({"sub": 42})
        home = make_request({"Authorization": f"Bearer {token}"}, peer="10.0.0.9")
        phone = make_request({"Authorization": f"Bearer {token}"}, peer="172.16.4.2")

        assert buyer_key(home) == buyer_key(phone)

    def test_invalid_token_falls_back_to_address(self):
        request = make_request({"Authorization": "Bearer not-a-jwt"})

        assert buyer_key(request) == "ip:10.0.0.9"

    def test_anonymous_keyed_by_address(self):
        assert buyer_key(make_request()) == "ip:10.0.0.9"


class TestExceededHandler:
    def test_uses_error_envelope_and_window(self):
        exc = MagicMock()
        exc.detail = "10 per 1 minute"
        exc.limit.limit.get_expiry.return_value = 60

        response = rate_limit_exceeded_handler(make_request(), exc)

        assert response.status_code == 429
        assert response.headers["Retry-After"] == "60"
        body = json.loads(response.body)
        assert body["error"] == "RATE_LIMITED"
        assert body["details"] == {"retry_after": 60}

    def test_unknown_window_defaults(self):
        exc = SimpleNamespace(detail="too many", limit=None)

        response = rate_limit_exceeded_handler(make_request(), exc)

        assert response.headers["Retry-After"] == "60"
