"""
AdminSessionClient tests.

Uses httpx.MockTransport for the wire contract and httpx.WSGITransport to
drive the real application end to end.
"""

import json

import httpx

from storefront.client import AdminSessionClient

from conftest import reload

BASE_URL = "http://storefront.test"


def _client(handler, token="tok"):
    return AdminSessionClient(
        BASE_URL,
        token=token,
        http_client=httpx.Client(transport=httpx.MockTransport(handler), base_url=BASE_URL),
    )


class TestWireContract:
    def test_clear_admin_verification(self):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"success": True, "cleared": True})

        assert _client(handler).clear_admin_verification(reason="inactivity") is True

        request = seen[0]
        assert request.url.path == "/api/auth/clear-admin-verification"
        assert request.headers["Authorization"] == "Bearer tok"
        assert json.loads(request.content) == {"reason": "inactivity"}

    def test_sign_out_calls_clear_then_logout(self):
        paths = []

        def handler(request: httpx.Request) -> httpx.Response:
            paths.append(request.url.path)
            return httpx.Response(200, json={"success": True})

        client = _client(handler)
        assert client.sign_out() is True
        assert paths == ["/api/auth/clear-admin-verification", "/api/auth/logout"]
        assert client.signed_in is False

    def test_sign_out_succeeds_when_clear_fails(self):
        paths = []

        def handler(request: httpx.Request) -> httpx.Response:
            paths.append(request.url.path)
            if request.url.path.endswith("clear-admin-verification"):
                return httpx.Response(500, json={"error": "Failed to clear admin verification"})
            return httpx.Response(200, json={"message": "Logout successful"})

        client = _client(handler)
        assert client.sign_out() is True
        assert "/api/auth/logout" in paths
        assert client.token is None

    def test_sign_out_succeeds_when_clear_reply_is_not_json(self):
        paths = []

        def handler(request: httpx.Request) -> httpx.Response:
            paths.append(request.url.path)
            if request.url.path.endswith("clear-admin-verification"):
                return httpx.Response(200, text="<html>proxy</html>")
            return httpx.Response(200, json={"message": "Logout successful"})

        client = _client(handler)
        assert client.sign_out() is True
        assert paths == ["/api/auth/clear-admin-verification", "/api/auth/logout"]
        assert client.token is None

    def test_sign_out_succeeds_when_server_unreachable(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        client = _client(handler)
        assert client.sign_out() is True
        assert client.token is None

    def test_sign_out_without_token_is_local(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise AssertionError("no request expected")

        assert _client(handler, token=None).sign_out() is True


class ClearVerificationDown(httpx.BaseTransport):
    """Forwards to the app but fails the explicit clear call."""

    def __init__(self, inner: httpx.BaseTransport):
        self.inner = inner

    def handle_request(self, request: httpx.Request) -> httpx.Response:
        if request.url.path == "/api/auth/clear-admin-verification":
            raise httpx.ConnectError("network down", request=request)
        return self.inner.handle_request(request)


class TestAgainstApplication:
    def test_sign_out_clears_verification_even_if_clear_call_fails(self, app, admin_user, verified_admin_headers):
        token = verified_admin_headers["Authorization"].split(" ", 1)[1]
        transport = ClearVerificationDown(httpx.WSGITransport(app=app))
        client = AdminSessionClient(
            BASE_URL,
            token=token,
            http_client=httpx.Client(transport=transport, base_url=BASE_URL),
        )

        assert reload(admin_user).admin_panel_verified_at is not None
        assert client.sign_out() is True

        user = reload(admin_user)
        assert user.admin_panel_verified_at is None
        assert user.admin_panel_verify_token is None
        assert user.admin_panel_verify_expires_at is None
