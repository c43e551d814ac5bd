"""Tests for MilestoneApiClient against an httpx.MockTransport server.

No database required.
"""

from __future__ import annotations

import json

import httpx
import pytest

from app.client import ApiError, AuthSession, MilestoneApiClient


def _ms(id="m1", order=0, completed=False, title="First"):
    return {
        "id": id,
        "title": title,
        "description": "",
        "type": "feature",
        "tags": [],
        "completed": completed,
        "order": order,
        "user_id": "u1",
        "date": "2026-01-01T00:00:00Z",
        "created_at": "2026-01-01T00:00:00Z",
        "updated_at": "2026-01-01T00:00:00Z",
    }


class FakeServer:
    """Records requests and answers from a route table."""

    def __init__(self, routes):
        self.routes = routes
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        handler = self.routes.get((request.method, request.url.path))
        if handler is None:
            return httpx.Response(404, json={"detail": "Not found"})
        return handler(request) if callable(handler) else handler


def _client(server, session=None):
    return MilestoneApiClient(
        "http://api.test/",
        session or AuthSession(access_token="a1", refresh_token="r1"),
        transport=httpx.MockTransport(server),
    )


# ---------------------------------------------------------------------------
# Milestone calls
# ---------------------------------------------------------------------------


class TestMilestoneCalls:
    async def test_list_sends_bearer_token(self):
        server = FakeServer(
            {("GET", "/api/v1/milestones"): httpx.Response(200, json=[_ms(), _ms("m2", 1)])}
        )
        async with _client(server) as api:
            result = await api.list_milestones()
        assert [m.id for m in result] == ["m1", "m2"]
        assert server.requests[0].headers["Authorization"] == "Bearer a1"

    async def test_create_body(self):
        server = FakeServer({("POST", "/api/v1/milestones"): httpx.Response(201, json=_ms())})
        async with _client(server) as api:
            created = await api.create_milestone("First", type="release", tags=("v1",))
        assert created.title == "First"
        body = json.loads(server.requests[0].content)
        assert body == {"title": "First", "description": "", "type": "release", "tags": ["v1"]}

    async def test_reorder_body(self):
        server = FakeServer(
            {("POST", "/api/v1/milestones/reorder"): httpx.Response(200, json=[_ms("b"), _ms("a", 1)])}
        )
        async with _client(server) as api:
            result = await api.reorder_milestones(["b", "a"])
        assert json.loads(server.requests[0].content) == {"ordered_ids": ["b", "a"]}
        assert [m.id for m in result] == ["b", "a"]

    async def test_complete(self):
        server = FakeServer(
            {("POST", "/api/v1/milestones/m1/complete"): httpx.Response(200, json=_ms(completed=True))}
        )
        async with _client(server) as api:
            assert (await api.complete_milestone("m1")).completed is True

    async def test_delete_returns_none(self):
        server = FakeServer({("DELETE", "/api/v1/milestones/m1"): httpx.Response(204)})
        async with _client(server) as api:
            assert await api.delete_milestone("m1") is None


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


class TestErrors:
    async def test_rule_violation_is_not_retryable(self):
        server = FakeServer(
            {
                ("POST", "/api/v1/milestones/m2/complete"): httpx.Response(
                    400,
                    json={"detail": "Complete previous milestones first", "code": "preceding_incomplete"},
                )
            }
        )
        async with _client(server) as api:
            with pytest.raises(ApiError) as exc_info:
                await api.complete_milestone("m2")
        err = exc_info.value
        assert err.status_code == 400
        assert err.code == "preceding_incomplete"
        assert err.detail == "Complete previous milestones first"
        assert err.retryable is False

    async def test_server_error_is_retryable(self):
        server = FakeServer(
            {("GET", "/api/v1/milestones"): httpx.Response(503, json={"detail": "busy"})}
        )
        async with _client(server) as api:
            with pytest.raises(ApiError) as exc_info:
                await api.list_milestones()
        assert exc_info.value.retryable is True

    async def test_connection_failure(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        api = MilestoneApiClient(
            "http://api.test", AuthSession(), transport=httpx.MockTransport(handler)
        )
        with pytest.raises(ApiError) as exc_info:
            await api.list_milestones()
        await api.close()
        assert exc_info.value.status_code is None
        assert exc_info.value.retryable is True

    async def test_timeout(self):
        def handler(request):
            raise httpx.ReadTimeout("slow", request=request)

        api = MilestoneApiClient(
            "http://api.test", AuthSession(), transport=httpx.MockTransport(handler)
        )
        with pytest.raises(ApiError, match="timed out"):
            await api.list_milestones()
        await api.close()

    async def test_non_json_error_body(self):
        server = FakeServer({("GET", "/api/v1/milestones"): httpx.Response(502, text="<html>")})
        async with _client(server) as api:
            with pytest.raises(ApiError) as exc_info:
                await api.list_milestones()
        assert exc_info.value.detail == "Request failed"


# ---------------------------------------------------------------------------
# Token refresh
# ---------------------------------------------------------------------------


class TestTokenRefresh:
    async def test_expired_access_token_refreshed_once(self):
        def milestones(request):
            if request.headers.get("Authorization") == "Bearer a2":
                return httpx.Response(200, json=[_ms()])
            return httpx.Response(401, json={"detail": "Invalid or expired token"})

        server = FakeServer(
            {
                ("GET", "/api/v1/milestones"): milestones,
                ("POST", "/api/v1/auth/refresh"): httpx.Response(
                    200,
                    json={"access_token": "a2", "refresh_token": "r2", "token_type": "bearer", "expires_in": 900},
                ),
            }
        )
        session = AuthSession(access_token="a1", refresh_token="r1")
        async with _client(server, session) as api:
            result = await api.list_milestones()
        assert [m.id for m in result] == ["m1"]
        assert session.access_token == "a2"
        assert session.refresh_token == "r2"
        refresh_call = server.requests[1]
        assert json.loads(refresh_call.content) == {"refresh_token": "r1"}

    async def test_rejected_refresh_signs_out(self):
        server = FakeServer(
            {
                ("GET", "/api/v1/milestones"): httpx.Response(401, json={"detail": "expired"}),
                ("POST", "/api/v1/auth/refresh"): httpx.Response(401, json={"detail": "expired"}),
            }
        )
        session = AuthSession(access_token="a1", refresh_token="r1", user={"id": "u1"})
        async with _client(server, session) as api:
            with pytest.raises(ApiError) as exc_info:
                await api.list_milestones()
        assert exc_info.value.status_code == 401
        assert session.is_authenticated is False
        assert session.user is None
        assert len(server.requests) == 2

    async def test_no_refresh_token_no_retry(self):
        server = FakeServer(
            {("GET", "/api/v1/milestones"): httpx.Response(401, json={"detail": "Not authenticated"})}
        )
        async with _client(server, AuthSession()) as api:
            with pytest.raises(ApiError):
                await api.list_milestones()
        assert len(server.requests) == 1


# ---------------------------------------------------------------------------
# Session calls
# ---------------------------------------------------------------------------


class TestSessionCalls:
    async def test_me_stores_user(self):
        server = FakeServer(
            {("GET", "/api/v1/auth/me"): httpx.Response(200, json={"user": {"id": "u1"}})}
        )
        session = AuthSession(access_token="a1")
        async with _client(server, session) as api:
            assert await api.me() == {"id": "u1"}
        assert session.user == {"id": "u1"}

    async def test_logout_clears_even_on_failure(self):
        server = FakeServer({("POST", "/api/v1/auth/logout"): httpx.Response(500, json={})})
        session = AuthSession(access_token="a1", refresh_token="r1")
        async with _client(server, session) as api:
            with pytest.raises(ApiError):
                await api.logout()
        assert session.access_token is None
        assert session.refresh_token is None


class TestAuthSession:
    def test_headers(self):
        assert AuthSession().auth_headers() == {}
        assert AuthSession(access_token="t").auth_headers() == {"Authorization": "Bearer t"}

    def test_update_keeps_refresh_token_when_absent(self):
        session = AuthSession(access_token="a", refresh_token="r")
        session.update_tokens({"access_token": "b"})
        assert session.access_token == "b"
        assert session.refresh_token == "r"

    def test_sessions_are_independent(self):
        one, two = AuthSession(access_token="a"), AuthSession(access_token="b")
        one.clear()
        assert two.access_token == "b"
