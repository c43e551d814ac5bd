"""Async HTTP client for the Commit Graph API."""

from __future__ import annotations

import logging
from collections.abc import Sequence

import httpx

from app.client.session import AuthSession
from app.services.milestone_ordering import MilestoneState

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 10.0
_API = "/api/v1"


class ApiError(Exception):
    """A request the server rejected or that never reached it.

    ``retryable`` is true for timeouts, connection failures and 5xx responses.
    """

    def __init__(
        self,
        status_code: int | None,
        detail: str,
        *,
        code: str | None = None,
        retryable: bool = False,
    ) -> None:
        super().__init__(detail)
        self.status_code = status_code
        self.detail = detail
        self.code = code
        self.retryable = retryable

    @classmethod
    def from_response(cls, resp: httpx.Response) -> ApiError:
        detail, code = "Request failed", None
        try:
            body = resp.json()
        except ValueError:
            body = None
        if isinstance(body, dict):
            raw = body.get("detail") or body.get("error")
            if isinstance(raw, str):
                detail = raw
            elif raw is not None:
                detail = str(raw)
            code = body.get("code")
        return cls(resp.status_code, detail, code=code, retryable=resp.status_code >= 500)


class MilestoneApiClient:
    """Talks to the API on behalf of one :class:`AuthSession`.

    An expired access token is renewed once per request through the refresh
    endpoint; if that fails the session is cleared and the 401 surfaces.
    """

    def __init__(
        self,
        base_url: str,
        session: AuthSession,
        *,
        timeout: float = DEFAULT_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.session = session
        self._http = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            timeout=timeout,
            transport=transport,
            headers={"Accept": "application/json"},
        )

    async def __aenter__(self) -> MilestoneApiClient:
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def close(self) -> None:
        await self._http.aclose()

    # -- transport ---------------------------------------------------------

    async def _send(self, method: str, path: str, json: dict | None = None) -> httpx.Response:
        try:
            return await self._http.request(
                method, path, json=json, headers=self.session.auth_headers()
            )
        except httpx.TimeoutException as exc:
            raise ApiError(None, "Request timed out", retryable=True) from exc
        except httpx.TransportError as exc:
            raise ApiError(None, f"Connection failed: {exc}", retryable=True) from exc

    async def _request(self, method: str, path: str, json: dict | None = None):
        resp = await self._send(method, path, json)
        if resp.status_code == 401 and self.session.can_refresh:
            if await self._try_refresh():
                resp = await self._send(method, path, json)
        if resp.is_error:
            raise ApiError.from_response(resp)
        if resp.status_code == 204 or not resp.content:
            return None
        return resp.json()

    async def _try_refresh(self) -> bool:
        try:
            await self.refresh()
        except ApiError as exc:
            if exc.retryable:
                raise
            logger.info("Token refresh rejected (%s); signing out", exc.status_code)
            self.session.clear()
            return False
        return True

    # -- auth --------------------------------------------------------------

    async def refresh(self) -> None:
        """Exchange the session's refresh token for a new token pair."""
        resp = await self._send(
            "POST", f"{_API}/auth/refresh", {"refresh_token": self.session.refresh_token}
        )
        if resp.is_error:
            raise ApiError.from_response(resp)
        self.session.update_tokens(resp.json())

    async def me(self) -> dict | None:
        data = await self._request("GET", f"{_API}/auth/me")
        self.session.user = data.get("user") if data else None
        return self.session.user

    async def logout(self) -> None:
        try:
            await self._request("POST", f"{_API}/auth/logout")
        finally:
            self.session.clear()

    # -- milestones --------------------------------------------------------

    async def list_milestones(self) -> list[MilestoneState]:
        data = await self._request("GET", f"{_API}/milestones")
        return [MilestoneState.from_dict(item) for item in data]

    async def get_milestone(self, milestone_id: str) -> MilestoneState:
        return MilestoneState.from_dict(
            await self._request("GET", f"{_API}/milestones/{milestone_id}")
        )

    async def create_milestone(
        self,
        title: str,
        *,
        description: str = "",
        type: str = "feature",
        tags: Sequence[str] = (),
    ) -> MilestoneState:
        body = {"title": title, "description": description, "type": type, "tags": list(tags)}
        return MilestoneState.from_dict(await self._request("POST", f"{_API}/milestones", body))

    async def update_milestone(self, milestone_id: str, **fields) -> MilestoneState:
        if "tags" in fields:
            fields["tags"] = list(fields["tags"])
        return MilestoneState.from_dict(
            await self._request("PATCH", f"{_API}/milestones/{milestone_id}", fields)
        )

    async def complete_milestone(self, milestone_id: str) -> MilestoneState:
        return MilestoneState.from_dict(
            await self._request("POST", f"{_API}/milestones/{milestone_id}/complete")
        )

    async def reorder_milestones(self, ordered_ids: Sequence[str]) -> list[MilestoneState]:
        data = await self._request(
            "POST", f"{_API}/milestones/reorder", {"ordered_ids": list(ordered_ids)}
        )
        return [MilestoneState.from_dict(item) for item in data]

    async def delete_milestone(self, milestone_id: str) -> None:
        await self._request("DELETE", f"{_API}/milestones/{milestone_id}")
