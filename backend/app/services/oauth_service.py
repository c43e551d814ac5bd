"""Google and GitHub OAuth 2.0 authorization-code flow."""

from __future__ import annotations

import logging
from dataclasses import dataclass

import httpx

from app.config import settings

logger = logging.getLogger(__name__)


class OAuthError(Exception):
    """Sign-in with the provider failed."""


@dataclass(frozen=True)
class OAuthProvider:
    name: str
    client_id: str
    client_secret: str
    authorize_url: str
    token_url: str
    userinfo_url: str
    scope: str


@dataclass(frozen=True)
class OAuthProfile:
    provider: str
    provider_id: str
    email: str
    name: str | None = None
    image: str | None = None


def get_provider(name: str) -> OAuthProvider | None:
    """Provider config, or None when the provider is unknown or unconfigured."""
    if name == "google" and settings.GOOGLE_CLIENT_ID and settings.GOOGLE_CLIENT_SECRET:
        return OAuthProvider(
            name="google",
            client_id=settings.GOOGLE_CLIENT_ID,
            client_secret=settings.GOOGLE_CLIENT_SECRET,
            authorize_url="https://accounts.google.com/o/oauth2/v2/auth",
            token_url="https://oauth2.googleapis.com/token",
            userinfo_url="https://www.googleapis.com/oauth2/v3/userinfo",
            scope="openid email profile",
        )
    if name == "github" and settings.GITHUB_CLIENT_ID and settings.GITHUB_CLIENT_SECRET:
        return OAuthProvider(
            name="github",
            client_id=settings.GITHUB_CLIENT_ID,
            client_secret=settings.GITHUB_CLIENT_SECRET,
            authorize_url="https://github.com/login/oauth/authorize",
            token_url="https://github.com/login/oauth/access_token",
            userinfo_url="https://api.github.com/user",
            scope="read:user user:email",
        )
    return None


def build_authorize_url(provider: OAuthProvider, redirect_uri: str, state: str) -> str:
    params = {
        "client_id": provider.client_id,
        "redirect_uri": redirect_uri,
        "response_type": "code",
        "scope": provider.scope,
        "state": state,
    }
    return str(httpx.URL(provider.authorize_url, params=params))


class OAuthClient:
    """Exchanges an authorization code for the signed-in user's profile."""

    def __init__(
        self,
        provider: OAuthProvider,
        *,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.provider = provider
        self._timeout = timeout if timeout is not None else settings.HTTP_TIMEOUT_SECONDS
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=self._timeout,
            transport=self._transport,
            headers={"Accept": "application/json"},
        )

    async def fetch_profile(self, code: str, redirect_uri: str) -> OAuthProfile:
        try:
            async with self._client() as client:
                access_token = await self._exchange_code(client, code, redirect_uri)
                headers = {"Authorization": f"Bearer {access_token}"}
                resp = await client.get(self.provider.userinfo_url, headers=headers)
                if resp.status_code != 200:
                    raise OAuthError(f"Profile request failed with HTTP {resp.status_code}")
                data = resp.json()
                if not isinstance(data, dict):
                    raise OAuthError("Malformed profile response")
                if self.provider.name == "github":
                    return await self._github_profile(client, headers, data)
                return self._google_profile(data)
        except httpx.HTTPError as exc:
            logger.warning(
                "OAuth request failed: %s", exc, extra={"provider": self.provider.name}
            )
            raise OAuthError(f"Could not reach {self.provider.name}") from exc
        except ValueError as exc:
            # A non-JSON body, e.g. an HTML error page served with a 200
            logger.warning(
                "Unreadable OAuth response: %s", exc, extra={"provider": self.provider.name}
            )
            raise OAuthError(f"Unexpected response from {self.provider.name}") from exc

    async def _exchange_code(self, client: httpx.AsyncClient, code: str, redirect_uri: str) -> str:
        resp = await client.post(
            self.provider.token_url,
            data={
                "grant_type": "authorization_code",
                "client_id": self.provider.client_id,
                "client_secret": self.provider.client_secret,
                "code": code,
                "redirect_uri": redirect_uri,
            },
        )
        if resp.status_code != 200:
            logger.error(
                "Token exchange failed with HTTP %d",
                resp.status_code,
                extra={"provider": self.provider.name},
            )
            raise OAuthError("Token exchange failed")
        # GitHub reports some errors with a 200 and an "error" field
        payload = resp.json()
        if not isinstance(payload, dict):
            raise OAuthError("Malformed token response")
        token = payload.get("access_token")
        if not token:
            raise OAuthError(payload.get("error_description") or "No access token received")
        return token

    def _google_profile(self, data: dict) -> OAuthProfile:
        subject = data.get("sub")
        if not subject:
            raise OAuthError("No subject in Google profile")
        return OAuthProfile(
            provider="google",
            provider_id=str(subject),
            email=(data.get("email") or "").lower(),
            name=data.get("name"),
            image=data.get("picture"),
        )

    async def _github_profile(
        self, client: httpx.AsyncClient, headers: dict, data: dict
    ) -> OAuthProfile:
        if data.get("id") is None:
            raise OAuthError("No id in GitHub profile")
        email = data.get("email") or ""
        if not email:
            # Private addresses only show up on the emails endpoint
            resp = await client.get("https://api.github.com/user/emails", headers=headers)
            if resp.status_code == 200:
                for entry in resp.json():
                    if isinstance(entry, dict) and entry.get("primary") and entry.get("verified"):
                        email = entry.get("email") or ""
                        break
        return OAuthProfile(
            provider="github",
            provider_id=str(data["id"]),
            email=email.lower(),
            name=data.get("name") or data.get("login"),
            image=data.get("avatar_url"),
        )
