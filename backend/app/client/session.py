"""Authentication state for one signed-in client."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass
class AuthSession:
    """Tokens and user for one API client.

    Pass the same instance to every client that should share the sign-in;
    nothing here is process-global.
    """

    access_token: str | None = None
    refresh_token: str | None = None
    user: dict | None = None

    @property
    def is_authenticated(self) -> bool:
        return self.access_token is not None

    @property
    def can_refresh(self) -> bool:
        return self.refresh_token is not None

    def auth_headers(self) -> dict[str, str]:
        if self.access_token is None:
            return {}
        return {"Authorization": f"Bearer {self.access_token}"}

    def update_tokens(self, payload: dict) -> None:
        """Store the tokens from a ``TokenResponse`` body."""
        self.access_token = payload["access_token"]
        # The server rotates refresh tokens; keep the old one if none came back
        self.refresh_token = payload.get("refresh_token") or self.refresh_token

    def clear(self) -> None:
        self.access_token = None
        self.refresh_token = None
        self.user = None
