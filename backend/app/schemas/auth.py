from __future__ import annotations

from pydantic import BaseModel


class TokenResponse(BaseModel):
    access_token: str
    refresh_token: str | None = None
    token_type: str = "bearer"
    expires_in: int


class RefreshRequest(BaseModel):
    refresh_token: str | None = None


class UserResponse(BaseModel):
    id: str
    email: str
    name: str | None = None
    image: str | None = None
    provider: str

    model_config = {"from_attributes": True}


class MeResponse(BaseModel):
    user: UserResponse | None = None


class ProvidersResponse(BaseModel):
    google: bool
    github: bool
    dev: bool
