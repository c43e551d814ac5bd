from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Request, Response
from fastapi.responses import RedirectResponse
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import ACCESS_COOKIE, REFRESH_COOKIE, get_optional_user, load_active_user
from app.config import settings
from app.core.rate_limit import REFRESH_LIMIT, SIGN_IN_LIMIT, limiter
from app.core.security import (
    create_access_token,
    create_refresh_token,
    decode_refresh_token,
    generate_oauth_state,
    states_match,
)
from app.database import get_db
from app.models.user import User
from app.schemas.auth import (
    MeResponse,
    ProvidersResponse,
    RefreshRequest,
    TokenResponse,
    UserResponse,
)
from app.services.oauth_service import (
    OAuthClient,
    OAuthError,
    OAuthProfile,
    build_authorize_url,
    get_provider,
)

router = APIRouter(prefix="/auth", tags=["auth"])
logger = logging.getLogger(__name__)

STATE_COOKIE = "oauth_state"
_STATE_MAX_AGE = 600

DEV_PROFILE = OAuthProfile(
    provider="dev",
    provider_id="dev-user-001",
    email="dev@localhost",
    name="Dev User",
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _refresh_cookie_path() -> str:
    return f"{settings.API_V1_PREFIX}/auth"


def _set_auth_cookies(response: Response, access_token: str, refresh_token: str) -> None:
    response.set_cookie(
        ACCESS_COOKIE,
        access_token,
        max_age=settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
        httponly=True,
        secure=settings.COOKIE_SECURE,
        samesite="lax",
    )
    response.set_cookie(
        REFRESH_COOKIE,
        refresh_token,
        max_age=settings.REFRESH_TOKEN_EXPIRE_DAYS * 86400,
        httponly=True,
        secure=settings.COOKIE_SECURE,
        samesite="lax",
        path=_refresh_cookie_path(),
    )


def _clear_auth_cookies(response: Response) -> None:
    response.delete_cookie(ACCESS_COOKIE)
    response.delete_cookie(REFRESH_COOKIE, path=_refresh_cookie_path())


def _issue_tokens(user: User) -> TokenResponse:
    return TokenResponse(
        access_token=create_access_token(user.id, user.email),
        refresh_token=create_refresh_token(user.id),
        expires_in=settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
    )


def _user_response(user: User) -> UserResponse:
    return UserResponse(
        id=str(user.id),
        email=user.email,
        name=user.name,
        image=user.image,
        provider=user.provider,
    )


def _failure_redirect(provider: str) -> RedirectResponse:
    response = RedirectResponse(f"{settings.CLIENT_URL}/login?error={provider}_failed", 302)
    response.delete_cookie(STATE_COOKIE)
    return response


def _signed_in_redirect(user: User) -> RedirectResponse:
    tokens = _issue_tokens(user)
    response = RedirectResponse(settings.CLIENT_URL, 302)
    response.delete_cookie(STATE_COOKIE)
    _set_auth_cookies(response, tokens.access_token, tokens.refresh_token)
    return response


async def upsert_oauth_user(db: AsyncSession, profile: OAuthProfile) -> User:
    """Find the account for (provider, provider_id), creating it on first sign-in."""
    result = await db.execute(
        select(User).where(
            User.provider == profile.provider, User.provider_id == profile.provider_id
        )
    )
    user = result.scalar_one_or_none()
    if user is None:
        user = User(
            email=profile.email,
            name=profile.name,
            image=profile.image,
            provider=profile.provider,
            provider_id=profile.provider_id,
        )
        db.add(user)
        logger.info("Created user on first sign-in", extra={"provider": profile.provider})
    else:
        # Keep the profile fresh; a provider may withhold the email on later sign-ins
        if profile.email:
            user.email = profile.email
        user.name = profile.name or user.name
        user.image = profile.image or user.image
    await db.commit()
    await db.refresh(user)
    return user


# ---------------------------------------------------------------------------
# Sign-in
# ---------------------------------------------------------------------------

@router.get("/providers", response_model=ProvidersResponse)
async def list_providers():
    """Which sign-in methods the login page should offer."""
    return ProvidersResponse(
        google=get_provider("google") is not None,
        github=get_provider("github") is not None,
        dev=settings.DEV_MODE,
    )


@router.get("/dev-login")
@limiter.limit(SIGN_IN_LIMIT)
async def dev_login(request: Request, db: AsyncSession = Depends(get_db)):
    """Passwordless sign-in as a fixed local user. Only exists in DEV_MODE."""
    if not settings.DEV_MODE:
        raise HTTPException(404, "Not found")
    user = await upsert_oauth_user(db, DEV_PROFILE)
    if not user.is_active:
        raise HTTPException(403, "Account disabled")
    return _signed_in_redirect(user)


@router.get("/me", response_model=MeResponse)
async def me(user: User | None = Depends(get_optional_user)):
    """The signed-in user, or ``{"user": null}``. Never fails."""
    return MeResponse(user=_user_response(user) if user else None)


@router.post("/refresh", response_model=TokenResponse)
@limiter.limit(REFRESH_LIMIT)
async def refresh_token(
    request: Request,
    response: Response,
    body: RefreshRequest | None = None,
    db: AsyncSession = Depends(get_db),
):
    """Trade a refresh token (cookie or body) for a new token pair."""
    token = (body.refresh_token if body else None) or request.cookies.get(REFRESH_COOKIE)
    if not token:
        raise HTTPException(401, "No refresh token")
    payload = decode_refresh_token(token)
    if payload is None:
        raise HTTPException(401, "Invalid or expired refresh token")
    user = await load_active_user(db, payload.get("sub"))
    if user is None:
        raise HTTPException(401, "User not found or inactive")

    tokens = _issue_tokens(user)
    _set_auth_cookies(response, tokens.access_token, tokens.refresh_token)
    return tokens


@router.post("/logout")
async def logout(response: Response):
    """Drop the auth cookies. Bearer-token clients discard their tokens themselves."""
    _clear_auth_cookies(response)
    return {"success": True}


@router.get("/{provider}")
@limiter.limit(SIGN_IN_LIMIT)
async def oauth_start(request: Request, provider: str):
    """Redirect to the provider's consent page."""
    config = get_provider(provider)
    if config is None:
        raise HTTPException(404, "Unknown sign-in provider")

    state = generate_oauth_state()
    redirect_uri = str(request.url_for("oauth_callback", provider=provider))
    response = RedirectResponse(build_authorize_url(config, redirect_uri, state), 302)
    response.set_cookie(
        STATE_COOKIE,
        state,
        max_age=_STATE_MAX_AGE,
        httponly=True,
        secure=settings.COOKIE_SECURE,
        samesite="lax",
    )
    return response


@router.get("/{provider}/callback", name="oauth_callback")
@limiter.limit(SIGN_IN_LIMIT)
async def oauth_callback(
    request: Request,
    provider: str,
    code: str | None = None,
    state: str | None = None,
    error: str | None = None,
    db: AsyncSession = Depends(get_db),
):
    """Finish the provider flow and sign the user in."""
    config = get_provider(provider)
    if config is None:
        raise HTTPException(404, "Unknown sign-in provider")

    if error or not code:
        logger.info("Provider returned no code: %s", error, extra={"provider": provider})
        return _failure_redirect(provider)
    if not states_match(request.cookies.get(STATE_COOKIE), state):
        logger.warning("OAuth state mismatch", extra={"provider": provider})
        return _failure_redirect(provider)

    redirect_uri = str(request.url_for("oauth_callback", provider=provider))
    try:
        profile = await OAuthClient(config).fetch_profile(code, redirect_uri)
    except OAuthError:
        logger.exception("OAuth sign-in failed", extra={"provider": provider})
        return _failure_redirect(provider)

    user = await upsert_oauth_user(db, profile)
    if not user.is_active:
        return _failure_redirect(provider)
    return _signed_in_redirect(user)
