"""Per-client request limits for the sign-in and token endpoints."""

from __future__ import annotations

from slowapi import Limiter
from slowapi.util import get_remote_address

limiter = Limiter(key_func=get_remote_address, headers_enabled=False)

SIGN_IN_LIMIT = "10/minute"
REFRESH_LIMIT = "30/minute"
