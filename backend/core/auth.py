"""
Auth utilities.

Validates HS256 session JWTs and resolves the requesting user.
Token sources, in priority order:
1. DEV_MODE auto-login (never in production)
2. Authorization: Bearer <jwt>
3. Session cookie (COOKIE_NAME)
4. X-User-Id header (tests and local tooling; never in production)

Authentication is optional at this layer: an invalid or missing token yields
an anonymous request. Protected routes turn anonymous into 401.
"""
from datetime import datetime, timedelta, timezone
import logging
from typing import Any, Dict, Optional

import jwt
from starlette.requests import Request

from backend.core.config import settings
from backend.core.logging import LOGGER_NAME


logger = logging.getLogger(LOGGER_NAME)

JWT_ALGORITHM = "HS256"
SESSION_TTL = timedelta(days=365)


def create_session_token(
    open_id: str,
    *,
    name: Optional[str] = None,
    email: Optional[str] = None,
    secret: Optional[str] = None,
    expires_in: timedelta = SESSION_TTL,
    now: Optional[datetime] = None,
) -> str:
    """Issue a session token whose `sub` is the user's open id."""
    key = secret or settings.JWT_SECRET
    if not key:
        raise RuntimeError("JWT_SECRET is not configured")
    issued = now or datetime.now(timezone.utc)
    claims: Dict[str, Any] = {"sub": open_id, "iat": issued, "exp": issued + expires_in}
    if name:
        claims["name"] = name
    if email:
        claims["email"] = email
    return jwt.encode(claims, key, algorithm=JWT_ALGORITHM)


def verify_session_token(token: str, secret: Optional[str] = None) -> Optional[Dict[str, Any]]:
    """
    Verify a session JWT.

    Returns:
        Claims dict, or None when the token is invalid, expired or has no `sub`.
    """
    key = secret or settings.JWT_SECRET
    if not key:
        logger.debug("No JWT_SECRET configured, skipping JWT validation")
        return None
    try:
        payload = jwt.decode(
            token,
            key,
            algorithms=[JWT_ALGORITHM],
            options={"verify_signature": True, "verify_exp": True},
        )
    except jwt.ExpiredSignatureError:
        logger.info("auth.token_expired")
        return None
    except jwt.InvalidTokenError as e:
        logger.debug(f"Invalid token: {e}")
        return None

    if not payload.get("sub"):
        logger.debug("Token has no 'sub' claim")
        return None
    return payload


def extract_token(request: Request, cookie_name: Optional[str] = None) -> Optional[str]:
    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        return auth_header[7:].strip() or None
    return request.cookies.get(cookie_name or settings.COOKIE_NAME)


def resolve_user(request: Request, directory, settings_obj=None):
    """
    Resolve the requesting user and upsert it into the directory.

    Args:
        request: Incoming request
        directory: UserDirectory used for lookups and upserts
        settings_obj: Override settings (defaults to backend.core.config.settings)

    Returns:
        User, or None for anonymous requests
    """
    cfg = settings_obj or settings
    production = (cfg.ENV or "").lower() == "production"

    if cfg.DEV_MODE and not production:
        user = directory.get_or_create_dev_user()
        logger.debug("auth.dev_mode_login", extra={"user_id": user.id})
        return user

    token = extract_token(request, cfg.COOKIE_NAME)
    if token:
        claims = verify_session_token(token, cfg.JWT_SECRET)
        if claims:
            return directory.upsert_user(
                str(claims["sub"]),
                name=claims.get("name"),
                email=claims.get("email"),
                login_method=claims.get("login_method"),
            )

    x_user_id = request.headers.get("X-User-Id")
    if x_user_id and not production:
        return directory.upsert_user(x_user_id, login_method="header")

    return None
