"""
Session API.

- GET  /api/auth/me: current user, or null when anonymous
- POST /api/auth/logout: clear the session cookie
"""
from typing import Optional

from fastapi import APIRouter, Depends, Response

from backend.api.deps import get_optional_user
from backend.core.config import settings
from backend.models.user import User

router = APIRouter()


@router.get("/me", response_model=Optional[User])
def me(user: Optional[User] = Depends(get_optional_user)):
    return user


@router.post("/logout")
def logout(response: Response):
    secure = (settings.ENV or "").lower() == "production"
    response.delete_cookie(
        settings.COOKIE_NAME,
        path="/",
        httponly=True,
        secure=secure,
        samesite="none" if secure else "lax",
    )
    return {"success": True}
