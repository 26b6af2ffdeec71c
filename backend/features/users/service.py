"""
User directory service.
- upsert_user(open_id, ...) on every authenticated request
- get_user(user_id) / get_user_by_open_id(open_id)
- get_or_create_dev_user() for DEV_MODE auto-login
"""

from datetime import datetime, timezone
import logging
from typing import Optional
from sqlalchemy import select, insert, update
from sqlalchemy.exc import IntegrityError

from backend.core.config import settings
from backend.core.database import Database, users
from backend.core.logging import LOGGER_NAME
from backend.models.user import User


logger = logging.getLogger(LOGGER_NAME)

DEV_USER_OPEN_ID = "dev-user-123"
DEV_USER_NAME = "Dev User"


class UserDirectory:
    def __init__(self, db: Database, owner_open_id: Optional[str] = None):
        self.db = db
        self.owner_open_id = owner_open_id if owner_open_id is not None else settings.OWNER_OPEN_ID

    def get_user(self, user_id: int) -> Optional[User]:
        with self.db.session() as session:
            row = session.execute(select(users).where(users.c.id == user_id)).first()
            return User.from_row(row) if row else None

    def get_user_by_open_id(self, open_id: str) -> Optional[User]:
        with self.db.session() as session:
            row = session.execute(select(users).where(users.c.open_id == open_id)).first()
            return User.from_row(row) if row else None

    def upsert_user(
        self,
        open_id: str,
        *,
        name: Optional[str] = None,
        email: Optional[str] = None,
        login_method: Optional[str] = None,
        role: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> User:
        """
        Insert or refresh an identity. Only fields that are passed are
        overwritten; last_signed_in is always bumped.
        """
        if not open_id:
            raise ValueError("open_id is required for upsert")

        now = now or datetime.now(timezone.utc)
        values = {"last_signed_in": now, "updated_at": now}
        if name is not None:
            values["name"] = name
        if email is not None:
            values["email"] = email
        if login_method is not None:
            values["login_method"] = login_method
        if role is not None:
            values["role"] = role
        elif self.owner_open_id and open_id == self.owner_open_id:
            values["role"] = "admin"

        try:
            self._write_upsert(open_id, values, now)
        except IntegrityError:
            # Concurrent first sign-in inserted the row; apply as an update
            with self.db.session() as session:
                session.execute(update(users).where(users.c.open_id == open_id).values(**values))

        user = self.get_user_by_open_id(open_id)
        if user is None:
            raise RuntimeError(f"user {open_id} missing after upsert")
        return user

    def _write_upsert(self, open_id: str, values: dict, now: datetime) -> None:
        with self.db.session() as session:
            existing = session.execute(select(users.c.id).where(users.c.open_id == open_id)).first()
            if existing:
                session.execute(update(users).where(users.c.id == existing.id).values(**values))
                return
            row = {"role": "user", **values}
            session.execute(
                insert(users).values(
                    open_id=open_id,
                    subscription_tier="free",
                    subscription_status="active",
                    created_at=now,
                    **row,
                )
            )
            logger.info("users.created", extra={"open_id": open_id})

    def get_or_create_dev_user(self) -> User:
        existing = self.get_user_by_open_id(DEV_USER_OPEN_ID)
        if existing:
            return existing
        logger.info("users.dev_user_created", extra={"email": settings.DEV_USER_EMAIL})
        return self.upsert_user(
            DEV_USER_OPEN_ID,
            name=DEV_USER_NAME,
            email=settings.DEV_USER_EMAIL,
            login_method="dev",
        )
