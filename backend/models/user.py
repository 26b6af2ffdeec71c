"""
backend/models/user.py

User model: identity from the session provider plus subscription state.
"""

from datetime import datetime
from typing import Optional
from pydantic import BaseModel, ConfigDict


class User(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    open_id: str
    name: Optional[str] = None
    email: Optional[str] = None
    login_method: Optional[str] = None
    role: str = "user"  # user, admin
    last_signed_in: Optional[datetime] = None

    # Subscription state (written by the billing webhook)
    subscription_tier: str = "free"  # free, pro, pro_plus
    stripe_customer_id: Optional[str] = None
    stripe_subscription_id: Optional[str] = None
    subscription_status: str = "active"  # active, canceled, past_due, unpaid, ...
    subscription_ends_at: Optional[datetime] = None

    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @staticmethod
    def from_row(row) -> "User":
        return User(
            id=row.id,
            open_id=row.open_id,
            name=row.name,
            email=row.email,
            login_method=row.login_method,
            role=row.role,
            last_signed_in=row.last_signed_in,
            subscription_tier=row.subscription_tier,
            stripe_customer_id=row.stripe_customer_id,
            stripe_subscription_id=row.stripe_subscription_id,
            subscription_status=row.subscription_status,
            subscription_ends_at=row.subscription_ends_at,
            created_at=row.created_at,
            updated_at=row.updated_at,
        )
