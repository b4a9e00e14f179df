import re
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, EmailStr

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
MIN_PASSWORD_LENGTH = 6


class User(BaseModel):
    """
    Represents a user authenticated by the identity provider.
    """
    id: str
    email: EmailStr
    email_verified: bool = False
    last_sign_in: Optional[datetime] = None

    @classmethod
    def from_auth_user(cls, auth_user) -> "User":
        return cls(
            id=auth_user.uid,
            email=auth_user.email,
            email_verified=auth_user.email_verified,
            last_sign_in=auth_user.last_sign_in,
        )


class UserProfile(BaseModel):
    """
    The per-user profile document stored under ``users/{uid}``.
    """
    email: Optional[str] = None
    created_at: Optional[datetime] = None
    last_login: Optional[datetime] = None

    @classmethod
    def from_document(cls, data: dict) -> "UserProfile":
        return cls(
            email=data.get("email"),
            created_at=_as_datetime(data.get("createdAt")),
            last_login=_as_datetime(data.get("lastLogin")),
        )


class Credentials(BaseModel):
    email: str
    password: str


class SignupRequest(Credentials):
    confirm_password: Optional[str] = None


class SessionUser(BaseModel):
    """
    Response model for ``/auth/me``.
    """
    logged_in: bool
    user: Optional[User] = None
    profile: Optional[UserProfile] = None


def _as_datetime(value) -> Optional[datetime]:
    # Pending server timestamps come back as provider sentinels.
    return value if isinstance(value, datetime) else None
