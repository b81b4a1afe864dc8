"""
council.api.deps — FastAPI dependency injection
=================================================

Bearer tokens are HS256 JWTs whose ``sub`` claim is the caller's
professional id.  Admin access is NOT taken from the token: the ``sub``
is cross-checked against the ``user_roles`` table on every request.
"""

from __future__ import annotations

import os
import uuid
from functools import lru_cache
from typing import Annotated

import jwt
from fastapi import Depends, Header, HTTPException, status
from jwt.exceptions import InvalidTokenError
from sqlalchemy import Engine, select
from sqlalchemy.orm import Session

from council.config import CouncilConfig, load_config
from council.database.engine import create_db_engine
from council.database.models import UserRole
from council.services.notification_service import PushDispatcher

_WEAK_SECRETS = frozenset({
    "council-dev-secret-change-me",
    "change-me",
    "secret",
    "dev",
    "",
})

_MIN_SECRET_LENGTH = 32

JWT_ALGORITHM = "HS256"


def _load_jwt_secret() -> str:
    """Load and validate JWT_SECRET from the environment.

    Raises RuntimeError at import time if the secret is missing, blank,
    too short (< 32 chars), or a known weak default.
    """
    secret = os.getenv("JWT_SECRET", "")
    if not secret:
        raise RuntimeError(
            "JWT_SECRET environment variable is not set. "
            "Generate one with: python -c \"import secrets; print(secrets.token_urlsafe(64))\""
        )
    if secret in _WEAK_SECRETS:
        raise RuntimeError(
            f"JWT_SECRET is set to a known weak default ('{secret}'). "
            "Please set a strong, unique secret."
        )
    if len(secret) < _MIN_SECRET_LENGTH:
        raise RuntimeError(
            f"JWT_SECRET is too short ({len(secret)} chars). "
            f"Minimum length is {_MIN_SECRET_LENGTH} characters."
        )
    return secret


JWT_SECRET: str = _load_jwt_secret()


@lru_cache(maxsize=1)
def get_engine() -> Engine:
    return create_db_engine()


@lru_cache(maxsize=1)
def get_config() -> CouncilConfig:
    return load_config()


def get_push_dispatcher(
    cfg: CouncilConfig = Depends(get_config),
) -> PushDispatcher:
    return PushDispatcher.from_env(cfg.push_notification_url)


def get_current_user(
    authorization: Annotated[str | None, Header()] = None,
) -> uuid.UUID:
    """Validate the bearer JWT and return the caller's id.  401 if invalid."""
    if not authorization or not authorization.startswith("Bearer "):
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Missing token")
    token = authorization.split(" ", 1)[1]
    try:
        payload = jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALGORITHM])
        return uuid.UUID(str(payload["sub"]))
    except (InvalidTokenError, KeyError, ValueError):
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Invalid token")


def get_current_admin(
    user_id: uuid.UUID = Depends(get_current_user),
    engine: Engine = Depends(get_engine),
    cfg: CouncilConfig = Depends(get_config),
) -> uuid.UUID:
    """Require an admin role row for the caller.  403 otherwise."""
    with Session(engine) as session:
        role = session.scalar(
            select(UserRole.id).where(
                UserRole.user_id == user_id,
                UserRole.role == cfg.admin_role,
            )
        )
    if role is None:
        raise HTTPException(status.HTTP_403_FORBIDDEN, "Not admin")
    return user_id
