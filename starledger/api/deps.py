"""
starledger.api.deps — FastAPI dependency injection
===================================================
"""

from __future__ import annotations

import os
from functools import lru_cache
from typing import Annotated

import jwt
from fastapi import Depends, Header, HTTPException, status
from jwt.exceptions import InvalidTokenError
from sqlalchemy import Engine

from starledger.config import StarLedgerConfig, load_config
from starledger.database.engine import create_db_engine, get_session
from starledger.database.models import Member
from starledger.services.notifier import ConnectionRegistry
from starledger.services.scheduler import LedgerScheduler

_WEAK_SECRETS = frozenset({
    "starledger-dev-secret-change-me",
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
def get_config() -> StarLedgerConfig:
    return load_config()


@lru_cache(maxsize=1)
def get_notifier() -> ConnectionRegistry:
    """Process-wide live-session registry (also used by the scheduler)."""
    return ConnectionRegistry()


@lru_cache(maxsize=1)
def get_scheduler() -> LedgerScheduler:
    """Process-wide job scheduler; the admin reconcile trigger shares its guard."""
    return LedgerScheduler(get_engine(), get_config(), get_notifier())


def decode_token(token: str) -> dict:
    """Verify a bearer token and return its claims.  Raises 401."""
    try:
        payload = jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALGORITHM])
    except InvalidTokenError:
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Invalid token")
    sub = payload.get("sub")
    if not sub or len(str(sub)) < 2:
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Invalid token subject")
    return payload


def get_token_claims(
    authorization: Annotated[str | None, Header()] = None,
) -> dict:
    if not authorization or not authorization.startswith("Bearer "):
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Missing token")
    return decode_token(authorization.split(" ", 1)[1])


def get_current_member(claims: Annotated[dict, Depends(get_token_claims)]) -> str:
    """The authenticated member id (the token's ``sub``)."""
    return str(claims["sub"])


def get_current_admin(
    member_id: Annotated[str, Depends(get_current_member)],
    engine: Engine = Depends(get_engine),
) -> str:
    """Authenticated member id, if that member holds the admin role.

    The role is read from ``members.role``; token claims are not trusted
    for authorization.
    """
    with get_session(engine) as session:
        member = session.get(Member, member_id)
        is_admin = member is not None and member.is_admin
    if not is_admin:
        raise HTTPException(status.HTTP_403_FORBIDDEN, "Not admin")
    return member_id
