"""Utilities for issuing and validating bearer tokens for catalog administration."""

from __future__ import annotations

import time
from typing import Any

import jwt

from ..config import get_settings


class MissingScope(PermissionError):
    """The token is valid but lacks the scope required by the operation."""


def issue_access_token(*, subject: str, scopes: list[str] | None = None) -> tuple[str, int]:
    """Create a signed JWT for an operator.

    Parameters
    ----------
    subject:
        Operator identifier embedded in the ``sub`` claim; also the rate-limit key.
    scopes:
        Scope list; defaults to the configured catalog admin scope.

    Returns
    -------
    tuple[str, int]
        The encoded JWT string and its TTL in seconds.
    """

    settings = get_settings()
    now = int(time.time())
    expires_in = settings.jwt_ttl_seconds
    payload: dict[str, Any] = {
        "iss": settings.jwt_issuer,
        "sub": subject,
        "scopes": scopes if scopes is not None else [settings.admin_scope],
        "iat": now,
        "exp": now + expires_in,
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm="HS256"), expires_in


def decode_access_token(token: str) -> dict[str, Any]:
    """Decode and verify a JWT returning its payload.

    Raises
    ------
    jwt.PyJWTError
        Propagated when the token is invalid, expired, or signed by another issuer.
    """

    settings = get_settings()
    return jwt.decode(
        token,
        settings.jwt_secret,
        algorithms=["HS256"],
        issuer=settings.jwt_issuer,
        options={"require": ["exp", "iss", "sub"]},
    )


def require_scope(claims: dict[str, Any], scope: str) -> None:
    """Raise :class:`MissingScope` unless ``scope`` is granted by ``claims``."""
    granted = claims.get("scopes") or []
    if scope not in granted:
        raise MissingScope(f"scope {scope!r} required")
