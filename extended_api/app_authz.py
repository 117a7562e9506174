"""Authentication + authorization helpers.

API clients authenticate with an API key (``X-Api-Key`` header or ``key``
query parameter). The resolved principal is stored on ``flask.g`` for the
lifetime of one request; outside a request everything is anonymous.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from functools import wraps
from typing import ParamSpec, TypeVar

from flask import g, has_request_context, request
from sqlalchemy import select

from .db import get_session
from .models import User

P = ParamSpec("P")
R = TypeVar("R")

API_KEY_HEADER = "X-Api-Key"


@dataclass(frozen=True)
class Principal:
    user_id: int | None
    login: str
    admin: bool = False

    @property
    def anonymous(self) -> bool:
        return self.user_id is None


ANONYMOUS = Principal(user_id=None, login="anonymous", admin=False)


class SessionError(Exception):
    """Signals a 401 unauthorized due to a missing/invalid API key."""

    def __init__(self, message: str = "authentication required"):
        super().__init__(message)


class AuthzError(Exception):
    """Signals an authorization (403) failure to be caught by centralized handlers."""

    def __init__(self, message: str = "forbidden"):
        super().__init__(message)


def principal_for_user(user: User | None) -> Principal:
    if user is None or not user.active:
        return ANONYMOUS
    return Principal(user_id=user.id, login=user.login, admin=bool(user.admin))


def load_principal() -> Principal:
    """Resolve the API key of the current request and cache it on ``g``."""
    key = (request.headers.get(API_KEY_HEADER) or request.args.get("key") or "").strip()
    principal = ANONYMOUS
    if key:
        db = get_session()
        user = db.execute(select(User).where(User.api_key == key)).scalar_one_or_none()
        principal = principal_for_user(user)
    g.principal = principal
    return principal


def current_principal() -> Principal:
    if not has_request_context():
        return ANONYMOUS
    return getattr(g, "principal", ANONYMOUS)


def is_admin(principal: Principal | None) -> bool:
    """The single privilege predicate used for write overrides."""
    return bool(principal is not None and not principal.anonymous and principal.admin)


def require_login(fn: Callable[P, R]) -> Callable[P, R]:
    @wraps(fn)
    def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
        if current_principal().anonymous:
            raise SessionError("authentication required")
        return fn(*args, **kwargs)

    return wrapper


def require_admin(fn: Callable[P, R]) -> Callable[P, R]:
    @wraps(fn)
    def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
        principal = current_principal()
        if principal.anonymous:
            raise SessionError("authentication required")
        if not is_admin(principal):
            raise AuthzError("administrator required")
        return fn(*args, **kwargs)

    return wrapper


__all__ = [
    "Principal",
    "ANONYMOUS",
    "SessionError",
    "AuthzError",
    "load_principal",
    "current_principal",
    "principal_for_user",
    "is_admin",
    "require_login",
    "require_admin",
]
