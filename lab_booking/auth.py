from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from functools import wraps
from typing import Any, Callable

import jwt
from flask import current_app, g, jsonify, request

from .config import Settings

ROLE_ADMIN = "Admin"
ROLE_TEACHER = "Teacher"
ROLE_YEAR_COORDINATOR = "YearCoordinator"
ROLE_STUDENT = "Student"
ROLES = (ROLE_ADMIN, ROLE_TEACHER, ROLE_YEAR_COORDINATOR, ROLE_STUDENT)

CAN_READ_BOOKINGS = "bookings:read"
CAN_CREATE_BOOKINGS = "bookings:create"
CAN_EDIT_OWN_BOOKINGS = "bookings:edit_own"
CAN_DECIDE_BOOKINGS = "bookings:decide"
CAN_READ_LABS = "labs:read"
CAN_MANAGE_LABS = "labs:manage"
CAN_READ_EXAM_PERIODS = "exam_periods:read"
CAN_MANAGE_EXAM_PERIODS = "exam_periods:manage"

_READ_ONLY = frozenset({CAN_READ_BOOKINGS, CAN_READ_LABS, CAN_READ_EXAM_PERIODS})
_REQUESTER = _READ_ONLY | {CAN_CREATE_BOOKINGS, CAN_EDIT_OWN_BOOKINGS}

ROLE_CAPABILITIES: dict[str, frozenset[str]] = {
    ROLE_ADMIN: _REQUESTER | {CAN_DECIDE_BOOKINGS, CAN_MANAGE_LABS, CAN_MANAGE_EXAM_PERIODS},
    ROLE_TEACHER: _REQUESTER,
    ROLE_YEAR_COORDINATOR: _REQUESTER,
    ROLE_STUDENT: _READ_ONLY,
}


class AuthError(Exception):
    pass


@dataclass(frozen=True)
class Principal:
    """Requester identity taken from a verified bearer token."""

    user_id: str
    name: str
    role: str
    email: str | None = None
    year_group: int | None = None

    def can(self, capability: str) -> bool:
        return capability in ROLE_CAPABILITIES.get(self.role, frozenset())

    def to_claims(self) -> dict[str, Any]:
        claims: dict[str, Any] = {"userId": self.user_id, "name": self.name, "role": self.role}
        if self.email is not None:
            claims["email"] = self.email
        if self.year_group is not None:
            claims["yearGroup"] = self.year_group
        return claims

    @staticmethod
    def from_claims(claims: dict[str, Any]) -> "Principal":
        user_id = str(claims.get("userId") or claims.get("sub") or "").strip()
        role = str(claims.get("role") or "").strip()
        if not user_id or role not in ROLES:
            raise AuthError("Token is missing a user id or a known role.")
        year_group = claims.get("yearGroup")
        return Principal(
            user_id=user_id,
            name=str(claims.get("name") or claims.get("email") or user_id),
            role=role,
            email=(str(claims["email"]) if claims.get("email") else None),
            year_group=(int(year_group) if year_group is not None else None),
        )


def issue_token(principal: Principal, settings: Settings, now: datetime | None = None) -> str:
    """Return a signed JWT for the principal, expiring after ``jwt_expires_days``."""
    issued_at = now or datetime.now(timezone.utc)
    payload = principal.to_claims()
    payload["iat"] = issued_at
    payload["exp"] = issued_at + timedelta(days=settings.jwt_expires_days)
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_token(token: str, settings: Settings) -> Principal:
    try:
        claims = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except jwt.ExpiredSignatureError as error:
        raise AuthError("Token expired.") from error
    except jwt.InvalidTokenError as error:
        raise AuthError("Invalid token.") from error
    return Principal.from_claims(claims)


def current_principal() -> Principal:
    return g.principal


def require_auth(f: Callable[..., Any]) -> Callable[..., Any]:
    """Decorator that verifies the bearer token and stores the principal on ``g``."""

    @wraps(f)
    def decorated_function(*args: Any, **kwargs: Any) -> Any:
        header = request.headers.get("Authorization", "")
        if not header.startswith("Bearer "):
            return jsonify({"ok": False, "error": "unauthorized", "message": "Authentication required"}), 401

        token = header.split(" ", 1)[1].strip()
        try:
            g.principal = decode_token(token, current_app.config["LAB_BOOKING_SETTINGS"])
        except AuthError as error:
            return jsonify({"ok": False, "error": "unauthorized", "message": str(error)}), 401
        return f(*args, **kwargs)

    return decorated_function


def require_capability(capability: str) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    def decorator(f: Callable[..., Any]) -> Callable[..., Any]:
        @wraps(f)
        @require_auth
        def decorated_function(*args: Any, **kwargs: Any) -> Any:
            if not current_principal().can(capability):
                return jsonify({"ok": False, "error": "forbidden", "message": "Insufficient permissions."}), 403
            return f(*args, **kwargs)

        return decorated_function

    return decorator
