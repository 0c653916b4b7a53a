"""
Credential issuing and the guards that protect routes.

``verify_token`` checks the bearer token. ``verify_admin`` and
``verify_teacher`` run after it and compare the caller's stored role.
"""
import logging
import os
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import jwt
from fastapi import Depends, Header, Request

from database import Store, get_store
from errors import Forbidden, Unauthorized
from schemas import Role, normalize_email

logger = logging.getLogger(__name__)

SECRET_KEY = os.getenv("ACCESS_TOKEN_SECRET", "dev-access-token-secret-change-me")
ALGORITHM = "HS256"
JWT_EXP_MIN = int(os.getenv("JWT_EXP_MIN", "60"))


def issue_token(identity: Dict[str, Any]) -> str:
    now = datetime.now(timezone.utc)
    payload = {
        **identity,
        "iat": now,
        "exp": now + timedelta(minutes=JWT_EXP_MIN),
    }
    return jwt.encode(payload, SECRET_KEY, algorithm=ALGORITHM)


def verify_token(request: Request, authorization: Optional[str] = Header(None)) -> Dict[str, Any]:
    if not authorization:
        raise Unauthorized()
    parts = authorization.split(" ")
    if len(parts) != 2 or parts[0].lower() != "bearer":
        raise Unauthorized()
    try:
        payload = jwt.decode(parts[1], SECRET_KEY, algorithms=[ALGORITHM])
    except jwt.ExpiredSignatureError:
        logger.info("Rejected expired token")
        raise Unauthorized()
    except jwt.InvalidTokenError:
        raise Unauthorized()
    if not isinstance(payload.get("email"), str) or not payload["email"].strip():
        raise Unauthorized()
    payload["email"] = normalize_email(payload["email"])
    request.state.decoded = payload
    return payload


def require_role(role: Role):
    """Build a guard that lets through only callers whose stored role is ``role``.

    The user document is read on every call, so a role change made by an
    admin takes effect on the next request.
    """

    def guard(
        decoded: Dict[str, Any] = Depends(verify_token),
        store: Store = Depends(get_store),
    ) -> Dict[str, Any]:
        user = store.users.find_one({"email": decoded["email"]})
        if not user or user.get("role") != role:
            raise Forbidden()
        return decoded

    guard.__name__ = f"verify_{role.lower()}"
    return guard


verify_admin = require_role("Admin")
verify_teacher = require_role("Teacher")


def require_self(decoded: Dict[str, Any], email: str):
    if decoded.get("email") != normalize_email(email):
        raise Forbidden()
