from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Mapping
from uuid import uuid4

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from attendance_desk.errors import ApiError
from attendance_desk.models import UserContext
from attendance_desk.settings import get_settings

bearer_scheme = HTTPBearer(auto_error=False)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _claim(claims: Mapping[str, Any], *keys: str) -> str | None:
    for key in keys:
        value = claims.get(key)
        if value is None:
            continue
        text = str(value).strip()
        if text:
            return text
    return None


def create_access_token(
    *,
    sub: str,
    role: str,
    username: str | None = None,
    employee_id: str | None = None,
    department_id: str | None = None,
) -> tuple[str, int, dict[str, Any]]:
    settings = get_settings()
    now = _utcnow()
    exp = now + timedelta(minutes=settings.access_token_minutes)
    claims = {
        "sub": sub,
        "username": username,
        "roleName": role,
        "empId": employee_id,
        "deptId": department_id,
        "iss": settings.jwt_issuer,
        "aud": settings.jwt_audience,
        "iat": int(now.timestamp()),
        "exp": int(exp.timestamp()),
        "jti": str(uuid4()),
        "typ": "access",
    }
    token = jwt.encode(claims, settings.jwt_secret, algorithm="HS256")
    return token, settings.access_token_minutes * 60, claims


def decode_token(token: str) -> dict[str, Any]:
    settings = get_settings()
    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=["HS256"],
            audience=settings.jwt_audience,
            issuer=settings.jwt_issuer,
            options={"require_sub": True, "require_iat": True, "require_exp": True},
        )
    except JWTError as exc:
        raise ApiError(status_code=401, code="INVALID_TOKEN", message="Token is invalid.") from exc

    token_type = payload.get("typ")
    if token_type is not None and token_type != "access":
        raise ApiError(status_code=401, code="INVALID_TOKEN", message="Token type is invalid.")

    subject = payload.get("sub")
    if not isinstance(subject, str) or not subject:
        raise ApiError(status_code=401, code="INVALID_TOKEN", message="Token subject is invalid.")
    return payload


def user_from_claims(claims: Mapping[str, Any]) -> UserContext:
    """Build the caller identity from token claims issued by the HR auth service."""
    user_id = _claim(claims, "userId", "user_id", "sub") or ""
    return UserContext(
        user_id=user_id,
        role_name=_claim(claims, "roleName", "role") or "",
        employee_id=_claim(claims, "empId", "employeeId", "employee_id"),
        manager_department_id=_claim(claims, "deptId", "managerDepartmentId", "department_id"),
        username=_claim(claims, "username", "preferred_username"),
    )


def get_current_user(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> UserContext | None:
    if credentials is None or credentials.scheme.lower() != "bearer":
        return None
    user = user_from_claims(decode_token(credentials.credentials))
    request.state.actor = user.role_name or "unknown"
    request.state.actor_id = user.username or user.user_id
    return user


def require_user(user: UserContext | None = Depends(get_current_user)) -> UserContext:
    if user is None:
        raise ApiError(status_code=401, code="INVALID_TOKEN", message="Missing bearer token.")
    return user
