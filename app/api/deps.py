"""
Request dependencies - caller identity, role checks and the shared clock service
"""
from typing import Any, Dict, Optional

import jwt
from atams.exceptions import ForbiddenException, UnauthorizedException
from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from app.core.config import Settings
from app.services.clock_service import ClockService

security = HTTPBearer(auto_error=False)


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_clock_service(request: Request) -> ClockService:
    return request.app.state.clock_service


def decode_token(token: str, settings: Settings) -> Dict[str, Any]:
    try:
        return jwt.decode(token, settings.AUTH_JWT_SECRET, algorithms=[settings.AUTH_JWT_ALG])
    except jwt.ExpiredSignatureError:
        raise UnauthorizedException("Token has expired")
    except jwt.InvalidTokenError:
        raise UnauthorizedException("Invalid token")


def require_auth(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    settings: Settings = Depends(get_settings),
) -> Dict[str, Any]:
    """
    Authenticate the caller from a bearer JWT

    Returns:
        dict: {"user_id": sub claim, "role": role claim}
    """
    if credentials is None:
        raise UnauthorizedException("Not authenticated")
    payload = decode_token(credentials.credentials, settings)
    user_id = payload.get("sub")
    if not user_id:
        raise UnauthorizedException("Invalid token payload")
    return {"user_id": str(user_id), "role": payload.get("role", "student")}


def require_admin(
    current_user: Dict[str, Any] = Depends(require_auth),
    settings: Settings = Depends(get_settings),
) -> Dict[str, Any]:
    if current_user["role"] not in settings.ADMIN_ROLES:
        raise ForbiddenException("Administrator role required")
    return current_user


def resolve_student_id(requested: Optional[str], current_user: Dict[str, Any], settings: Settings) -> str:
    """Students act for themselves; proxy roles may name another student"""
    if not requested or requested == current_user["user_id"]:
        return current_user["user_id"]
    if current_user["role"] not in settings.PROXY_ROLES:
        raise ForbiddenException("Not allowed to act for another student")
    return requested
