# schoolpay/api/deps/auth.py - Bearer authentication and role-based authorization
from dataclasses import dataclass
from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session
from sqlalchemy import select
from schoolpay.core.db import get_db
from schoolpay.core.exceptions import AuthenticationError, PermissionDeniedError
from schoolpay.core.security import decode_token
from schoolpay.models.user import User, UserRoleAssignment, AppRole
from typing import Any, Dict, Optional
from uuid import UUID
import logging

logger = logging.getLogger(__name__)

# auto_error=False so a missing header is reported as 401 rather than FastAPI's 403
security = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class AuthContext:
    """Caller identity and role, resolved once per request"""
    user: User
    role: Optional[str]
    claims: Dict[str, Any]

    @property
    def user_id(self) -> UUID:
        return self.user.id

    @property
    def is_admin(self) -> bool:
        return self.role == AppRole.ADMIN.value


@dataclass(frozen=True)
class AdminCapability:
    """Proof that the caller is an administrator; required by admin-only services"""
    context: AuthContext

    @property
    def user_id(self) -> UUID:
        return self.context.user_id


def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: Session = Depends(get_db)
) -> AuthContext:
    """
    Decode the bearer token and resolve the identity and its role.
    """
    if credentials is None or not credentials.credentials:
        raise AuthenticationError("Unauthorized")

    claims = decode_token(credentials.credentials)

    user_id_str = claims.get("sub")
    if not user_id_str:
        raise AuthenticationError("Unauthorized")

    try:
        user_uuid = UUID(user_id_str)
    except ValueError:
        raise AuthenticationError("Unauthorized")

    user = db.get(User, user_uuid)
    if not user or not user.is_active:
        raise AuthenticationError("Unauthorized")

    role = db.execute(
        select(UserRoleAssignment.role).where(UserRoleAssignment.user_id == user.id)
    ).scalar_one_or_none()

    return AuthContext(user=user, role=role, claims=claims)


def require_admin(ctx: AuthContext = Depends(get_current_user)) -> AdminCapability:
    """Require the admin role"""
    if not ctx.is_admin:
        logger.warning(f"Admin access denied for user {ctx.user_id} (role={ctx.role})")
        raise PermissionDeniedError("Access denied - admin required")
    return AdminCapability(context=ctx)
