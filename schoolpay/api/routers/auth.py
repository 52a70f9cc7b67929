# schoolpay/api/routers/auth.py - Password login against the identity store
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
import logging

from schoolpay.core.db import get_db
from schoolpay.core.exceptions import AuthenticationError
from schoolpay.schemas.auth import LoginIn, LoginOut
from schoolpay.services.auth_service import AuthService

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/login", response_model=LoginOut)
async def login(
    credentials: LoginIn,
    db: Session = Depends(get_db)
):
    """Exchange email and password for a bearer token"""
    auth_service = AuthService(db)

    user = auth_service.authenticate_user(credentials.email, credentials.password)
    if not user:
        logger.warning(f"Failed login attempt for {credentials.email}")
        raise AuthenticationError("Invalid email or password")

    return LoginOut(
        access_token=auth_service.issue_token(user),
        user_id=str(user.id),
        role=user.role,
    )
