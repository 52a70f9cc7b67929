# schoolpay/api/routers/users.py - Account provisioning (admin only)
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
import logging

from schoolpay.core.db import get_db
from schoolpay.api.deps.auth import AdminCapability, require_admin
from schoolpay.schemas.user import CreateUserRequest, CreateUserResponse
from schoolpay.services.provisioning_service import AccountProvisioner

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/create-user", response_model=CreateUserResponse)
async def create_user(
    data: CreateUserRequest,
    admin: AdminCapability = Depends(require_admin),
    db: Session = Depends(get_db)
):
    """
    Create an identity plus its profile, role and teacher/student record.

    Any failure after the identity exists removes the identity again.
    """
    account = AccountProvisioner(db).provision(admin, data)

    return CreateUserResponse(
        user_id=account.user_id,
        entity_id=account.entity_id,
        message=account.message,
    )
