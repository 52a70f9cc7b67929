# schoolpay/services/auth_service.py - Identity store: create, delete and authenticate principals
from sqlalchemy.orm import Session
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from typing import Optional, Dict, Any
from uuid import UUID
import logging

from schoolpay.core.exceptions import BadRequestError
from schoolpay.core.security import hash_password, verify_password, create_access_token
from schoolpay.models.user import User

logger = logging.getLogger(__name__)

DUPLICATE_EMAIL = "A user with this email address has already been registered"


def normalize_email(email: str) -> str:
    return email.strip().lower()


class AuthService:
    """
    Local identity store.

    An identity is committed on its own, before anything references it. Callers
    that fail afterwards are responsible for calling delete_user.
    """

    def __init__(self, db: Session):
        self.db = db

    def find_by_email(self, email: str) -> Optional[User]:
        return self.db.execute(
            select(User).where(User.email == normalize_email(email))
        ).scalar_one_or_none()

    def create_user(
        self,
        email: str,
        password: str,
        user_metadata: Optional[Dict[str, Any]] = None
    ) -> User:
        """
        Create an active identity with a pre-confirmed email.

        Raises:
            BadRequestError: If the email is already registered
        """
        if self.find_by_email(email) is not None:
            raise BadRequestError(DUPLICATE_EMAIL)

        user = User(
            email=normalize_email(email),
            password_hash=hash_password(password),
            user_metadata=user_metadata or {},
            is_active=True,
        )
        self.db.add(user)
        try:
            self.db.commit()
        except IntegrityError:
            # Lost a race with a concurrent registration of the same email
            self.db.rollback()
            raise BadRequestError(DUPLICATE_EMAIL)

        logger.info(f"Identity created: {user.id}")
        return user

    def delete_user(self, user_id: UUID) -> bool:
        """Delete an identity; profile, role and role records cascade"""
        user = self.db.get(User, user_id)
        if user is None:
            return False

        self.db.delete(user)
        self.db.commit()
        logger.info(f"Identity deleted: {user_id}")
        return True

    def authenticate_user(self, email: str, password: str) -> Optional[User]:
        user = self.find_by_email(email)
        if user is None or not user.is_active:
            return None
        if not verify_password(password, user.password_hash):
            return None

        logger.info(f"User authenticated: {user.id}")
        return user

    def issue_token(self, user: User) -> str:
        return create_access_token({"sub": str(user.id), "role": user.role})
