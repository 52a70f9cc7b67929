# schoolpay/services/provisioning_service.py - Creates an identity with its profile, role and role record
from sqlalchemy.orm import Session
from sqlalchemy.exc import SQLAlchemyError
from dataclasses import dataclass
from typing import List
from uuid import UUID
import logging

from schoolpay.api.deps.auth import AdminCapability
from schoolpay.core.exceptions import ProvisioningError
from schoolpay.models.user import User, Profile, UserRoleAssignment, AppRole
from schoolpay.models.student import Student, Teacher, TeacherSpecialty
from schoolpay.schemas.user import CreateUserRequest
from schoolpay.services.auth_service import AuthService

logger = logging.getLogger(__name__)


@dataclass
class ProvisionedAccount:
    user_id: UUID
    entity_id: UUID
    user_type: str

    @property
    def message(self) -> str:
        label = "Teacher" if self.user_type == "teacher" else "Student"
        return f"{label} created successfully"


class AccountProvisioner:
    """
    Provision a teacher or student account.

    Steps run in order, each depending on the previous one:
    identity -> profile -> role -> teacher/student record -> specialties.
    A failure after the identity exists deletes the identity again. Specialty
    attachment is the exception: it is logged and the account stands.
    """

    def __init__(self, db: Session, auth_service: AuthService = None):
        self.db = db
        self.auth_service = auth_service or AuthService(db)

    def provision(self, admin: AdminCapability, data: CreateUserRequest) -> ProvisionedAccount:
        logger.info(f"Creating {data.user_type}: {data.email} (requested by {admin.user_id})")

        user = self.auth_service.create_user(
            email=data.email,
            password=data.password,
            user_metadata={"first_name": data.first_name, "last_name": data.last_name},
        )
        logger.info(f"User created: {user.id}")

        profile = self._run_step(user, "profile", "Failed to create profile", lambda: self._create_profile(user, data))
        logger.info(f"Profile created: {profile.id}")

        role = AppRole.TEACHER if data.is_teacher else AppRole.STUDENT
        self._run_step(user, "role", "Failed to assign role", lambda: self._assign_role(user, role))
        logger.info(f"Role assigned: {role.value}")

        if data.is_teacher:
            teacher = self._run_step(
                user, "teacher", "Failed to create teacher", lambda: self._create_teacher(user, profile, data)
            )
            logger.info(f"Teacher created: {teacher.id}")
            self.db.commit()

            if data.specialties:
                self._attach_specialties(teacher, data.specialties)
            entity_id = teacher.id
        else:
            student = self._run_step(
                user, "student", "Failed to create student", lambda: self._create_student(user, profile, data)
            )
            logger.info(f"Student created: {student.id}")
            self.db.commit()
            entity_id = student.id

        return ProvisionedAccount(user_id=user.id, entity_id=entity_id, user_type=data.user_type)

    def _run_step(self, user: User, step: str, message: str, action):
        try:
            record = action()
            self.db.flush()
            return record
        except SQLAlchemyError as e:
            logger.error(f"{step.capitalize()} creation error: {e}")
            self.db.rollback()
            self._rollback_identity(user.id)
            raise ProvisioningError(message)

    def _rollback_identity(self, user_id: UUID) -> None:
        """Best-effort compensating delete of the identity created by this request"""
        try:
            self.auth_service.delete_user(user_id)
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to roll back identity {user_id}: {e}")

    def _create_profile(self, user: User, data: CreateUserRequest) -> Profile:
        profile = Profile(
            user_id=user.id,
            first_name=data.first_name,
            last_name=data.last_name,
            email=user.email,
            phone=data.phone or None,
        )
        self.db.add(profile)
        return profile

    def _assign_role(self, user: User, role: AppRole) -> UserRoleAssignment:
        assignment = UserRoleAssignment(user_id=user.id, role=role.value)
        self.db.add(assignment)
        return assignment

    def _create_teacher(self, user: User, profile: Profile, data: CreateUserRequest) -> Teacher:
        teacher = Teacher(
            user_id=user.id,
            profile_id=profile.id,
            employee_id=data.employee_id or None,
        )
        self.db.add(teacher)
        return teacher

    def _create_student(self, user: User, profile: Profile, data: CreateUserRequest) -> Student:
        student = Student(
            user_id=user.id,
            profile_id=profile.id,
            matricule=data.matricule,
            class_id=data.class_id,
            birthday=data.birthday,
            parent_name=data.parent_name or None,
            parent_phone=data.parent_phone or None,
        )
        self.db.add(student)
        return student

    def _attach_specialties(self, teacher: Teacher, subject_ids: List[UUID]) -> None:
        self.db.add_all([
            TeacherSpecialty(teacher_id=teacher.id, subject_id=subject_id)
            for subject_id in dict.fromkeys(subject_ids)
        ])
        try:
            self.db.commit()
            logger.info(f"Specialties added: {len(subject_ids)}")
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Specialties error for teacher {teacher.id}: {e}")
