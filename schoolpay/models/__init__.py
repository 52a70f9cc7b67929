# schoolpay/models/__init__.py - Import all models so SQLAlchemy can discover them

from schoolpay.models.base import Base

from schoolpay.models.user import User, Profile, UserRoleAssignment, AppRole
from schoolpay.models.academic import Subject, SchoolClass
from schoolpay.models.student import Student, Teacher, TeacherSpecialty
from schoolpay.models.payment import FeeArticle, StudentArticle, Invoice, PaymentTransaction
from schoolpay.models.notification import Notification

__all__ = [
    "Base",
    "User",
    "Profile",
    "UserRoleAssignment",
    "AppRole",
    "Subject",
    "SchoolClass",
    "Student",
    "Teacher",
    "TeacherSpecialty",
    "FeeArticle",
    "StudentArticle",
    "Invoice",
    "PaymentTransaction",
    "Notification",
]
