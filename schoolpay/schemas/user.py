# schoolpay/schemas/user.py - Account provisioning payloads
from pydantic import BaseModel, EmailStr, Field, model_validator
from typing import List, Literal, Optional
from datetime import date
from uuid import UUID


class CreateUserRequest(BaseModel):
    """Body accepted by the account provisioner (camelCase on the wire)"""
    email: EmailStr
    password: str = Field(..., min_length=1)
    first_name: str = Field(..., min_length=1, alias="firstName")
    last_name: str = Field(..., min_length=1, alias="lastName")
    phone: Optional[str] = None
    user_type: Literal["teacher", "student"] = Field(..., alias="userType")

    # Teacher specific
    employee_id: Optional[str] = Field(None, alias="employeeId")
    specialties: List[UUID] = Field(default_factory=list)

    # Student specific
    matricule: Optional[str] = None
    class_id: Optional[UUID] = Field(None, alias="classId")
    birthday: Optional[date] = None
    parent_name: Optional[str] = Field(None, alias="parentName")
    parent_phone: Optional[str] = Field(None, alias="parentPhone")

    class Config:
        populate_by_name = True
        str_strip_whitespace = True
        json_schema_extra = {
            "example": {
                "email": "awa.diallo@ecole-demo.com",
                "password": "Secret123!",
                "firstName": "Awa",
                "lastName": "Diallo",
                "userType": "student",
                "matricule": "STU-2024-001",
            }
        }

    @model_validator(mode="after")
    def require_matricule_for_students(self):
        if self.user_type == "student" and not self.matricule:
            raise ValueError("Matricule is required for a student")
        return self

    @property
    def is_teacher(self) -> bool:
        return self.user_type == "teacher"


class CreateUserResponse(BaseModel):
    success: bool = True
    user_id: UUID = Field(..., serialization_alias="userId")
    entity_id: UUID = Field(..., serialization_alias="entityId")
    message: str
