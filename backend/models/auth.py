"""
DCLense - Auth & user models
Only emails present in the users collection may sign in.
"""

from pydantic import BaseModel, field_validator
from typing import Optional


VALID_ROLES = ["admin", "user"]


class UserLogin(BaseModel):
    email: str
    password: str


class RoleCheck(BaseModel):
    email: str


class UserCreate(BaseModel):
    email: str
    password: str
    first_name: str
    last_name: Optional[str] = ""
    role: str = "user"

    @field_validator("role")
    @classmethod
    def validate_role(cls, v):
        if v not in VALID_ROLES:
            raise ValueError(f"Invalid role: {v}. Valid: {VALID_ROLES}")
        return v


class UserUpdate(BaseModel):
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    role: Optional[str] = None
    password: Optional[str] = None
    is_active: Optional[bool] = None

    @field_validator("role")
    @classmethod
    def validate_role(cls, v):
        if v is not None and v not in VALID_ROLES:
            raise ValueError(f"Invalid role: {v}")
        return v


class UserResponse(BaseModel):
    id: str
    email: str
    first_name: str
    last_name: str = ""
    role: str = "user"
    is_active: bool = True
