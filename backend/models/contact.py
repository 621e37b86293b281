"""
DCLense - Contact form
"""

import re
from typing import Optional
from pydantic import BaseModel, field_validator

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


class ContactMessage(BaseModel):
    name: str
    email: str
    message: str
    company: Optional[str] = None

    @field_validator("name", "message")
    @classmethod
    def not_blank(cls, v):
        v = v.strip()
        if not v:
            raise ValueError("All fields are required")
        return v

    @field_validator("email")
    @classmethod
    def validate_email(cls, v):
        v = v.strip()
        if not EMAIL_PATTERN.match(v):
            raise ValueError("Please enter a valid email address")
        return v
