"""
╔══════════════════════════════════════════════════════════════════════════════╗
║  DCLense - Company model                                                     ║
║                                                                              ║
║  RULES:                                                                      ║
║  - company_name is unique among non-deleted companies (case-insensitive)     ║
║  - a company is never hard-deleted: delete sets is_deleted = True            ║
║  - 1-to-many with representatives through representatives.company_id         ║
╚══════════════════════════════════════════════════════════════════════════════╝
"""

from typing import Optional
from pydantic import BaseModel, field_validator


COMPANY_STATUSES = [
    "No Status",
    "Declined",
    "Company Not a Fit",
    "In Progress",
    "Client",
    "Revisit Later",
    "No Reply",
]


def validate_company_status(v):
    if v is None or v == "":
        return None
    if v not in COMPANY_STATUSES:
        raise ValueError(f"Invalid company status: {v}")
    return v


class CompanyCreate(BaseModel):
    company_name: str
    industry: Optional[str] = None
    location: Optional[str] = None
    website: Optional[str] = None
    linkedin: Optional[str] = None
    status: Optional[str] = None
    assigned_to: Optional[str] = None
    last_activity_date: Optional[str] = None
    notes: Optional[str] = None
    mark_unread: bool = True

    @field_validator("company_name")
    @classmethod
    def validate_name(cls, v):
        v = v.strip()
        if not v:
            raise ValueError("company_name is required")
        return v

    @field_validator("status")
    @classmethod
    def validate_status(cls, v):
        return validate_company_status(v)


class CompanyUpdate(BaseModel):
    company_name: Optional[str] = None
    industry: Optional[str] = None
    location: Optional[str] = None
    website: Optional[str] = None
    linkedin: Optional[str] = None
    status: Optional[str] = None
    assigned_to: Optional[str] = None
    last_activity_date: Optional[str] = None
    notes: Optional[str] = None
    mark_unread: Optional[bool] = None

    @field_validator("company_name")
    @classmethod
    def validate_name(cls, v):
        if v is None or not v.strip():
            raise ValueError("company_name cannot be empty")
        return v.strip()

    @field_validator("mark_unread")
    @classmethod
    def validate_mark_unread(cls, v):
        if v is None:
            raise ValueError("mark_unread cannot be null")
        return v

    @field_validator("status")
    @classmethod
    def validate_status(cls, v):
        return validate_company_status(v)
