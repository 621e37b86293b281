"""
╔══════════════════════════════════════════════════════════════════════════════╗
║  DCLense - Representative model (contact person at a company)                ║
║                                                                              ║
║  RULES:                                                                      ║
║  - company_id is optional (a representative may have no company)             ║
║  - full_name = first_name + " " + last_name, kept in sync on write           ║
║  - mark_unread defaults to True on create                                    ║
║  - never hard-deleted: delete sets is_deleted = True                         ║
╚══════════════════════════════════════════════════════════════════════════════╝
"""

from typing import Optional
from pydantic import BaseModel, field_validator


REPRESENTATIVE_STATUSES = [
    "No Status",
    "No Reply",
    "Not Interested",
    "Contacted",
    "Connected",
    "In Communication",
    "Not a Fit",
    "Asked to Reach Out Later",
    "Declined",
    "Client",
    "Pending Connection",
]


def normalize_representative_status(v: Optional[str]) -> Optional[str]:
    """Case-insensitive match against the known statuses, None if unknown"""
    if not v or not v.strip():
        return None
    wanted = v.strip().lower()
    for status in REPRESENTATIVE_STATUSES:
        if status.lower() == wanted:
            return status
    return None


def build_full_name(first_name: Optional[str], last_name: Optional[str]) -> str:
    return f"{first_name or ''} {last_name or ''}".strip()


class RepresentativeCreate(BaseModel):
    first_name: str
    last_name: Optional[str] = ""
    role: Optional[str] = None
    company_id: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    linkedin_profile: Optional[str] = None
    status: Optional[str] = None
    assigned_to: Optional[str] = None
    contacted_by: Optional[str] = None
    contact_date: Optional[str] = None
    contact_source: Optional[str] = None
    outcome: Optional[str] = None
    reminder_date: Optional[str] = None
    notes: Optional[str] = None
    mark_unread: bool = True

    @field_validator("first_name")
    @classmethod
    def validate_first_name(cls, v):
        v = v.strip()
        if not v:
            raise ValueError("first_name is required")
        return v

    @field_validator("status")
    @classmethod
    def validate_status(cls, v):
        if v is None or v == "":
            return None
        if v not in REPRESENTATIVE_STATUSES:
            raise ValueError(f"Invalid representative status: {v}")
        return v


class RepresentativeUpdate(BaseModel):
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    role: Optional[str] = None
    company_id: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    linkedin_profile: Optional[str] = None
    status: Optional[str] = None
    assigned_to: Optional[str] = None
    contacted_by: Optional[str] = None
    contact_date: Optional[str] = None
    contact_source: Optional[str] = None
    outcome: Optional[str] = None
    reminder_date: Optional[str] = None
    notes: Optional[str] = None
    mark_unread: Optional[bool] = None

    @field_validator("first_name")
    @classmethod
    def validate_first_name(cls, v):
        if v is None or not v.strip():
            raise ValueError("first_name cannot be empty")
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
        if v is None or v == "":
            return v
        if v not in REPRESENTATIVE_STATUSES:
            raise ValueError(f"Invalid representative status: {v}")
        return v
