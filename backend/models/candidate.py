"""
DCLense - Candidate model (recruitment pipeline, CV stored in GridFS)
"""

from typing import Optional, Union
from pydantic import BaseModel, field_validator


class CandidateBase(BaseModel):
    first_name: Optional[str] = None
    middle_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[str] = None
    mobile_phone: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip: Optional[str] = None
    title: Optional[str] = None
    category: Optional[str] = None
    industry: Optional[str] = None
    current_company: Optional[str] = None
    current_salary: Optional[str] = None
    desired_salary: Optional[str] = None
    years_of_experience: Optional[str] = None
    skills: Optional[str] = None
    source: Optional[str] = None
    referred_by: Optional[str] = None
    ownership: Optional[str] = None
    status: Optional[str] = None
    general_comments: Optional[str] = None
    date_available: Optional[str] = None
    user_date_added: Optional[str] = None
    willing_to_relocate: Optional[Union[bool, str]] = None

    @field_validator("date_available", "user_date_added", mode="before")
    @classmethod
    def blank_date_is_none(cls, v):
        if v == "":
            return None
        return v

    @field_validator("willing_to_relocate", mode="before")
    @classmethod
    def relocate_to_bool(cls, v):
        # the form posts "yes" / "no"
        if isinstance(v, str):
            return v.strip().lower() == "yes"
        return v


class CandidateCreate(CandidateBase):
    first_name: str
    last_name: str


class CandidateUpdate(CandidateBase):
    pass
