"""
DCLense - Request bodies shared by companies and representatives
"""

from typing import List, Optional
from pydantic import BaseModel, field_validator


class BulkIds(BaseModel):
    ids: List[str]

    @field_validator("ids")
    @classmethod
    def validate_ids(cls, v):
        if not v:
            raise ValueError("ids cannot be empty")
        return list(dict.fromkeys(v))


class ReadStatusUpdate(BaseModel):
    mark_unread: bool


class BulkReadStatusUpdate(BulkIds):
    mark_unread: bool


class BulkAssign(BulkIds):
    """assigned_to = None unassigns"""
    assigned_to: Optional[str] = None
