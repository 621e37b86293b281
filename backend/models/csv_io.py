"""
DCLense - CSV import / export models
"""

from typing import Any, Dict, List, Optional
from pydantic import BaseModel, field_validator

from .entity import EntityType


TEMPLATE_TYPES = ["companies", "representatives"]


class CSVTemplateCreate(BaseModel):
    template_name: str
    template_type: str
    field_mappings: Dict[str, str] = {}
    description: Optional[str] = ""

    @field_validator("template_type")
    @classmethod
    def validate_type(cls, v):
        if v not in TEMPLATE_TYPES:
            raise ValueError(f"Invalid template_type: {v}")
        return v


class CSVImportRequest(BaseModel):
    """
    Rows already mapped to database field names by the client.
    mode=import inserts, mode=modify updates existing rows by natural key.
    """
    entity_type: EntityType
    rows: List[Dict[str, Any]]
    mode: str = "import"

    @field_validator("mode")
    @classmethod
    def validate_mode(cls, v):
        if v not in ("import", "modify"):
            raise ValueError(f"Invalid mode: {v}")
        return v


class CSVExportRequest(BaseModel):
    entity_type: EntityType
    fields: List[str]
    purpose: Optional[str] = ""
    filters: Dict[str, Any] = {}

    @field_validator("fields")
    @classmethod
    def validate_fields(cls, v):
        if not v:
            raise ValueError("fields cannot be empty")
        return v
