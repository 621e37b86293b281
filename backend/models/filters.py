"""
╔══════════════════════════════════════════════════════════════════════════════╗
║  DCLense - Filter sets                                                       ║
║                                                                              ║
║  One immutable snapshot per list view. Used twice:                           ║
║  - to build the server query (services/queries.py)                           ║
║  - to re-evaluate pushed change events (services/predicates.py)              ║
║                                                                              ║
║  Unknown keys are rejected at construction time (422 on the API).            ║
║  Empty strings coming from the UI ("all") are treated as "not set".          ║
╚══════════════════════════════════════════════════════════════════════════════╝
"""

from typing import Any, Dict, List, Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator

from .entity import EntityType


# Filters that need a per-user side table or a window rank over sibling rows.
# They cannot be evaluated from a change-event payload.
INDETERMINATE_FIELDS = ("unread_filter", "exported_filter", "rep_position")

SORT_FIELDS = ("sort_field", "sort_order")

UNREAD_VALUES = ("unread_only", "read_only")
EXPORTED_VALUES = ("exported_only", "not_exported_only")

NO_STATUS = "No Status"
UNASSIGNED = "unassigned"
NO_COMPANY = "empty"


class FilterSet(BaseModel):
    """Fields shared by every list view"""
    model_config = ConfigDict(extra="forbid", frozen=True)

    search: Optional[str] = None
    status: Optional[str] = None
    assigned_to: Optional[str] = None
    unread_filter: Optional[str] = None
    created_from: Optional[str] = None
    created_to: Optional[str] = None
    sort_field: Optional[str] = "created_at"
    sort_order: Optional[str] = "desc"

    @field_validator("*", mode="before")
    @classmethod
    def blank_is_unset(cls, v):
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @field_validator("search")
    @classmethod
    def strip_search(cls, v):
        return v.strip() if v else v

    @field_validator("unread_filter")
    @classmethod
    def validate_unread(cls, v):
        if v is not None and v not in UNREAD_VALUES:
            raise ValueError(f"Invalid unread_filter: {v}")
        return v

    @field_validator("sort_order", mode="after")
    @classmethod
    def validate_sort_order(cls, v):
        if v is None:
            return "desc"
        if v not in ("asc", "desc"):
            raise ValueError(f"Invalid sort_order: {v}")
        return v

    def active(self) -> Dict[str, Any]:
        """Fields that actually constrain the result (sorting excluded)"""
        data = self.model_dump(exclude=set(SORT_FIELDS))
        return {k: v for k, v in data.items() if v not in (None, "", [], ())}

    @property
    def is_empty(self) -> bool:
        return not self.active()

    @property
    def is_reconcilable(self) -> bool:
        """False when a push event cannot be judged without a database round trip"""
        return not any(k in INDETERMINATE_FIELDS for k in self.active())


class CompanyFilters(FilterSet):
    @field_validator("sort_field", mode="after")
    @classmethod
    def validate_sort_field(cls, v):
        if v is None:
            return "created_at"
        if v not in ("created_at", "updated_at", "company_name", "last_activity_date", "status"):
            raise ValueError(f"Invalid sort_field: {v}")
        return v


class RepresentativeFilters(FilterSet):
    company_ids: List[str] = []
    company_id: Optional[str] = None
    contacted_by: List[str] = []
    exported_filter: Optional[str] = None
    rep_position: Optional[int] = Field(default=None, ge=1)

    @field_validator("company_ids", "contacted_by", mode="before")
    @classmethod
    def none_is_empty_list(cls, v):
        if v is None:
            return []
        if isinstance(v, str):
            return [x.strip() for x in v.split(",") if x.strip()]
        return v

    @field_validator("exported_filter")
    @classmethod
    def validate_exported(cls, v):
        if v is not None and v not in EXPORTED_VALUES:
            raise ValueError(f"Invalid exported_filter: {v}")
        return v

    @field_validator("sort_field", mode="after")
    @classmethod
    def validate_sort_field(cls, v):
        if v is None:
            return "created_at"
        if v not in ("created_at", "updated_at", "reminder_date", "full_name", "company_name", "status"):
            raise ValueError(f"Invalid sort_field: {v}")
        return v


FILTER_MODELS = {
    EntityType.COMPANIES: CompanyFilters,
    EntityType.REPRESENTATIVES: RepresentativeFilters,
}


def parse_filters(entity_type: EntityType, data: Optional[dict] = None) -> FilterSet:
    """Build the filter set for an entity type (raises pydantic.ValidationError)"""
    return FILTER_MODELS[EntityType(entity_type)](**(data or {}))


LIST_FIELDS = ("company_ids", "contacted_by")


def parse_query_filters(entity_type: EntityType, query_params, exclude=("page", "page_size", "token")) -> FilterSet:
    """Filter set from URL query parameters (repeated list params are joined)"""
    data = {}
    for key in query_params.keys():
        if key in exclude:
            continue
        if key in LIST_FIELDS and hasattr(query_params, "getlist"):
            data[key] = ",".join(query_params.getlist(key))
        else:
            data[key] = query_params.get(key)
    return parse_filters(entity_type, data)
