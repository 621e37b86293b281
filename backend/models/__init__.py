"""
╔══════════════════════════════════════════════════════════════════════════════╗
║  DCLense - Models Package                                                    ║
║                                                                              ║
║  Exports every model for easy import                                         ║
║  from models import EntityType, CompanyCreate, RepresentativeFilters, etc.   ║
╚══════════════════════════════════════════════════════════════════════════════╝
"""

# Auth
from .auth import (
    VALID_ROLES,
    UserLogin,
    RoleCheck,
    UserCreate,
    UserUpdate,
    UserResponse,
)

# Entity types
from .entity import (
    EntityType,
    ENTITY_LABELS,
    validate_entity_type,
)

# Companies
from .company import (
    COMPANY_STATUSES,
    CompanyCreate,
    CompanyUpdate,
)

# Representatives
from .representative import (
    REPRESENTATIVE_STATUSES,
    RepresentativeCreate,
    RepresentativeUpdate,
    normalize_representative_status,
    build_full_name,
)

# Filter sets
from .filters import (
    INDETERMINATE_FIELDS,
    FilterSet,
    CompanyFilters,
    RepresentativeFilters,
    parse_filters,
    parse_query_filters,
)

# Change events
from .events import (
    EventType,
    make_event,
)

# Shared bodies
from .common import (
    BulkIds,
    ReadStatusUpdate,
    BulkReadStatusUpdate,
    BulkAssign,
)

# CSV
from .csv_io import (
    CSVTemplateCreate,
    CSVImportRequest,
    CSVExportRequest,
)

# Candidates
from .candidate import (
    CandidateCreate,
    CandidateUpdate,
)

# Contact form
from .contact import ContactMessage

__all__ = [
    # Auth
    "VALID_ROLES",
    "UserLogin",
    "RoleCheck",
    "UserCreate",
    "UserUpdate",
    "UserResponse",
    # Entity types
    "EntityType",
    "ENTITY_LABELS",
    "validate_entity_type",
    # Companies
    "COMPANY_STATUSES",
    "CompanyCreate",
    "CompanyUpdate",
    # Representatives
    "REPRESENTATIVE_STATUSES",
    "RepresentativeCreate",
    "RepresentativeUpdate",
    "normalize_representative_status",
    "build_full_name",
    # Filters
    "INDETERMINATE_FIELDS",
    "FilterSet",
    "CompanyFilters",
    "RepresentativeFilters",
    "parse_filters",
    "parse_query_filters",
    # Events
    "EventType",
    "make_event",
    # Shared
    "BulkIds",
    "ReadStatusUpdate",
    "BulkReadStatusUpdate",
    "BulkAssign",
    # CSV
    "CSVTemplateCreate",
    "CSVImportRequest",
    "CSVExportRequest",
    # Candidates
    "CandidateCreate",
    "CandidateUpdate",
    # Contact
    "ContactMessage",
]
