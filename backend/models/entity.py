"""
DCLense - Entity types

The two collections reconciled in realtime. The enum value is also the
MongoDB collection name.
"""

from enum import Enum


class EntityType(str, Enum):
    COMPANIES = "companies"
    REPRESENTATIVES = "representatives"


# Singular form, as stored in audit logs and user_reads
ENTITY_LABELS = {
    EntityType.COMPANIES: "company",
    EntityType.REPRESENTATIVES: "representative",
}


def validate_entity_type(value: str) -> bool:
    return value in [e.value for e in EntityType]
