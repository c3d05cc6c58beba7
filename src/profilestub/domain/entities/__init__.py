"""Domain entities for ProfileStub.

Entities are pure Python dataclasses. They have no dependencies on
infrastructure or external frameworks.
"""

from profilestub.domain.entities.record import Profile, Subprofile
from profilestub.domain.entities.schema import (
    Collection,
    Database,
    Field,
    FieldType,
    Schema,
)

__all__ = [
    "Collection",
    "Database",
    "Field",
    "FieldType",
    "Profile",
    "Schema",
    "Subprofile",
]
