"""Profile and subprofile records.

Records are plain dataclasses built from stored rows. ``to_api_dict()``
renders them the way the emulated API returns them: IDs and field values
as strings, ``removed`` as a boolean.
"""

from dataclasses import dataclass, field
from typing import Any


def _stringify(value: Any) -> str:
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


@dataclass
class Profile:
    """A profile stored in a database.

    Attributes:
        id: Profile ID, unique across all databases.
        database_id: Owning database.
        fields: Field values keyed by canonical field name.
        secret: 28 hex characters, fixed at creation.
        created: Creation timestamp ("YYYY-MM-DD HH:MM:SS").
        modified: Last modification timestamp.
        removed: Removal timestamp, or None while the profile is active.
    """

    id: int
    database_id: int
    fields: dict[str, Any] = field(default_factory=dict)
    secret: str = ""
    created: str = ""
    modified: str = ""
    removed: str | None = None

    @property
    def is_removed(self) -> bool:
        return self.removed is not None

    def to_api_dict(self) -> dict[str, Any]:
        return {
            "ID": str(self.id),
            "fields": {name: _stringify(value) for name, value in self.fields.items()},
            "interests": [],
            "database": str(self.database_id),
            "secret": self.secret,
            "created": self.created,
            "modified": self.modified,
            "removed": self.is_removed,
        }


@dataclass
class Subprofile:
    """A subprofile stored in a collection, belonging to one profile."""

    id: int
    collection_id: int
    profile_id: int
    fields: dict[str, Any] = field(default_factory=dict)
    secret: str = ""
    created: str = ""
    modified: str = ""
    removed: str | None = None

    @property
    def is_removed(self) -> bool:
        return self.removed is not None

    def to_api_dict(self) -> dict[str, Any]:
        return {
            "ID": str(self.id),
            "secret": self.secret,
            "fields": {name: _stringify(value) for name, value in self.fields.items()},
            "profile": str(self.profile_id),
            "collection": str(self.collection_id),
            "created": self.created,
            "modified": self.modified,
            "removed": self.is_removed,
        }
