"""Persistence for profile and subprofile records."""

from profilestub.infrastructure.persistence.database import DatabaseManager
from profilestub.infrastructure.persistence.table_builder import TableBuilder

__all__ = ["DatabaseManager", "TableBuilder"]
