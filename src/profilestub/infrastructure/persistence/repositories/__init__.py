"""Persistence repositories for database operations."""

from profilestub.infrastructure.persistence.repositories.record_repository import (
    RecordRepository,
)

__all__ = ["RecordRepository"]
