# docrate/models/__init__.py
"""
Database models package
"""

from .base import BaseModel, SoftDeleteMixin, TimestampMixin, db
from .directory import AIMapping, Arrangement, Doctor, MappingType, Specialty
from .importer import ImportRowResult, ImportRowStatus, ImportRun, ImportRunStatus
from .setting import AppSetting

__all__ = [
    "db",
    "BaseModel",
    "SoftDeleteMixin",
    "TimestampMixin",
    "AppSetting",
    # Directory models
    "Doctor",
    "Specialty",
    "Arrangement",
    "AIMapping",
    "MappingType",
    # Import history
    "ImportRun",
    "ImportRunStatus",
    "ImportRowResult",
    "ImportRowStatus",
]
