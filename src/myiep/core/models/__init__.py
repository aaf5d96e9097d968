"""
MyIEP SQLAlchemy Models
"""

from .base import Base, TimestampMixin
from .logs import ObservationLogRecord
from .settings import SettingsEntry

__all__ = [
    "Base",
    "TimestampMixin",
    "ObservationLogRecord",
    "SettingsEntry",
]
