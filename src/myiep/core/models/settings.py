"""
Key/Value Settings Model

Whole-collection JSON blobs (students, goals, assessments, widgets,
last_sync_time, migration flags). Each write replaces the entire value.
"""

from __future__ import annotations

from typing import Any

from sqlalchemy import JSON, String
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, TimestampMixin


class SettingsEntry(Base, TimestampMixin):
    __tablename__ = "settings_entries"

    key: Mapped[str] = mapped_column(String(64), primary_key=True)
    value: Mapped[Any] = mapped_column(JSON, nullable=True)
