"""
Observation Log Model

One row per recorded trial, indexed by goal and by time so the dashboard
and per-goal views never load the whole history.
"""

from __future__ import annotations

from sqlalchemy import BigInteger, CheckConstraint, Float, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, TimestampMixin


class ObservationLogRecord(Base, TimestampMixin):
    """Persisted observation log.

    `value` is nullable only for rows carried over from the legacy format,
    which stored the percentage in `accuracy`; readers fall back to it.
    """

    __tablename__ = "observation_logs"
    __table_args__ = (
        CheckConstraint("value IS NULL OR (value >= 0 AND value <= 100)", name="check_value_range"),
        CheckConstraint(
            "prompt_level IN ('independent', 'verbal', 'gesture', 'modeling', 'physical')",
            name="check_prompt_level",
        ),
        Index("idx_logs_goal", "goal_id"),
        Index("idx_logs_timestamp", "timestamp"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    goal_id: Mapped[str] = mapped_column(String(36), nullable=False)

    measurement_type: Mapped[str] = mapped_column(String(20), default="accuracy")
    value: Mapped[float | None] = mapped_column(Float, nullable=True)
    accuracy: Mapped[float | None] = mapped_column(
        Float, nullable=True, comment="Deprecated; read only when value is NULL"
    )
    prompt_level: Mapped[str] = mapped_column(String(20), nullable=False)
    timestamp: Mapped[int] = mapped_column(BigInteger, nullable=False, comment="Epoch ms")
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Attachment (structured instead of one overloaded URI string)
    media_reference: Mapped[str | None] = mapped_column(Text, nullable=True)
    media_filename: Mapped[str | None] = mapped_column(String(255), nullable=True)
    media_mime_type: Mapped[str | None] = mapped_column(String(100), nullable=True)
    media_state: Mapped[str | None] = mapped_column(String(20), nullable=True)
    media_remote_id: Mapped[str | None] = mapped_column(String(200), nullable=True)
