"""Quota window model: one active usage counter per learner."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Integer, Text
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base


class QuotaWindow(Base):
    """
    Usage counter for the learner's current quota period.

    ``current_usage`` may exceed the tier maximum; the guard blocks further
    admission instead of clamping.
    """

    __tablename__ = "quota_windows"

    user_id: Mapped[str] = mapped_column(Text, primary_key=True)
    tier: Mapped[str] = mapped_column(Text, nullable=False, default="free")
    current_usage: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    custom_limit: Mapped[int | None] = mapped_column(Integer)
    period_start: Mapped[datetime] = mapped_column(nullable=False)
    last_reset: Mapped[datetime] = mapped_column(nullable=False)

    def __repr__(self) -> str:
        return f"<QuotaWindow user={self.user_id} tier={self.tier} usage={self.current_usage}>"
