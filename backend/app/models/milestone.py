from __future__ import annotations

import enum
import uuid

from sqlalchemy import JSON, Boolean, Enum, ForeignKey, Index, Integer, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import Base, TimestampMixin, UUIDMixin


class MilestoneType(str, enum.Enum):
    FEATURE = "feature"
    RELEASE = "release"
    FIX = "fix"
    INTERNAL = "internal"


class Milestone(Base, UUIDMixin, TimestampMixin):
    """One checkpoint in a user's ordered milestone sequence."""

    __tablename__ = "milestones"
    __table_args__ = (Index("ix_milestones_user_order", "user_id", "order"),)

    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    type: Mapped[MilestoneType] = mapped_column(
        Enum(MilestoneType, name="milestone_type", values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=MilestoneType.FEATURE,
    )
    tags: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    completed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    # Unique per user; gaps are allowed, only relative order matters
    order: Mapped[int] = mapped_column("order", Integer, nullable=False)
