"""Delay notification models — overdue alerts and their justifications."""

from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from .base import Base


class DelayNotification(Base):
    """One row per overdue work item, ever. Never updated after insert."""

    __tablename__ = "task_delay_notifications"
    id = Column(Integer, primary_key=True)
    task_id = Column(String(100), nullable=False)  # str: synthetic onboarding ids are not ints
    task_table = Column(String(40), nullable=False)
    task_owner_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    task_owner_name = Column(String(255))
    task_owner_role = Column(String(40), nullable=False)
    task_title = Column(String(500), nullable=False)
    task_due_date = Column(DateTime, nullable=False)
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))

    justifications = relationship(
        "DelayJustification", back_populates="notification", cascade="all, delete-orphan"
    )

    __table_args__ = (
        UniqueConstraint("task_id", "task_table", name="uq_delay_notification_task"),
        Index("ix_delay_notifications_owner", "task_owner_id"),
        Index("ix_delay_notifications_owner_role", "task_owner_role"),
    )


class DelayJustification(Base):
    """A recipient's explanation for a delay. One per (notification, user)."""

    __tablename__ = "task_delay_justifications"
    id = Column(Integer, primary_key=True)
    notification_id = Column(
        Integer, ForeignKey("task_delay_notifications.id", ondelete="CASCADE"), nullable=False
    )
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    user_role = Column(String(40))
    justification = Column(Text, nullable=False)
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(
        DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    # Soft archive, CEO only
    archived = Column(Boolean, default=False, nullable=False)
    archived_at = Column(DateTime)
    archived_by_id = Column(Integer, ForeignKey("users.id"))

    notification = relationship("DelayNotification", back_populates="justifications")
    user = relationship("User", foreign_keys=[user_id])

    __table_args__ = (
        UniqueConstraint("notification_id", "user_id", name="uq_delay_justification_user"),
        Index("ix_delay_justifications_user", "user_id"),
    )
