"""Work item tables — the task boards the delay scan reads from.

Each board keeps its own notion of "done" and "archived". The scan only
ever reads these tables; see services/task_sources.py.
"""

from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Index, Integer, String, Text

from .base import Base


class AdsTask(Base):
    """Ads manager's own task board. Owner role is always gestor_ads."""

    __tablename__ = "ads_tasks"
    id = Column(Integer, primary_key=True)
    ads_manager_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    title = Column(String(255), nullable=False)
    description = Column(Text)
    status = Column(String(20), default="todo")  # todo | doing | done
    due_date = Column(DateTime)
    archived = Column(Boolean)  # null on rows created before archiving existed
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))

    __table_args__ = (Index("ix_ads_tasks_manager", "ads_manager_id"),)


class DepartmentTask(Base):
    """Per-department daily/weekly tasks owned by a single user."""

    __tablename__ = "department_tasks"
    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    department = Column(String(40))
    title = Column(String(255), nullable=False)
    description = Column(Text)
    task_type = Column(String(20), default="daily")  # daily | weekly
    status = Column(String(20), default="todo")
    priority = Column(String(20), default="medium")
    due_date = Column(DateTime)
    related_client_id = Column(Integer, ForeignKey("clients.id", ondelete="SET NULL"))
    archived = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))

    __table_args__ = (Index("ix_department_tasks_user", "user_id"),)


class OnboardingTask(Base):
    """A step task inside a client's onboarding."""

    __tablename__ = "onboarding_tasks"
    id = Column(Integer, primary_key=True)
    client_id = Column(Integer, ForeignKey("clients.id", ondelete="CASCADE"), nullable=False)
    assigned_to_id = Column(Integer, ForeignKey("users.id"))
    task_type = Column(String(60))
    title = Column(String(255), nullable=False)
    status = Column(String(20), default="pending")  # pending | doing | done
    milestone = Column(Integer, default=1)
    due_date = Column(DateTime)
    completed_at = Column(DateTime)
    archived = Column(Boolean)
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))

    __table_args__ = (Index("ix_onboarding_tasks_client", "client_id"),)


class KanbanCard(Base):
    """Generic kanban card (design, video, devs, ... boards)."""

    __tablename__ = "kanban_cards"
    id = Column(Integer, primary_key=True)
    board = Column(String(60))
    title = Column(String(255), nullable=False)
    status = Column(String(30), default="todo")
    assigned_to_id = Column(Integer, ForeignKey("users.id"))
    due_date = Column(DateTime)
    archived = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))

    __table_args__ = (Index("ix_kanban_cards_assignee", "assigned_to_id"),)
