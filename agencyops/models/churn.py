"""Churn models — churn workflow records and the churn alert inbox."""

from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import relationship

from .base import Base

# scope_key value for a record that covers the whole client
CLIENT_SCOPE_KEY = "*"


class ChurnRecord(Base):
    """A client (or one of its products) moving through a churn track."""

    __tablename__ = "client_churns"
    id = Column(Integer, primary_key=True)
    scope_type = Column(String(10), nullable=False)  # client | product
    client_id = Column(Integer, ForeignKey("clients.id", ondelete="CASCADE"), nullable=False)
    product_slug = Column(String(60))
    product_name = Column(String(255))
    monthly_value = Column(Numeric(12, 2))
    scope_key = Column(String(60), nullable=False)  # product_slug, or CLIENT_SCOPE_KEY

    step = Column(String(40), nullable=False)
    entered_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))
    had_valid_contract = Column(Boolean, nullable=False)

    initiated_by_id = Column(Integer, ForeignKey("users.id"))
    initiated_by_name = Column(String(255))

    archived = Column(Boolean, default=False, nullable=False)
    archived_at = Column(DateTime)

    client = relationship("Client")

    __table_args__ = (
        # One open record per (client, product-or-whole-client)
        Index(
            "uq_client_churns_open_scope",
            "client_id",
            "scope_key",
            unique=True,
            postgresql_where=text("NOT archived"),
            sqlite_where=text("archived = 0"),
        ),
        Index("ix_client_churns_step", "step"),
    )


class ChurnNotification(Base):
    """Broadcast alert that a client (or product) entered churn."""

    __tablename__ = "churn_notifications"
    id = Column(Integer, primary_key=True)
    client_id = Column(Integer, ForeignKey("clients.id", ondelete="CASCADE"), nullable=False)
    churn_id = Column(Integer, ForeignKey("client_churns.id", ondelete="SET NULL"))
    client_name = Column(String(500), nullable=False)
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))


class ChurnNotificationDismissal(Base):
    __tablename__ = "churn_notification_dismissals"
    id = Column(Integer, primary_key=True)
    notification_id = Column(
        Integer, ForeignKey("churn_notifications.id", ondelete="CASCADE"), nullable=False
    )
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))

    __table_args__ = (
        UniqueConstraint("notification_id", "user_id", name="uq_churn_dismissal_user"),
    )
