"""Client models — clients, onboarding milestone state, billing rows."""

from datetime import datetime, timezone

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from .base import Base


class Client(Base):
    """An agency client and the products it currently contracts."""

    __tablename__ = "clients"
    id = Column(Integer, primary_key=True)
    name = Column(String(255), nullable=False)
    razao_social = Column(String(255))
    status = Column(String(30), default="new_client")  # new_client | onboarding | active | churned
    assigned_ads_manager_id = Column(Integer, ForeignKey("users.id"))
    contracted_products = Column(JSON, default=list)  # list of product slugs

    archived = Column(Boolean, default=False, nullable=False)
    archived_at = Column(DateTime)

    # Legacy churn mirror read by the older kanban boards
    distrato_step = Column(String(40))
    distrato_entered_at = Column(DateTime)

    onboarding_started_at = Column(DateTime)
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(
        DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    ads_manager = relationship("User", foreign_keys=[assigned_ads_manager_id])
    onboarding = relationship(
        "ClientOnboarding", back_populates="client", uselist=False, cascade="all, delete-orphan"
    )

    __table_args__ = (
        Index("ix_clients_status", "status"),
        Index("ix_clients_ads_manager", "assigned_ads_manager_id"),
    )


class ClientOnboarding(Base):
    """Live onboarding milestone for a client. Advancing overwrites the row."""

    __tablename__ = "client_onboarding"
    id = Column(Integer, primary_key=True)
    client_id = Column(
        Integer, ForeignKey("clients.id", ondelete="CASCADE"), nullable=False, unique=True
    )
    current_milestone = Column(Integer, nullable=False, default=1)
    milestone_started_at = Column(DateTime, nullable=False, default=lambda: datetime.now(timezone.utc))
    completed_at = Column(DateTime)
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))

    client = relationship("Client", back_populates="onboarding")


class ActiveClientBilling(Base):
    """Finance board row for a billed client (optionally per product)."""

    __tablename__ = "active_client_billing"
    id = Column(Integer, primary_key=True)
    client_id = Column(Integer, ForeignKey("clients.id", ondelete="CASCADE"), nullable=False)
    product_slug = Column(String(60))
    monthly_value = Column(Numeric(12, 2))
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))

    __table_args__ = (Index("ix_active_billing_client", "client_id", "product_slug"),)


class ClientProductValue(Base):
    """Monthly value a client pays for one contracted product."""

    __tablename__ = "client_product_values"
    id = Column(Integer, primary_key=True)
    client_id = Column(Integer, ForeignKey("clients.id", ondelete="CASCADE"), nullable=False)
    product_slug = Column(String(60), nullable=False)
    product_name = Column(String(255))
    monthly_value = Column(Numeric(12, 2), default=0)
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))

    __table_args__ = (
        UniqueConstraint("client_id", "product_slug", name="uq_client_product_value"),
    )
