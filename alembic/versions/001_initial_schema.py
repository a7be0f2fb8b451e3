"""initial schema - clients, tasks, delay notifications, churn

Revision ID: 001_initial
Revises: None
Create Date: 2026-10-19

For EXISTING databases: run `alembic stamp 001_initial`.
For NEW databases: run `alembic upgrade head`.
"""
from typing import Sequence, Union

revision: str = "001_initial"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create every table from the ORM models (checkfirst, idempotent).

    The partial unique index on open churn scopes and the delay
    notification unique constraint are declared on the models, so they
    come along with create_all.
    """
    from agencyops.database import engine
    from agencyops.models import Base

    Base.metadata.create_all(bind=engine, checkfirst=True)


def downgrade() -> None:
    """Drop all tables. DESTRUCTIVE — dev/test only."""
    from agencyops.database import engine
    from agencyops.models import Base

    Base.metadata.drop_all(bind=engine)
