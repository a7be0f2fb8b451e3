"""
startup.py — Database Startup Migrations (Idempotent)

Tables, columns, and indexes are defined in the ORM models and created via
Base.metadata.create_all(checkfirst=True). This file only handles
PostgreSQL-specific operations the ORM doesn't express: CHECK constraints
that pin the closed enumerations (churn steps, churn scope, milestones).

Called by: main.py lifespan
Depends on: database.py (engine), models (Base)
"""

import logging
import os

from sqlalchemy import text as sqltext

from .database import engine

log = logging.getLogger(__name__)


def run_startup_migrations() -> None:
    """Execute all idempotent startup operations. Safe to call on every app boot."""
    if os.environ.get("TESTING"):
        log.info("TESTING mode — skipping startup migrations")
        return

    from .models import Base

    Base.metadata.create_all(bind=engine, checkfirst=True)
    log.info("ORM schema sync complete (create_all checkfirst=True)")

    if engine.dialect.name != "postgresql":
        log.info("Non-PostgreSQL database — skipping CHECK constraints")
        return

    with engine.connect() as conn:
        _add_check_constraints(conn)
    log.info("Startup migrations complete")


def _exec(conn, stmt: str) -> None:
    """Execute a single DDL statement with rollback on failure."""
    try:
        conn.execute(sqltext(stmt))
        conn.commit()
    except Exception as e:
        log.warning("DDL failed: %s", e)
        conn.rollback()


def _add_check_constraints(conn) -> None:
    """Add CHECK constraints if they don't already exist."""
    from .services.churn_service import WITH_CONTRACT_TRACK, WITHOUT_CONTRACT_TRACK

    with_steps = ", ".join(f"'{s.value}'" for s in WITH_CONTRACT_TRACK)
    without_steps = ", ".join(f"'{s.value}'" for s in WITHOUT_CONTRACT_TRACK)
    constraints = [
        (
            "client_churns",
            "chk_client_churns_scope",
            "scope_type IN ('client', 'product') "
            "AND (scope_type = 'client') = (product_slug IS NULL)",
        ),
        (
            "client_churns",
            "chk_client_churns_step_track",
            f"(had_valid_contract AND step IN ({with_steps})) "
            f"OR (NOT had_valid_contract AND step IN ({without_steps}))",
        ),
        (
            "client_onboarding",
            "chk_client_onboarding_milestone",
            "current_milestone BETWEEN 1 AND 5",
        ),
    ]
    for table, name, expr in constraints:
        exists = conn.execute(
            sqltext("SELECT 1 FROM pg_constraint WHERE conname = :name"), {"name": name}
        ).first()
        if exists:
            continue
        _exec(conn, f"ALTER TABLE {table} ADD CONSTRAINT {name} CHECK ({expr})")
