"""
test_services_churn.py — Tests for the churn workflow

Covers both tracks, the stale-step guard, one open churn per scope, the
finalize cascade (product strip, client archive on last product), billing
removal, the whole-client mirror, and the churn alert inbox.

Called by: pytest
Depends on: agencyops/services/churn_service.py, conftest.py
"""

from datetime import timedelta
from unittest.mock import patch

import pytest

from agencyops import roles
from agencyops.models import (
    ActiveClientBilling,
    ChurnNotification,
    ChurnRecord,
    ClientProductValue,
    DepartmentTask,
)
from agencyops.services.churn_service import (
    ChurnAlreadyOpenError,
    ChurnStep,
    ChurnTransitionError,
    StaleStepError,
    advance_step,
    dismiss_churn_notification,
    finalize_churn,
    initiate_churn,
    is_terminal,
    list_churns,
    next_step,
    pending_churn_notifications,
)


@pytest.fixture()
def two_product_client(make_client):
    return make_client(name="Loja Azul", products={"trafego": 1500, "social": 900})


def _billing(db, client_id):
    return sorted(
        (b.product_slug or "") for b in db.query(ActiveClientBilling).filter_by(client_id=client_id)
    )


def _walk_to_terminal(db, record):
    while not is_terminal(record.had_valid_contract, ChurnStep(record.step)):
        record = advance_step(db, record.id, record.step)
    return record


# ── Tracks ─────────────────────────────────────────────────────────────


def test_next_step_with_contract():
    assert next_step(True, ChurnStep.REQUESTED) is ChurnStep.BILLING_REMOVED
    assert next_step(True, ChurnStep.TERMINATION_SIGNED) is None


def test_next_step_rejects_other_track():
    with pytest.raises(ChurnTransitionError):
        next_step(False, ChurnStep.BILLING_REMOVED)


# ── Initiate ───────────────────────────────────────────────────────────


class TestInitiate:
    def test_product_churn_starts_on_track(self, db_session, two_product_client, ceo_user, now):
        r = initiate_churn(db_session, two_product_client.id, True, product_slug="trafego",
                           initiated_by=ceo_user, now=now)
        assert r.scope_type == "product"
        assert r.step == "churn_solicitado"
        assert float(r.monthly_value) == 1500
        assert r.initiated_by_name == ceo_user.name
        # Only that product's billing is removed
        assert _billing(db_session, two_product_client.id) == ["social"]
        # Product churn leaves the client row alone
        assert two_product_client.status == "active"
        assert two_product_client.distrato_step is None

    def test_without_contract_track(self, db_session, two_product_client, now):
        r = initiate_churn(db_session, two_product_client.id, False, product_slug="social", now=now)
        assert r.step == "sem_contrato_solicitado"
        assert r.initiated_by_name == "Sistema"

    def test_client_scope_mirrors_onto_client(self, db_session, two_product_client, now):
        r = initiate_churn(db_session, two_product_client.id, True, now=now)
        assert r.scope_type == "client"
        assert r.product_slug is None
        assert two_product_client.status == "churned"
        assert two_product_client.distrato_step == "churn_solicitado"
        assert _billing(db_session, two_product_client.id) == []

    def test_second_open_churn_same_scope_rejected(self, db_session, two_product_client, now):
        initiate_churn(db_session, two_product_client.id, True, product_slug="trafego", now=now)
        with pytest.raises(ChurnAlreadyOpenError):
            initiate_churn(db_session, two_product_client.id, False, product_slug="trafego", now=now)
        assert db_session.query(ChurnRecord).count() == 1

    def test_different_products_can_churn_in_parallel(self, db_session, two_product_client, now):
        initiate_churn(db_session, two_product_client.id, True, product_slug="trafego", now=now)
        initiate_churn(db_session, two_product_client.id, True, product_slug="social", now=now)
        assert db_session.query(ChurnRecord).count() == 2

    def test_concurrent_initiate_hits_unique_index(self, db_session, two_product_client, now):
        initiate_churn(db_session, two_product_client.id, True, product_slug="trafego", now=now)
        with patch("agencyops.services.churn_service._open_record", return_value=None):
            with pytest.raises(ChurnAlreadyOpenError):
                initiate_churn(db_session, two_product_client.id, True,
                               product_slug="trafego", now=now)
        db_session.rollback()
        assert db_session.query(ChurnRecord).count() == 1

    def test_uncontracted_product_rejected(self, db_session, two_product_client, now):
        with pytest.raises(ChurnTransitionError):
            initiate_churn(db_session, two_product_client.id, True, product_slug="site", now=now)
        assert db_session.query(ChurnRecord).count() == 0

    def test_unknown_client(self, db_session, now):
        with pytest.raises(LookupError):
            initiate_churn(db_session, 404, True, now=now)

    def test_raises_alert(self, db_session, two_product_client, now):
        r = initiate_churn(db_session, two_product_client.id, True, product_slug="trafego", now=now)
        [alert] = db_session.query(ChurnNotification).all()
        assert alert.churn_id == r.id
        assert alert.client_name == "Loja Azul - TRAFEGO"


# ── Advance ────────────────────────────────────────────────────────────


class TestAdvance:
    def test_walks_with_contract_track(self, db_session, two_product_client, now):
        r = initiate_churn(db_session, two_product_client.id, True, now=now)
        seen = [r.step]
        while not is_terminal(True, ChurnStep(r.step)):
            r = advance_step(db_session, r.id, r.step)
            seen.append(r.step)
        assert seen == [
            "churn_solicitado", "cobranca_retirada", "distrato_enviado", "distrato_assinado",
        ]
        assert two_product_client.distrato_step == "distrato_assinado"

    def test_stale_step_rejected(self, db_session, two_product_client, now):
        r = initiate_churn(db_session, two_product_client.id, True, product_slug="social", now=now)
        advance_step(db_session, r.id, "churn_solicitado")
        with pytest.raises(StaleStepError):
            advance_step(db_session, r.id, "churn_solicitado")
        assert r.step == "cobranca_retirada"

    def test_terminal_step_cannot_advance(self, db_session, two_product_client, now):
        r = initiate_churn(db_session, two_product_client.id, False, product_slug="social", now=now)
        r = advance_step(db_session, r.id, "sem_contrato_solicitado")
        with pytest.raises(ChurnTransitionError):
            advance_step(db_session, r.id, "sem_contrato_efetivado")
        assert r.step == "sem_contrato_efetivado"

    def test_unknown_step_name(self, db_session, two_product_client, now):
        r = initiate_churn(db_session, two_product_client.id, True, now=now)
        with pytest.raises(ChurnTransitionError):
            advance_step(db_session, r.id, "pulando")

    def test_missing_record(self, db_session):
        with pytest.raises(LookupError):
            advance_step(db_session, 404, "churn_solicitado")


# ── Finalize ───────────────────────────────────────────────────────────


class TestFinalize:
    def test_not_terminal_rejected(self, db_session, two_product_client, now):
        r = initiate_churn(db_session, two_product_client.id, True, product_slug="trafego", now=now)
        with pytest.raises(ChurnTransitionError):
            finalize_churn(db_session, r.id, now=now)
        assert r.archived is False
        assert two_product_client.contracted_products == ["trafego", "social"]

    def test_two_products_one_at_a_time(self, db_session, two_product_client, now):
        cid = two_product_client.id
        a = _walk_to_terminal(
            db_session, initiate_churn(db_session, cid, True, product_slug="trafego", now=now)
        )
        result = finalize_churn(db_session, a.id, now=now)
        assert result == {"remaining_products": 1, "client_archived": False}
        assert two_product_client.contracted_products == ["social"]
        assert two_product_client.archived is False
        assert (
            db_session.query(ClientProductValue).filter_by(client_id=cid, product_slug="trafego").count()
            == 0
        )

        b = _walk_to_terminal(
            db_session, initiate_churn(db_session, cid, False, product_slug="social", now=now)
        )
        result = finalize_churn(db_session, b.id, now=now)
        assert result == {"remaining_products": 0, "client_archived": True}
        assert two_product_client.archived is True
        assert two_product_client.status == "churned"
        assert _billing(db_session, cid) == []

    def test_client_scope_archives_client(self, db_session, two_product_client, now):
        r = _walk_to_terminal(db_session, initiate_churn(db_session, two_product_client.id, True, now=now))
        result = finalize_churn(db_session, r.id, now=now)
        assert result["client_archived"] is True
        assert two_product_client.archived is True

    def test_rerun_is_noop(self, db_session, two_product_client, now):
        r = _walk_to_terminal(
            db_session,
            initiate_churn(db_session, two_product_client.id, True, product_slug="trafego", now=now),
        )
        first = finalize_churn(db_session, r.id, now=now)
        second = finalize_churn(db_session, r.id, now=now + timedelta(days=1))
        assert first == second
        assert two_product_client.contracted_products == ["social"]
        assert r.archived_at == now

    def test_finalized_scope_can_churn_again(self, db_session, make_client, now):
        c = make_client(name="Reincidente", products={"trafego": 100, "social": 50})
        r = _walk_to_terminal(
            db_session, initiate_churn(db_session, c.id, False, product_slug="trafego", now=now)
        )
        finalize_churn(db_session, r.id, now=now)
        # Closed record no longer blocks a new client-wide churn
        initiate_churn(db_session, c.id, True, now=now)
        assert db_session.query(ChurnRecord).filter_by(archived=False).count() == 1

    def test_client_scope_closes_open_product_churn(self, db_session, two_product_client, now):
        cid = two_product_client.id
        product = initiate_churn(db_session, cid, True, product_slug="trafego", now=now)
        whole = _walk_to_terminal(db_session, initiate_churn(db_session, cid, False, now=now))

        result = finalize_churn(db_session, whole.id, now=now)

        assert result["client_archived"] is True
        assert product.archived is True
        assert product.archived_at == now
        assert db_session.query(ChurnRecord).filter_by(client_id=cid, archived=False).count() == 0
        assert list_churns(db_session, now=now) == []
        with pytest.raises(ChurnTransitionError):
            advance_step(db_session, product.id, "churn_solicitado")
        assert product.step == "churn_solicitado"

    def test_record_on_archived_client_rejected(self, db_session, two_product_client, now):
        r = _walk_to_terminal(
            db_session,
            initiate_churn(db_session, two_product_client.id, False, product_slug="social", now=now),
        )
        two_product_client.archived = True
        db_session.commit()

        with pytest.raises(ChurnTransitionError):
            finalize_churn(db_session, r.id, now=now)
        assert r.archived is False
        assert two_product_client.contracted_products == ["trafego", "social"]


# ── Listing ────────────────────────────────────────────────────────────


def test_list_churns_filters_and_days(db_session, two_product_client, now):
    initiate_churn(db_session, two_product_client.id, True, product_slug="trafego",
                   now=now - timedelta(days=4))
    r2 = initiate_churn(db_session, two_product_client.id, False, product_slug="social", now=now)

    rows = list_churns(db_session, now=now)
    assert [r["id"] for r in rows][0] == r2.id
    assert rows[1]["days_since_entry"] == 4
    assert rows[1]["next_step"] == "cobranca_retirada"

    only = list_churns(db_session, step="sem_contrato_solicitado", now=now)
    assert [r["product_slug"] for r in only] == ["social"]
    assert list_churns(db_session, scope_type="client", now=now) == []


def test_list_churns_unknown_step(db_session):
    with pytest.raises(ValueError):
        list_churns(db_session, step="nao_existe")


# ── Alert inbox ────────────────────────────────────────────────────────


class TestChurnAlerts:
    def test_visible_to_notification_roles_only(self, db_session, two_product_client,
                                                ads_user, design_user, now):
        initiate_churn(db_session, two_product_client.id, True, now=now)
        assert len(pending_churn_notifications(db_session, ads_user)) == 1
        assert pending_churn_notifications(db_session, design_user) == []

    def test_dismiss_creates_analysis_task_for_task_roles(self, db_session, two_product_client,
                                                          cs_user, now):
        initiate_churn(db_session, two_product_client.id, True, now=now)
        [alert] = pending_churn_notifications(db_session, cs_user)

        assert dismiss_churn_notification(db_session, cs_user, alert.id, now=now) is True
        assert pending_churn_notifications(db_session, cs_user) == []

        [task] = db_session.query(DepartmentTask).all()
        assert task.user_id == cs_user.id
        assert task.title == "Marcar reunião de análise do churn - Loja Azul"
        assert task.priority == "high"
        assert task.related_client_id == two_product_client.id

    def test_dismiss_twice_is_idempotent(self, db_session, two_product_client, pm_user, now):
        initiate_churn(db_session, two_product_client.id, True, now=now)
        [alert] = pending_churn_notifications(db_session, pm_user)
        dismiss_churn_notification(db_session, pm_user, alert.id, now=now)
        assert dismiss_churn_notification(db_session, pm_user, alert.id, now=now) is False
        assert db_session.query(DepartmentTask).count() == 1

    def test_ceo_dismiss_creates_no_task(self, db_session, two_product_client, ceo_user, now):
        initiate_churn(db_session, two_product_client.id, True, now=now)
        [alert] = pending_churn_notifications(db_session, ceo_user)
        dismiss_churn_notification(db_session, ceo_user, alert.id, now=now)
        assert db_session.query(DepartmentTask).count() == 0
        assert roles.CEO not in roles.CHURN_TASK_ROLES

    def test_dismiss_unknown(self, db_session, ceo_user):
        with pytest.raises(LookupError):
            dismiss_churn_notification(db_session, ceo_user, 404)
