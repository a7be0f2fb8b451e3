"""
test_dependencies.py — Tests for shared FastAPI dependencies.

Called by: pytest
Depends on: agencyops/dependencies.py, conftest.py
"""

from unittest.mock import MagicMock

import pytest
from fastapi import HTTPException

from agencyops.dependencies import get_user, is_ceo, require_ceo, require_user


def _mock_request(session_data=None):
    req = MagicMock()
    req.session = session_data or {}
    return req


class TestGetUser:
    def test_returns_user_when_session_has_id(self, db_session, pm_user):
        user = get_user(_mock_request({"user_id": pm_user.id}), db_session)
        assert user.id == pm_user.id

    def test_returns_none_when_no_session(self, db_session):
        assert get_user(_mock_request({}), db_session) is None

    def test_returns_none_when_user_not_found(self, db_session):
        assert get_user(_mock_request({"user_id": 99999}), db_session) is None


class TestRequireUser:
    def test_401_when_logged_out(self, db_session):
        with pytest.raises(HTTPException) as exc:
            require_user(_mock_request({}), db_session)
        assert exc.value.status_code == 401

    def test_403_when_deactivated(self, db_session, pm_user):
        pm_user.is_active = False
        db_session.commit()
        request = _mock_request({"user_id": pm_user.id})
        with pytest.raises(HTTPException) as exc:
            require_user(request, db_session)
        assert exc.value.status_code == 403


class TestRequireCeo:
    def test_ceo_passes(self, ceo_user):
        assert is_ceo(ceo_user)
        assert require_ceo(ceo_user) is ceo_user

    def test_other_roles_forbidden(self, pm_user):
        with pytest.raises(HTTPException) as exc:
            require_ceo(pm_user)
        assert exc.value.status_code == 403
