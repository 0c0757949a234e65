"""
Tests for token issuing, refresh rotation and active roles.
"""
import pytest
from datetime import datetime, timedelta

from errors import Forbidden, ValidationError
from models import db, AuthSession, ROLE_EMPLOYEE, ROLE_OWNER, ROLE_USER
from session_manager import SessionManager, default_role, session_manager


class TestSessions:
    """Tests for save_session / get_session."""

    def test_saved_session_resolves_to_user(self, test_app, driver):
        session = session_manager.save_session(driver)
        assert session_manager.get_user(session.access_token).id == driver.id
        assert session_manager.get_user_id(session.access_token) == driver.id

    def test_garbage_token_is_rejected(self, test_app, driver):
        session_manager.save_session(driver)
        assert session_manager.get_session('not-a-token') is None
        assert session_manager.get_session(None) is None

    def test_token_signed_with_other_key_is_rejected(self, test_app, driver):
        session = SessionManager(secret_key='another-secret').save_session(driver)
        assert session_manager.get_session(session.access_token) is None

    def test_expired_access_token_is_rejected(self, test_app, driver):
        short_lived = SessionManager(access_ttl=-1)
        session = short_lived.save_session(driver)
        assert short_lived.get_session(session.access_token) is None

    def test_cleared_session_is_gone(self, test_app, driver):
        session = session_manager.save_session(driver)
        token = session.access_token
        session_manager.clear_session(session)
        assert session_manager.get_session(token) is None
        assert AuthSession.query.count() == 0

    def test_clear_user_sessions(self, test_app, driver):
        session_manager.save_session(driver)
        session_manager.save_session(driver)
        session_manager.clear_user_sessions(driver.id)
        assert AuthSession.query.filter_by(user_id=driver.id).count() == 0


class TestRefresh:
    """Tests for refresh_session."""

    def test_refresh_rotates_both_tokens(self, test_app, driver):
        session = session_manager.save_session(driver)
        old_access, old_refresh = session.access_token, session.refresh_token

        refreshed = session_manager.refresh_session(old_refresh)

        assert refreshed is not None
        assert refreshed.refresh_token != old_refresh
        assert refreshed.access_token != old_access
        assert session_manager.get_session(old_access) is None
        assert session_manager.get_session(refreshed.access_token).user_id == driver.id

    def test_reused_refresh_token_is_tolerated_while_valid(self, test_app, driver):
        session = session_manager.save_session(driver)
        old_refresh = session.refresh_token

        first = session_manager.refresh_session(old_refresh)
        current_refresh = first.refresh_token
        second = session_manager.refresh_session(old_refresh)

        assert second is not None
        assert second.id == first.id
        # The retry does not rotate again
        assert second.refresh_token == current_refresh

    def test_unknown_refresh_token_returns_none(self, test_app, driver):
        session_manager.save_session(driver)
        assert session_manager.refresh_session('unknown-token') is None
        assert AuthSession.query.count() == 1

    def test_expired_session_is_cleared(self, test_app, driver):
        session = session_manager.save_session(driver)
        session.expires_at = datetime.now() - timedelta(days=1)
        db.session.commit()

        assert session_manager.refresh_session(session.refresh_token) is None
        assert AuthSession.query.count() == 0


class TestRoles:
    """Tests for the active role of a session."""

    def test_default_role_prefers_highest_privilege(self):
        assert default_role([ROLE_USER, ROLE_OWNER, ROLE_EMPLOYEE]) == ROLE_OWNER
        assert default_role([ROLE_USER, ROLE_EMPLOYEE]) == ROLE_EMPLOYEE
        assert default_role([ROLE_USER]) == ROLE_USER
        assert default_role([]) is None

    def test_new_session_uses_default_role(self, test_app, owner):
        session = session_manager.save_session(owner)
        assert session.active_role == ROLE_OWNER

    def test_switch_to_held_role(self, test_app, owner):
        session = session_manager.save_session(owner)
        session_manager.save_active_role(session, ROLE_USER)
        assert session_manager.get_active_role(session) == ROLE_USER

    def test_switch_to_foreign_role_is_forbidden(self, test_app, driver):
        session = session_manager.save_session(driver)
        with pytest.raises(Forbidden):
            session_manager.save_active_role(session, ROLE_EMPLOYEE)
        assert session.active_role == ROLE_USER

    def test_revoked_role_falls_back_to_default(self, test_app, owner):
        session = session_manager.save_session(owner)
        session_manager.update_user_roles(owner.id, [ROLE_USER])
        assert session_manager.get_active_role(session) == ROLE_USER

    def test_update_user_roles_reconciles(self, test_app, driver):
        user = session_manager.update_user_roles(driver.id, [ROLE_USER, ROLE_EMPLOYEE])
        assert user.roles == sorted([ROLE_USER, ROLE_EMPLOYEE])
        user = session_manager.update_user_roles(driver.id, [ROLE_EMPLOYEE])
        assert user.roles == [ROLE_EMPLOYEE]

    def test_update_user_roles_rejects_unknown_roles(self, test_app, driver):
        with pytest.raises(ValidationError):
            session_manager.update_user_roles(driver.id, ['admin'])
        assert driver.roles == [ROLE_USER]

    def test_update_roles_of_unknown_user(self, test_app):
        assert session_manager.update_user_roles('missing', [ROLE_USER]) is None
