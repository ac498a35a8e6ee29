"""
Tests for the admin credential gate and its lockout.
"""

from datetime import datetime, timezone

import pytest

from kas_kernel.domain.clock import DeterministicClock
from kas_kernel.domain.session import AdminSession
from kas_kernel.exceptions import AccountLockedError, InvalidCredentialsError, NotAuthenticatedError
from kas_services.auth_service import AuthService, LoginStatus, require_admin

T0 = datetime(2024, 7, 15, 3, 0, tzinfo=timezone.utc)


class TestLogin:
    def setup_method(self):
        self.clock = DeterministicClock(T0)
        self.auth = AuthService("pku19", "pku.mui", clock=self.clock)

    def fail(self, session, times):
        result = None
        for _ in range(times):
            result = self.auth.login(session, "pku19", "wrong")
            session = result.session
        return result

    def test_correct_credentials(self):
        result = self.auth.login(AdminSession.anonymous(), "pku19", "pku.mui")

        assert result.succeeded
        assert result.session.is_authenticated
        assert result.session.username == "pku19"
        result.raise_for_status()

    def test_wrong_password_counts_down(self):
        result = self.fail(AdminSession.anonymous(), 2)

        assert result.status == LoginStatus.INVALID_CREDENTIALS
        assert result.remaining_attempts == 3
        assert result.session.failure_count == 2
        with pytest.raises(InvalidCredentialsError):
            result.raise_for_status()

    def test_fifth_failure_locks_for_fifteen_minutes(self):
        result = self.fail(AdminSession.anonymous(), 5)

        assert result.status == LoginStatus.LOCKED
        assert result.lockout_remaining_seconds == 15 * 60
        with pytest.raises(AccountLockedError) as exc_info:
            result.raise_for_status()
        assert exc_info.value.remaining_seconds == 900

    def test_locked_gate_refuses_correct_password_without_counting(self):
        locked = self.fail(AdminSession.anonymous(), 5).session
        self.clock.advance(60)

        result = self.auth.login(locked, "pku19", "pku.mui")

        assert result.status == LoginStatus.LOCKED
        assert result.session == locked
        assert result.lockout_remaining_seconds == 14 * 60

    def test_usable_again_after_lockout(self):
        locked = self.fail(AdminSession.anonymous(), 5).session
        self.clock.advance(15 * 60)

        result = self.auth.login(locked, "pku19", "pku.mui")

        assert result.succeeded
        assert result.session.failure_count == 0

    def test_count_restarts_after_lockout_expires(self):
        locked = self.fail(AdminSession.anonymous(), 5).session
        self.clock.advance(15 * 60 + 1)

        result = self.auth.login(locked, "pku19", "wrong")

        assert result.status == LoginStatus.INVALID_CREDENTIALS
        assert result.remaining_attempts == 4
        assert result.session.lockout_until is None

    def test_success_resets_failures(self):
        session = self.fail(AdminSession.anonymous(), 3).session
        session = self.auth.login(session, "pku19", "pku.mui").session
        assert session.failure_count == 0

    def test_logout(self):
        session = self.auth.login(AdminSession.anonymous(), "pku19", "pku.mui").session
        assert not self.auth.logout(session).is_authenticated


class TestRequireAdmin:
    def test_authenticated(self):
        assert require_admin(AdminSession(is_authenticated=True, username="pku19"), "cmd") == "pku19"

    @pytest.mark.parametrize("session", [None, AdminSession.anonymous()])
    def test_refused(self, session):
        with pytest.raises(NotAuthenticatedError):
            require_admin(session, "add_income")
