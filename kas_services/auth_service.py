"""
kas_services.auth_service -- the shared admin credential gate.

Responsibility:
    Check the admin credentials and run the consecutive-failure lockout.
    The session is an explicit ``AdminSession`` value: every call takes the
    current one and returns its successor.  Nothing is kept here between
    calls.

Lockout rules:
    - Each wrong attempt increments ``failure_count``; reaching
      ``max_login_attempts`` locks the gate for ``lockout_minutes``.
    - While locked, attempts are refused without being checked or counted.
    - When the lockout has expired, the next attempt starts from a zero
      count.  A successful login also resets it.

Failure modes:
    - ``require_admin`` raises NotAuthenticatedError.
    - ``LoginResult.raise_for_status`` raises InvalidCredentialsError or
      AccountLockedError.
"""

import hmac
from dataclasses import dataclass
from datetime import timedelta
from enum import Enum

from kas_kernel.domain.clock import Clock, SystemClock
from kas_kernel.domain.session import AdminSession
from kas_kernel.exceptions import (
    AccountLockedError,
    InvalidCredentialsError,
    NotAuthenticatedError,
)
from kas_kernel.logging_config import get_logger

logger = get_logger("services.auth")


class LoginStatus(str, Enum):
    SUCCESS = "success"
    INVALID_CREDENTIALS = "invalid_credentials"
    LOCKED = "locked"


@dataclass(frozen=True)
class LoginResult:
    status: LoginStatus
    session: AdminSession
    remaining_attempts: int = 0
    lockout_remaining_seconds: int = 0

    @property
    def succeeded(self) -> bool:
        return self.status == LoginStatus.SUCCESS

    def raise_for_status(self) -> None:
        if self.status == LoginStatus.LOCKED:
            raise AccountLockedError(self.lockout_remaining_seconds)
        if self.status == LoginStatus.INVALID_CREDENTIALS:
            raise InvalidCredentialsError(self.remaining_attempts)


def require_admin(session: AdminSession | None, command: str) -> str:
    """Return the admin username, or raise NotAuthenticatedError."""
    if session is None or not session.is_authenticated or not session.username:
        logger.warning("admin_command_refused", extra={"command": command})
        raise NotAuthenticatedError(command)
    return session.username


class AuthService:
    """Checks one shared username/password pair."""

    def __init__(
        self,
        username: str,
        password: str,
        max_login_attempts: int = 5,
        lockout_minutes: int = 15,
        clock: Clock | None = None,
    ):
        self._username = username
        self._password = password
        self._max_attempts = max_login_attempts
        self._lockout = timedelta(minutes=lockout_minutes)
        self._clock = clock or SystemClock()

    @classmethod
    def from_config(cls, admin_config, clock: Clock | None = None) -> "AuthService":
        return cls(
            username=admin_config.username,
            password=admin_config.password,
            max_login_attempts=admin_config.max_login_attempts,
            lockout_minutes=admin_config.lockout_minutes,
            clock=clock,
        )

    def login(self, session: AdminSession, username: str, password: str) -> LoginResult:
        now = self._clock.now()

        if session.is_locked(now):
            remaining = session.lockout_remaining_seconds(now)
            logger.warning("login_refused_locked", extra={"remaining_seconds": remaining})
            return LoginResult(
                status=LoginStatus.LOCKED,
                session=session,
                lockout_remaining_seconds=remaining,
            )

        failures = session.failure_count
        if session.lockout_until is not None:
            # Lockout has run out; start counting again
            failures = 0

        if self._matches(username, password):
            logger.info("login_succeeded", extra={"username": username})
            return LoginResult(
                status=LoginStatus.SUCCESS,
                session=session.authenticated(self._username),
                remaining_attempts=self._max_attempts,
            )

        failures += 1
        if failures >= self._max_attempts:
            lockout_until = now + self._lockout
            locked = session.with_failure(failures, lockout_until)
            logger.warning(
                "login_locked_out",
                extra={"failure_count": failures, "lockout_until": lockout_until},
            )
            return LoginResult(
                status=LoginStatus.LOCKED,
                session=locked,
                lockout_remaining_seconds=locked.lockout_remaining_seconds(now),
            )

        remaining = self._max_attempts - failures
        logger.warning(
            "login_failed",
            extra={"failure_count": failures, "remaining_attempts": remaining},
        )
        return LoginResult(
            status=LoginStatus.INVALID_CREDENTIALS,
            session=session.with_failure(failures, None),
            remaining_attempts=remaining,
        )

    def logout(self, session: AdminSession) -> AdminSession:
        if session.is_authenticated:
            logger.info("logout", extra={"username": session.username})
        return session.logged_out()

    def _matches(self, username: str, password: str) -> bool:
        user_ok = hmac.compare_digest((username or "").encode(), self._username.encode())
        pass_ok = hmac.compare_digest((password or "").encode(), self._password.encode())
        return user_ok and pass_ok
