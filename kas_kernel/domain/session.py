"""
AdminSession -- explicit session/auth state for the admin console.

The session is a value: ``AuthService`` takes one and returns a new one.
The application shell owns whichever instance is current; nothing here is
module-level state.
"""

import math
from dataclasses import dataclass, replace
from datetime import datetime


@dataclass(frozen=True)
class AdminSession:
    """
    Current state of the shared admin credential gate.

    Contract:
        - ``failure_count`` counts consecutive failed logins since the last
          success or the last expired lockout.
        - ``lockout_until`` is set once ``failure_count`` reaches the
          configured maximum; attempts before that instant are refused.
    """

    is_authenticated: bool = False
    username: str | None = None
    failure_count: int = 0
    lockout_until: datetime | None = None

    @classmethod
    def anonymous(cls) -> "AdminSession":
        return cls()

    def is_locked(self, now: datetime) -> bool:
        return self.lockout_until is not None and now < self.lockout_until

    def lockout_remaining_seconds(self, now: datetime) -> int:
        """Whole seconds left on the lockout countdown (0 when not locked)."""
        if not self.is_locked(now):
            return 0
        remaining = (self.lockout_until - now).total_seconds()
        return max(math.ceil(remaining), 0)

    def authenticated(self, username: str) -> "AdminSession":
        return AdminSession(is_authenticated=True, username=username)

    def with_failure(self, failure_count: int, lockout_until: datetime | None) -> "AdminSession":
        return replace(
            self,
            is_authenticated=False,
            username=None,
            failure_count=failure_count,
            lockout_until=lockout_until,
        )

    def logged_out(self) -> "AdminSession":
        return replace(self, is_authenticated=False, username=None)
