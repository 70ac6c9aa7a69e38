"""
auth/lockout.py -- Account lockout state machine.

States: Unlocked(failed_attempts=n) and Locked. Transitions are driven by
login outcomes and administrative password changes:

    failure   -> failed_attempts += 1, last_failed_login_at = now,
                 Locked once failed_attempts >= threshold
    success   -> failed_attempts = 0, last_failed_login_at = None, Unlocked
    admin set -> same as success, regardless of the current state

There is no time-based unlock. The login workflow checks is_locked BEFORE
verifying the password, so a locked account never reaches the success
transition through guessing; only an administrative reset (or the emergency
super-admin reset) clears a lock.

The functions are pure. register_success and administrative_reset results are
persisted with UserStore.save_lockout_state. The failure transition is also
expressed in SQL by UserStore.increment_failed_login, which increments the
stored counter in place so concurrent failures are never lost;
register_failure is the reference it must agree with.
"""

from __future__ import annotations

from dataclasses import dataclass, replace

DEFAULT_THRESHOLD = 4


@dataclass(frozen=True)
class LockoutState:
    failed_attempts: int = 0
    is_locked: bool = False
    last_failed_login_at: str | None = None


def register_failure(state: LockoutState, now: str, threshold: int = DEFAULT_THRESHOLD) -> LockoutState:
    attempts = state.failed_attempts + 1
    return LockoutState(
        failed_attempts=attempts,
        is_locked=state.is_locked or attempts >= threshold,
        last_failed_login_at=now,
    )


def register_success(state: LockoutState) -> LockoutState:
    return replace(state, failed_attempts=0, is_locked=False, last_failed_login_at=None)


def administrative_reset(state: LockoutState) -> LockoutState:
    """Password set/reset by an administrator: always unlocks and clears the counter."""
    return LockoutState()
