"""Unit tests for auth/lockout.py -- the lockout state machine."""

from auth.lockout import LockoutState, administrative_reset, register_failure, register_success

NOW = "2025-01-01T00:00:00+00:00"


def _fail(times: int, state: LockoutState | None = None, threshold: int = 4) -> LockoutState:
    state = state or LockoutState()
    for _ in range(times):
        state = register_failure(state, NOW, threshold)
    return state


def test_failures_below_threshold_stay_unlocked():
    state = _fail(3)
    assert state.failed_attempts == 3
    assert state.is_locked is False
    assert state.last_failed_login_at == NOW


def test_fourth_failure_locks():
    state = _fail(4)
    assert state.failed_attempts == 4
    assert state.is_locked is True


def test_lock_is_sticky_across_further_failures():
    assert _fail(6).is_locked is True


def test_custom_threshold():
    assert _fail(1, threshold=2).is_locked is False
    assert _fail(2, threshold=2).is_locked is True


def test_success_resets_counter_and_lock():
    state = register_success(_fail(2))
    assert state == LockoutState(failed_attempts=0, is_locked=False, last_failed_login_at=None)


def test_administrative_reset_clears_locked_state():
    assert administrative_reset(_fail(5)) == LockoutState()


def test_administrative_reset_on_clean_state_is_noop():
    assert administrative_reset(LockoutState()) == LockoutState()


def test_lock_invariant_holds():
    for n in range(10):
        state = _fail(n)
        if state.is_locked:
            assert state.failed_attempts >= 4
