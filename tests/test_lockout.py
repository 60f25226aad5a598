"""Tests for the account lockout guard."""
from datetime import timedelta

import pytest

from dietsaas.core.clock import utcnow
from dietsaas.core.exceptions import AccountLockedError
from dietsaas.services.lockout import LockoutGuard


@pytest.fixture
async def user(make_organization, make_user):
    organization = await make_organization()
    return await make_user(organization)


async def test_locks_after_max_failures(session, user):
    guard = LockoutGuard(session, max_attempts=5, lock_duration=timedelta(minutes=15))

    for attempt in range(1, 5):
        result = await guard.register_failure(user)
        assert result.attempts == attempt
        assert not result.locked
        assert result.remaining_attempts == 5 - attempt

    result = await guard.register_failure(user)
    assert result.locked
    assert result.remaining_attempts == 0
    assert guard.is_locked(user)
    assert guard.minutes_remaining(user) == 15


async def test_locked_account_is_rejected_without_touching_counter(session, user):
    guard = LockoutGuard(session, max_attempts=2)
    await guard.register_failure(user)
    await guard.register_failure(user)

    with pytest.raises(AccountLockedError) as exc_info:
        guard.ensure_not_locked(user)

    assert exc_info.value.minutes_left >= 1
    assert user.failed_login_attempts == 2


async def test_elapsed_lock_is_ignored(session, user):
    guard = LockoutGuard(session, max_attempts=1, lock_duration=timedelta(minutes=15))
    await guard.register_failure(user)

    later = utcnow() + timedelta(minutes=16)
    assert not guard.is_locked(user, later)
    guard.ensure_not_locked(user, later)


async def test_success_resets_counter_and_lock(session, user):
    guard = LockoutGuard(session, max_attempts=3)
    for _ in range(3):
        await guard.register_failure(user)

    await guard.register_success(user)
    await session.refresh(user)

    assert user.failed_login_attempts == 0
    assert user.locked_until is None


async def test_minutes_remaining_rounds_up(user):
    now = utcnow()
    user.locked_until = now + timedelta(minutes=3, seconds=1)
    assert LockoutGuard.minutes_remaining(user, now) == 4
    user.locked_until = None
    assert LockoutGuard.minutes_remaining(user, now) == 0
