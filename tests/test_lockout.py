from dataclasses import dataclass
from datetime import datetime, timedelta

import pytest

from app.core.exceptions import AccountLockedError, InvalidCredentialsError
from app.core.lockout import FailureOutcome, LockoutTracker
from app.crud.crud_user import user as crud_user
from conftest import PASSWORD, register_user

MAX_ATTEMPTS = 5
LOCKOUT = timedelta(hours=2)
T = datetime(2025, 1, 15, 12, 0, 0)


@dataclass
class Account:
    failed_login_attempts: int = 0
    locked_until: datetime | None = None
    last_login_at: datetime | None = None


@pytest.fixture
def tracker():
    return LockoutTracker(max_failed_attempts=MAX_ATTEMPTS, lockout_minutes=120)


class TestLockoutTracker:
    def test_fifth_failure_locks_for_two_hours(self, tracker):
        account = Account()
        outcomes = [tracker.register_failure(account, T) for _ in range(MAX_ATTEMPTS)]
        assert outcomes[:-1] == [FailureOutcome.COUNTED] * (MAX_ATTEMPTS - 1)
        assert outcomes[-1] == FailureOutcome.LOCKED
        assert account.failed_login_attempts == MAX_ATTEMPTS
        assert account.locked_until == T + LOCKOUT
        assert tracker.is_locked(account, T + timedelta(minutes=119))

    def test_four_failures_do_not_lock(self, tracker):
        account = Account()
        for _ in range(MAX_ATTEMPTS - 1):
            tracker.register_failure(account, T)
        assert account.locked_until is None
        assert not tracker.is_locked(account, T)

    def test_failure_after_expired_lock_restarts_count(self, tracker):
        account = Account(failed_login_attempts=MAX_ATTEMPTS, locked_until=T)
        outcome = tracker.register_failure(account, T + timedelta(seconds=1))
        assert outcome == FailureOutcome.RESET_AFTER_EXPIRED_LOCK
        assert account.failed_login_attempts == 1
        assert account.locked_until is None

    def test_success_clears_counters(self, tracker):
        account = Account(failed_login_attempts=3)
        tracker.register_success(account, T)
        assert account.failed_login_attempts == 0
        assert account.locked_until is None
        assert account.last_login_at == T

    def test_remaining_lock_minutes(self, tracker):
        account = Account(locked_until=T + LOCKOUT)
        assert tracker.remaining_lock_minutes(account, T) == 120
        assert tracker.remaining_lock_minutes(account, T + timedelta(seconds=30)) == 120
        assert tracker.remaining_lock_minutes(account, T + LOCKOUT) == 0


class TestLoginLockout:
    async def test_sixth_attempt_is_locked_even_with_correct_password(self, service, db, clock):
        user = await register_user(service, db)

        for _ in range(MAX_ATTEMPTS):
            with pytest.raises(InvalidCredentialsError):
                await service.login(db, email=user.email, password="WrongPass1")

        stored = await crud_user.get(db, id=user.id)
        assert stored.failed_login_attempts == MAX_ATTEMPTS
        assert stored.locked_until == clock.now() + LOCKOUT

        with pytest.raises(AccountLockedError) as exc_info:
            await service.login(db, email=user.email, password=PASSWORD)
        assert exc_info.value.locked_until == clock.now() + LOCKOUT

        # Tentativa bloqueada não conta como falha
        stored = await crud_user.get(db, id=user.id)
        assert stored.failed_login_attempts == MAX_ATTEMPTS

    async def test_login_succeeds_after_lock_expires(self, service, db, clock):
        user = await register_user(service, db)
        for _ in range(MAX_ATTEMPTS):
            with pytest.raises(InvalidCredentialsError):
                await service.login(db, email=user.email, password="WrongPass1")

        clock.advance(hours=2, seconds=1)
        response = await service.login(db, email=user.email, password=PASSWORD)
        assert response.access_token

        stored = await crud_user.get(db, id=user.id)
        assert stored.failed_login_attempts == 0
        assert stored.locked_until is None
        assert stored.last_login_at == clock.now()

    async def test_wrong_password_after_lock_expires_starts_new_count(self, service, db, clock):
        user = await register_user(service, db)
        for _ in range(MAX_ATTEMPTS):
            with pytest.raises(InvalidCredentialsError):
                await service.login(db, email=user.email, password="WrongPass1")

        clock.advance(hours=3)
        with pytest.raises(InvalidCredentialsError):
            await service.login(db, email=user.email, password="WrongPass1")

        stored = await crud_user.get(db, id=user.id)
        assert stored.failed_login_attempts == 1
        assert stored.locked_until is None

    async def test_lock_set_during_wrong_password_check_is_not_counted(self, service, db, clock, monkeypatch):
        user = await register_user(service, db)
        locked_until = clock.now() + LOCKOUT

        def lock(u):
            u.failed_login_attempts = MAX_ATTEMPTS
            u.locked_until = locked_until

        async def wrong_password_while_another_request_locks(plain, hashed):
            await crud_user.atomic_update(db, id=user.id, mutation=lock)
            return False

        monkeypatch.setattr(service.hasher, "verify_async", wrong_password_while_another_request_locks)

        with pytest.raises(AccountLockedError) as exc_info:
            await service.login(db, email=user.email, password="WrongPass1")
        assert exc_info.value.locked_until == locked_until

        stored = await crud_user.get(db, id=user.id)
        assert stored.failed_login_attempts == MAX_ATTEMPTS
        assert stored.locked_until == locked_until
