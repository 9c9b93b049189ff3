# auth_api/app/core/lockout.py
import math
from datetime import datetime, timedelta
from enum import Enum
from typing import Protocol


class LockoutState(Protocol):
    failed_login_attempts: int
    locked_until: datetime | None
    last_login_at: datetime | None


class FailureOutcome(str, Enum):
    COUNTED = "counted"
    LOCKED = "locked"
    RESET_AFTER_EXPIRED_LOCK = "reset_after_expired_lock"


class LockoutTracker:
    """
    Contador de falhas de login por conta e janela de bloqueio.

    As funções só mutam o objeto recebido; a serialização por conta é
    responsabilidade de quem chama (CRUDUser.atomic_update).
    """

    def __init__(self, max_failed_attempts: int = 5, lockout_minutes: int = 120):
        self.max_failed_attempts = max_failed_attempts
        self.lockout_duration = timedelta(minutes=lockout_minutes)

    @staticmethod
    def is_locked(account: LockoutState, now: datetime) -> bool:
        return account.locked_until is not None and account.locked_until > now

    def register_failure(self, account: LockoutState, now: datetime) -> FailureOutcome:
        if account.locked_until is not None and account.locked_until <= now:
            # Bloqueio antigo expirou: esta falha abre uma nova contagem
            account.locked_until = None
            account.failed_login_attempts = 1
            return FailureOutcome.RESET_AFTER_EXPIRED_LOCK

        account.failed_login_attempts = (account.failed_login_attempts or 0) + 1
        if account.failed_login_attempts >= self.max_failed_attempts and not self.is_locked(account, now):
            account.locked_until = now + self.lockout_duration
            return FailureOutcome.LOCKED
        return FailureOutcome.COUNTED

    @staticmethod
    def register_success(account: LockoutState, now: datetime) -> None:
        account.failed_login_attempts = 0
        account.locked_until = None
        account.last_login_at = now

    @staticmethod
    def remaining_lock_minutes(account: LockoutState, now: datetime) -> int:
        if account.locked_until is None or account.locked_until <= now:
            return 0
        return math.ceil((account.locked_until - now).total_seconds() / 60)
