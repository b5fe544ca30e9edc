"""Borrowing policy configuration.

Values come from the ``LENDING`` dict in Django settings and fall back to
the defaults below.  They are read on every call so that overriding
settings (in tests or per deployment) takes effect immediately.
"""

from dataclasses import dataclass

from django.conf import settings

DEFAULTS = {
    "MAX_ACTIVE_LOANS": 5,
    "LOAN_DURATION_DAYS": 14,
    "LOCK_RETRY_ATTEMPTS": 3,
}


@dataclass(frozen=True)
class LendingSettings:
    max_active_loans: int
    loan_duration_days: int
    lock_retry_attempts: int


def lending_settings() -> LendingSettings:
    merged = {**DEFAULTS, **getattr(settings, "LENDING", {})}
    return LendingSettings(
        max_active_loans=int(merged["MAX_ACTIVE_LOANS"]),
        loan_duration_days=int(merged["LOAN_DURATION_DAYS"]),
        lock_retry_attempts=max(1, int(merged["LOCK_RETRY_ATTEMPTS"])),
    )
