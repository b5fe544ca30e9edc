"""Borrowing rules.

Rules are checked in a fixed order and the first failure wins, so a member
who is both at the loan ceiling and overdue always sees the ceiling error:

1. active loans >= ``max_active_loans``  -> :class:`MaxLoansExceeded`
2. any active loan past its due date     -> :class:`HasOverdueLoan`
3. no available copy of the item         -> :class:`NoCopiesAvailable`

The validator only reads.  To be race free the availability read must
happen inside the transaction that later reserves the copy.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from django.utils import timezone

from .exceptions import (
    BorrowingRuleViolation,
    HasOverdueLoan,
    ItemNotFound,
    MaxLoansExceeded,
    NoCopiesAvailable,
)
from .models import Item
from .repositories import LoanRepository

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Verdict:
    violation: Optional[BorrowingRuleViolation] = None

    @property
    def allowed(self):
        return self.violation is None

    def raise_for_violation(self):
        if self.violation is not None:
            raise self.violation


ALLOWED = Verdict()


class BorrowingPolicy:
    def __init__(self, max_active_loans, loans=None):
        self.max_active_loans = max_active_loans
        self.loans = loans or LoanRepository()

    def validate(self, member_id, item_id, now=None) -> Verdict:
        now = now or timezone.now()
        logger.debug("Validating borrowing rules for member %s and item %s", member_id, item_id)

        active = self.loans.count_active_for_member(member_id)
        if active >= self.max_active_loans:
            logger.warning(
                "Member %s has %s active loans, limit is %s",
                member_id, active, self.max_active_loans,
            )
            return Verdict(MaxLoansExceeded(self.max_active_loans))

        if self.loans.has_overdue_for_member(member_id, now):
            logger.warning("Member %s has overdue loans", member_id)
            return Verdict(HasOverdueLoan())

        row = Item.objects.active().filter(pk=item_id).values_list("title", "available_copies").first()
        if row is None:
            raise ItemNotFound(item_id)
        title, available = row
        if available <= 0:
            logger.warning("Item %s has no available copies", item_id)
            return Verdict(NoCopiesAvailable(title))

        logger.debug("All borrowing rules passed for member %s and item %s", member_id, item_id)
        return ALLOWED
