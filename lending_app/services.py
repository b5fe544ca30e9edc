import logging
from dataclasses import asdict, dataclass
from datetime import datetime, timedelta
from typing import Optional

from django.db import OperationalError, transaction
from django.utils import timezone

from .conf import lending_settings
from .exceptions import (
    AlreadyReturned,
    InvalidLoanDates,
    ItemNotFound,
    LoanNotFound,
    MemberNotFound,
    NoCopiesAvailable,
    OutOfStock,
    TransientConflict,
)
from .filters import ITEM_SCHEMA, LOAN_SCHEMA, MEMBER_SCHEMA, translate
from .ledger import InventoryLedger
from .models import Loan
from .policy import BorrowingPolicy
from .repositories import DEFAULT_PAGE_SIZE, ItemRepository, LoanRepository, MemberRepository

logger = logging.getLogger(__name__)


def as_id(value, not_found):
    """Coerce a record id to ``int``; anything else names no record."""
    try:
        return int(value)
    except (TypeError, ValueError):
        raise not_found(value) from None


def check_loan_dates(borrowed_at, due_date):
    if borrowed_at and due_date and due_date < borrowed_at:
        raise InvalidLoanDates(borrowed_at, due_date)


@dataclass
class LoanPatch:
    """Optional loan fields for the administrative edit path.

    ``None`` means "keep the current value".
    """

    member_id: Optional[int] = None
    item_id: Optional[int] = None
    borrowed_at: Optional[datetime] = None
    due_date: Optional[datetime] = None
    returned_at: Optional[datetime] = None

    def provided(self):
        return {name: value for name, value in asdict(self).items() if value is not None}

    def merge_into(self, loan):
        for name in ("borrowed_at", "due_date", "returned_at"):
            value = getattr(self, name)
            if value is not None:
                setattr(loan, name, value)
        return loan


class LendingService:
    """Borrow and return items, and the administrative loan edit path.

    ``borrow`` and ``return_item`` run their stock change and loan write in
    one transaction, holding the item's lock for its whole duration.  A
    database lock or serialisation failure (``OperationalError``) restarts
    the transaction up to ``lock_retry_attempts`` times before surfacing
    :class:`TransientConflict`.
    """

    def __init__(self, config=None, members=None, items=None, loans=None,
                 ledger=None, policy=None, clock=timezone.now):
        self.config = config or lending_settings()
        self.members = members or MemberRepository()
        self.items = items or ItemRepository()
        self.loans = loans or LoanRepository()
        self.ledger = ledger or InventoryLedger()
        self.policy = policy or BorrowingPolicy(self.config.max_active_loans, self.loans)
        self.clock = clock

    def _run_atomic(self, operation, *args):
        attempts = self.config.lock_retry_attempts
        for attempt in range(1, attempts + 1):
            try:
                with transaction.atomic():
                    return operation(*args)
            except OperationalError as exc:
                logger.warning(
                    "%s conflicted on attempt %s/%s: %s",
                    operation.__name__, attempt, attempts, exc,
                )
                last_error = exc
        raise TransientConflict(attempts) from last_error

    def borrow(self, member_id, item_id):
        member_id, item_id = as_id(member_id, MemberNotFound), as_id(item_id, ItemNotFound)
        logger.info("Processing borrow request for member %s and item %s", member_id, item_id)
        with self.ledger.hold(item_id):
            loan = self._run_atomic(self._borrow, member_id, item_id)

        logger.info(
            "Loan %s created for member %s and item %s", loan.pk, member_id, item_id
        )
        return loan

    def _borrow(self, member_id, item_id):
        now = self.clock()
        member = self.members.find_active_by_id(member_id)
        item = self.ledger.lock(item_id)
        self.policy.validate(member.pk, item.pk, now).raise_for_violation()
        try:
            self.ledger.reserve(item.pk)
        except OutOfStock:
            logger.warning("Item %s ran out of copies before reservation", item.pk)
            raise NoCopiesAvailable(item.title) from None
        item.refresh_from_db(fields=["available_copies", "updated_at"])

        loan = Loan(
            member=member,
            item=item,
            borrowed_at=now,
            due_date=now + timedelta(days=self.config.loan_duration_days),
        )
        return self.loans.save(loan)

    def return_item(self, loan_id):
        loan_id = as_id(loan_id, LoanNotFound)
        logger.info("Processing return request for loan %s", loan_id)
        loan = self.loans.find_active_by_id(loan_id)
        if loan.returned_at is not None:
            logger.warning("Loan %s has already been returned", loan_id)
            raise AlreadyReturned(loan_id)

        with self.ledger.hold(loan.item_id):
            self._run_atomic(self._return, loan_id)

        logger.info("Loan %s returned", loan_id)
        return self.loans.find_active_by_id(loan_id)

    def _return(self, loan_id):
        try:
            loan = Loan.objects.select_for_update().active().get(pk=loan_id)
        except Loan.DoesNotExist:
            raise LoanNotFound(loan_id) from None
        if loan.returned_at is not None:
            raise AlreadyReturned(loan_id)
        loan.returned_at = self.clock()
        loan.save(update_fields=["returned_at", "updated_at"])
        self.ledger.release(loan.item_id)
        return loan

    def get_loan(self, loan_id):
        loan_id = as_id(loan_id, LoanNotFound)
        return self.loans.find_active_by_id(loan_id)

    def list_loans(self, filter_obj=None, page=0, size=DEFAULT_PAGE_SIZE):
        return self.loans.find_all(translate(filter_obj, LOAN_SCHEMA), page, size)

    def list_overdue_loans(self, page=0, size=DEFAULT_PAGE_SIZE, now=None):
        return self.loans.find_overdue(now or self.clock(), page, size)

    # Administrative path: no borrowing policy, no stock changes.

    def create_loan(self, patch):
        if patch.member_id is None or patch.item_id is None:
            raise ValueError("member_id and item_id are required to create a loan")
        member = self.members.find_active_by_id(patch.member_id)
        item = self.items.find_active_by_id(patch.item_id)
        borrowed_at = patch.borrowed_at or self.clock()
        check_loan_dates(borrowed_at, patch.due_date)
        loan = Loan(
            member=member,
            item=item,
            borrowed_at=borrowed_at,
            due_date=patch.due_date or borrowed_at + timedelta(days=self.config.loan_duration_days),
            returned_at=patch.returned_at,
        )
        self.loans.save(loan)
        logger.info("Loan %s created manually for member %s and item %s", loan.pk, member.pk, item.pk)
        return loan

    @transaction.atomic
    def update_loan(self, loan_id, patch):
        loan_id = as_id(loan_id, LoanNotFound)
        loan = self.loans.find_active_by_id(loan_id)
        if patch.member_id is not None and patch.member_id != loan.member_id:
            loan.member = self.members.find_active_by_id(patch.member_id)
        if patch.item_id is not None and patch.item_id != loan.item_id:
            loan.item = self.items.find_active_by_id(patch.item_id)
        patch.merge_into(loan)
        check_loan_dates(loan.borrowed_at, loan.due_date)
        self.loans.save(loan)
        logger.info("Loan %s updated: %s", loan_id, sorted(patch.provided()))
        return loan

    def delete_loan(self, loan_id):
        loan_id = as_id(loan_id, LoanNotFound)
        loan = self.loans.find_active_by_id(loan_id)
        self.loans.soft_delete(loan)
        logger.info("Loan %s deleted", loan_id)


class CatalogService:
    """Listing side of the catalog and membership records."""

    def __init__(self, items=None, members=None, ledger=None):
        self.items = items or ItemRepository()
        self.members = members or MemberRepository()
        self.ledger = ledger or InventoryLedger()

    def list_items(self, filter_obj=None, page=0, size=DEFAULT_PAGE_SIZE):
        return self.items.find_all(translate(filter_obj, ITEM_SCHEMA), page, size)

    def list_members(self, filter_obj=None, page=0, size=DEFAULT_PAGE_SIZE):
        return self.members.find_all(translate(filter_obj, MEMBER_SCHEMA), page, size)

    def set_total_copies(self, item_id, total):
        item_id = as_id(item_id, ItemNotFound)
        self.items.find_active_by_id(item_id)
        return self.ledger.set_total_copies(item_id, total)
