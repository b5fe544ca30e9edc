"""Errors raised by the lending engine.

Every error carries a stable ``code`` used by the views when rendering a
JSON error body, and ``status`` for the HTTP response.
"""


class LendingError(Exception):
    code = "lending_error"
    status = 400


class NotFound(LendingError):
    code = "not_found"
    status = 404
    entity = "Record"

    def __init__(self, pk):
        self.pk = pk
        super().__init__(f"{self.entity} not found with id: {pk}")


class MemberNotFound(NotFound):
    code = "member_not_found"
    entity = "Member"


class ItemNotFound(NotFound):
    code = "item_not_found"
    entity = "Item"


class LoanNotFound(NotFound):
    code = "loan_not_found"
    entity = "Loan"


class BorrowingRuleViolation(LendingError):
    code = "borrowing_rule_violation"


class MaxLoansExceeded(BorrowingRuleViolation):
    code = "max_loans_exceeded"

    def __init__(self, limit):
        self.limit = limit
        super().__init__(
            f"You have reached the maximum number of active loans ({limit}). "
            "Please return an item before borrowing another."
        )


class HasOverdueLoan(BorrowingRuleViolation):
    code = "has_overdue_loan"

    def __init__(self):
        super().__init__(
            "You have overdue loans. Please return them before borrowing more items."
        )


class NoCopiesAvailable(BorrowingRuleViolation):
    code = "no_copies_available"

    def __init__(self, title):
        self.title = title
        super().__init__(f"The item '{title}' has no available copies at this time.")


class AlreadyReturned(LendingError):
    code = "already_returned"

    def __init__(self, loan_id):
        self.loan_id = loan_id
        super().__init__(f"Loan {loan_id} has already been returned")


class InvalidLoanDates(LendingError):
    code = "invalid_loan_dates"

    def __init__(self, borrowed_at, due_date):
        self.borrowed_at = borrowed_at
        self.due_date = due_date
        super().__init__(
            f"Due date {due_date.isoformat()} is before borrow date {borrowed_at.isoformat()}"
        )


class OutOfStock(LendingError):
    """The ledger found no copy to reserve."""

    code = "out_of_stock"

    def __init__(self, item_id):
        self.item_id = item_id
        super().__init__(f"Item {item_id} has no available copies")


class TransientConflict(LendingError):
    code = "transient_conflict"
    status = 503

    def __init__(self, attempts):
        self.attempts = attempts
        super().__init__(
            f"The request conflicted with a concurrent update and was abandoned "
            f"after {attempts} attempt(s); please retry."
        )


class InvalidFilterValue(LendingError):
    code = "invalid_filter"

    def __init__(self, field, value):
        self.field = field
        self.value = value
        super().__init__(f"Invalid value {value!r} for filter '{field}'")
