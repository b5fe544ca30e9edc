import itertools
from datetime import datetime, timedelta, timezone as dt_timezone

import pytest

from lending_app.models import Item, Loan, Member

NOW = datetime(2024, 3, 1, 12, 0, tzinfo=dt_timezone.utc)


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def clock(now):
    return lambda: now


@pytest.fixture
def make_item():
    counter = itertools.count(1)

    def factory(**kwargs):
        n = next(counter)
        total = kwargs.pop("total_copies", 5)
        fields = {
            "title": f"Item {n}",
            "author": "Robert C. Martin",
            "isbn": f"97801323{n:05d}",
            "total_copies": total,
            "available_copies": kwargs.pop("available_copies", total),
        }
        fields.update(kwargs)
        return Item.objects.create(**fields)

    return factory


@pytest.fixture
def make_member():
    counter = itertools.count(1)

    def factory(**kwargs):
        n = next(counter)
        fields = {"name": f"Member {n}", "email": f"member{n}@example.com"}
        fields.update(kwargs)
        member = Member(**fields)
        member.set_password("secret")
        member.save()
        return member

    return factory


@pytest.fixture
def make_loan(now):
    """Create a loan row directly, without touching the item's counters."""

    def factory(member, item, borrowed_at=None, due_date=None, **kwargs):
        borrowed_at = borrowed_at or now - timedelta(days=1)
        return Loan.objects.create(
            member=member,
            item=item,
            borrowed_at=borrowed_at,
            due_date=due_date or borrowed_at + timedelta(days=14),
            **kwargs,
        )

    return factory


def assert_stock_consistent(item):
    item.refresh_from_db()
    assert item.available_copies == item.total_copies - item.count_active_loans()
