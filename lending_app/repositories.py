"""ORM-backed gateways for items, members and loans.

Reads exclude soft-deleted rows: lookups by id go through
``objects.active()``, listings take a :class:`~lending_app.filters.PredicateSet`
which always carries the soft-delete guard.
"""

from django.core.paginator import Paginator
from django.utils import timezone

from .exceptions import ItemNotFound, LoanNotFound, MemberNotFound
from .filters import GUARD_ONLY
from .models import Item, Loan, Member

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100


class Repository:
    model = None
    not_found = None
    related = ()

    def base_queryset(self):
        qs = self.model.objects.all()
        if self.related:
            qs = qs.select_related(*self.related)
        return qs

    def find_active_by_id(self, pk):
        try:
            return self.base_queryset().active().get(pk=pk)
        except self.model.DoesNotExist:
            raise self.not_found(pk) from None

    def find_all(self, predicates=None, page=0, size=DEFAULT_PAGE_SIZE):
        """Return one page (0-based) of records matching ``predicates``."""
        if predicates is None:
            predicates = GUARD_ONLY
        size = min(max(int(size), 1), MAX_PAGE_SIZE)
        qs = predicates.apply(self.base_queryset()).order_by("id")
        return Paginator(qs, size).get_page(max(int(page), 0) + 1)

    def save(self, entity):
        entity.save()
        return entity

    def soft_delete(self, entity):
        entity.soft_delete()
        return entity


class ItemRepository(Repository):
    model = Item
    not_found = ItemNotFound


class MemberRepository(Repository):
    model = Member
    not_found = MemberNotFound

    def find_active_by_email(self, email):
        try:
            return self.base_queryset().active().get(email=email)
        except Member.DoesNotExist:
            raise MemberNotFound(email) from None


class LoanRepository(Repository):
    model = Loan
    not_found = LoanNotFound
    related = ("member", "item")

    def count_active_for_member(self, member_id):
        return Loan.objects.active_loans().filter(member_id=member_id).count()

    def has_overdue_for_member(self, member_id, now=None):
        return Loan.objects.overdue(now or timezone.now()).filter(member_id=member_id).exists()

    def find_overdue(self, now=None, page=0, size=DEFAULT_PAGE_SIZE):
        size = min(max(int(size), 1), MAX_PAGE_SIZE)
        qs = self.base_queryset().overdue(now or timezone.now()).order_by("due_date", "id")
        return Paginator(qs, size).get_page(max(int(page), 0) + 1)
