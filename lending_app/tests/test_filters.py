import pytest
from django.core.exceptions import ImproperlyConfigured
from django.db.models import Q

from lending_app.exceptions import InvalidFilterValue
from lending_app.filters import (
    ITEM_SCHEMA,
    LOAN_SCHEMA,
    MEMBER_SCHEMA,
    FilterSchema,
    ItemFilter,
    LoanFilter,
    MemberFilter,
    to_snake_case,
    translate,
)
from lending_app.models import Item, Loan, Member


class TestTranslate:
    def test_blank_fields_add_no_predicate(self):
        predicates = translate({"title": "clean", "isbn": ""}, ITEM_SCHEMA)

        assert predicates.lookups() == {
            "deleted_at__isnull": True,
            "title__icontains": "clean",
        }

    def test_relationship_id_becomes_equality_on_related_id(self):
        predicates = translate({"memberId": 7}, LOAN_SCHEMA)

        assert predicates.lookups() == {"deleted_at__isnull": True, "member__id": 7}

    def test_snake_case_relationship_id_and_string_value(self):
        predicates = translate(LoanFilter(member_id="7", item_id=None), LOAN_SCHEMA)

        assert predicates.lookups() == {"deleted_at__isnull": True, "member__id": 7}

    def test_empty_filter_keeps_soft_delete_guard(self):
        assert translate(None, ITEM_SCHEMA).lookups() == {"deleted_at__isnull": True}
        assert translate(ItemFilter(), ITEM_SCHEMA).lookups() == {"deleted_at__isnull": True}

    def test_role_is_normalised_to_upper_case(self):
        predicates = translate(MemberFilter(role="admin"), MEMBER_SCHEMA)

        assert predicates.lookups()["role"] == Member.Role.ADMIN

    def test_unknown_role_is_dropped(self):
        predicates = translate(MemberFilter(role="librarian"), MEMBER_SCHEMA)

        assert predicates.fields == ["deleted_at"]

    def test_fields_unknown_to_schema_are_ignored(self):
        predicates = translate({"publisher": "Prentice Hall", "title": "code"}, ITEM_SCHEMA)

        assert predicates.fields == ["deleted_at", "title"]

    def test_numeric_field_is_exact(self):
        assert translate({"id": "3"}, ITEM_SCHEMA).lookups()["id"] == 3

    def test_non_numeric_relationship_id_is_rejected(self):
        with pytest.raises(InvalidFilterValue) as exc:
            translate({"memberId": "seven"}, LOAN_SCHEMA)

        assert exc.value.field == "member_id"

    def test_output_order_is_deterministic(self):
        first = translate({"title": "a", "author": "b", "isbn": "c"}, ITEM_SCHEMA)
        second = translate({"isbn": "c", "title": "a", "author": "b"}, ITEM_SCHEMA)

        assert first.fields == ["deleted_at", "author", "isbn", "title"]
        assert first == second

    def test_as_q_ands_every_predicate(self):
        predicates = translate({"title": "clean", "author": "martin"}, ITEM_SCHEMA)

        assert predicates.as_q() == (
            Q(deleted_at__isnull=True) & Q(author__icontains="martin") & Q(title__icontains="clean")
        )


def test_to_snake_case():
    assert to_snake_case("memberId") == "member_id"
    assert to_snake_case("item_id") == "item_id"
    assert to_snake_case("title") == "title"


def test_schema_rejects_unsupported_field_types():
    with pytest.raises(ImproperlyConfigured):
        FilterSchema.for_model(Loan, ["due_date"])


@pytest.mark.django_db
class TestAppliedToQueryset:
    def test_title_match_is_case_insensitive_and_skips_deleted(self, make_item, now):
        clean = make_item(title="Clean Code")
        make_item(title="The Clean Coder")
        make_item(title="Refactoring")
        deleted = make_item(title="Clean Architecture")
        deleted.soft_delete(now)

        qs = translate({"title": "CLEAN"}, ITEM_SCHEMA).apply(Item.objects.all())

        titles = sorted(qs.values_list("title", flat=True))
        assert titles == ["Clean Code", "The Clean Coder"]
        assert clean in qs

    def test_loans_filtered_by_member(self, make_item, make_member, make_loan):
        alice, bob = make_member(), make_member()
        item = make_item()
        mine = make_loan(alice, item)
        make_loan(bob, item)

        qs = translate({"memberId": alice.pk}, LOAN_SCHEMA).apply(Loan.objects.all())

        assert list(qs) == [mine]
