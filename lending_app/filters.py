"""Translate sparse listing filters into ORM predicates.

A filter is a mapping (or dataclass) whose fields are all optional.  Each
non-blank field is looked up in a :class:`FilterSchema`, a table built once
per model at import time that says how the field constrains the target
queryset:

* ``<relation>_id`` (or ``<relation>Id``) where ``<relation>`` is a foreign
  key on the model: equality on the related record's id;
* text fields: case-insensitive substring match;
* fields with choices: exact match after upper-casing, unknown values are
  dropped;
* integer fields: exact equality.

Fields the schema does not know are ignored.  The soft-delete guard is
always part of the result, and every predicate is ANDed.
"""

import logging
import re
from dataclasses import asdict, dataclass, field, is_dataclass
from functools import reduce
from operator import and_
from typing import Callable, Dict, Optional, Tuple

from django.core.exceptions import ImproperlyConfigured
from django.db import models
from django.db.models import Q

from .exceptions import InvalidFilterValue
from .models import Item, Loan, Member

logger = logging.getLogger(__name__)

SOFT_DELETE_GUARD = "deleted_at"
_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])([A-Z])")

Rule = Callable[[object], Optional[Q]]


def to_snake_case(name: str) -> str:
    return _CAMEL_BOUNDARY.sub(r"_\1", name).lower()


def _as_int(name, value):
    if isinstance(value, bool):
        raise InvalidFilterValue(name, value)
    try:
        return int(value)
    except (TypeError, ValueError):
        raise InvalidFilterValue(name, value) from None


def text_rule(path: str) -> Rule:
    return lambda value: Q(**{f"{path}__icontains": str(value).strip()})


def choice_rule(path: str, choices) -> Rule:
    allowed = frozenset(choices)

    def build(value):
        normalized = str(value).strip().upper()
        if normalized not in allowed:
            logger.debug("Ignoring unknown value %r for filter %s", value, path)
            return None
        return Q(**{path: normalized})

    return build


def exact_rule(path: str) -> Rule:
    return lambda value: Q(**{path: _as_int(path, value)})


def relation_rule(path: str) -> Rule:
    return lambda value: Q(**{f"{path}__id": _as_int(f"{path}_id", value)})


@dataclass(frozen=True)
class PredicateSet:
    """Ordered, ANDed predicates keyed by the filter field that produced them."""

    predicates: Tuple[Tuple[str, Q], ...] = field(default_factory=tuple)

    def __iter__(self):
        return iter(self.predicates)

    def __len__(self):
        return len(self.predicates)

    @property
    def fields(self):
        return [name for name, _ in self.predicates]

    def lookups(self) -> Dict[str, object]:
        """Flatten to ``{lookup: value}``, handy for assertions and logging."""
        flat = {}
        for _, q in self.predicates:
            flat.update(dict(q.children))
        return flat

    def as_q(self) -> Q:
        return reduce(and_, (q for _, q in self.predicates), Q())

    def apply(self, queryset):
        return queryset.filter(self.as_q())


class FilterSchema:
    """Explicit table of filter field name -> predicate builder for one model."""

    def __init__(self, model, rules: Dict[str, Rule]):
        self.model = model
        self.rules = dict(rules)

    @classmethod
    def for_model(cls, model, field_names):
        rules = {}
        for name in field_names:
            model_field = model._meta.get_field(name)
            if model_field.many_to_one:
                rules[f"{name}_id"] = relation_rule(name)
            elif model_field.choices:
                rules[name] = choice_rule(name, [value for value, _ in model_field.choices])
            elif isinstance(model_field, (models.CharField, models.TextField)):
                rules[name] = text_rule(name)
            elif isinstance(model_field, (models.IntegerField, models.AutoField)):
                rules[name] = exact_rule(name)
            else:
                raise ImproperlyConfigured(
                    f"{model.__name__}.{name} cannot be used as a filter field"
                )
        return cls(model, rules)

    def rule_for(self, name: str) -> Optional[Rule]:
        return self.rules.get(to_snake_case(name))


GUARD_ONLY = PredicateSet(((SOFT_DELETE_GUARD, Q(deleted_at__isnull=True)),))


def _filter_items(filter_obj):
    if filter_obj is None:
        return []
    if is_dataclass(filter_obj):
        return list(asdict(filter_obj).items())
    return list(filter_obj.items())


def _is_blank(value):
    return value is None or (isinstance(value, str) and not value.strip())


def translate(filter_obj, schema: FilterSchema) -> PredicateSet:
    predicates = {}
    for name, value in _filter_items(filter_obj):
        if _is_blank(value):
            continue
        rule = schema.rule_for(name)
        if rule is None:
            continue
        q = rule(value)
        if q is not None:
            predicates[to_snake_case(name)] = q

    result = PredicateSet(GUARD_ONLY.predicates + tuple(sorted(predicates.items())))
    logger.debug("Translated filter for %s: %s", schema.model.__name__, result.lookups())
    return result


@dataclass
class ItemFilter:
    title: Optional[str] = None
    author: Optional[str] = None
    isbn: Optional[str] = None


@dataclass
class MemberFilter:
    name: Optional[str] = None
    email: Optional[str] = None
    role: Optional[str] = None


@dataclass
class LoanFilter:
    member_id: Optional[int] = None
    item_id: Optional[int] = None


ITEM_SCHEMA = FilterSchema.for_model(Item, ["id", "title", "author", "isbn"])
MEMBER_SCHEMA = FilterSchema.for_model(Member, ["id", "name", "email", "role"])
LOAN_SCHEMA = FilterSchema.for_model(Loan, ["id", "member", "item"])
