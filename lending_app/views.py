import json
import logging
from functools import wraps

from django.contrib.auth.decorators import login_required, user_passes_test
from django.http import HttpResponse, HttpResponseForbidden, JsonResponse
from django.views.decorators.http import require_GET, require_POST

from .exceptions import InvalidFilterValue, LendingError, MemberNotFound
from .filters import ItemFilter, LoanFilter, MemberFilter
from .forms import LoanCreateForm, LoanPatchForm, TotalCopiesForm
from .repositories import DEFAULT_PAGE_SIZE, MemberRepository
from .services import CatalogService, LendingService

logger = logging.getLogger(__name__)


def is_staff_user(user):
    """Staff accounts manage loans on behalf of any member."""
    return user.is_staff


def _member_for_user(user):
    email = getattr(user, "email", None)
    if not email:
        return None
    try:
        return MemberRepository().find_active_by_email(email)
    except MemberNotFound:
        return None


def lending_errors(view):
    @wraps(view)
    def wrapper(request, *args, **kwargs):
        try:
            return view(request, *args, **kwargs)
        except LendingError as exc:
            logger.info("%s rejected: %s", view.__name__, exc.code)
            return JsonResponse({"error": exc.code, "message": str(exc)}, status=exc.status)
    return wrapper


def _error(code, message, status):
    return JsonResponse({"error": code, "message": message}, status=status)


def _invalid_body():
    return _error("invalid_request", "Request body is not valid JSON.", 400)


def _form_error(form):
    return JsonResponse({"error": "invalid_request", "message": form.errors.get_json_data()}, status=400)


def _payload(request):
    if request.content_type == "application/json":
        try:
            data = json.loads(request.body or b"{}")
        except json.JSONDecodeError:
            return None
        return data if isinstance(data, dict) else None
    return request.POST


def _page_params(request):
    params = {}
    for name, default in (("page", 0), ("size", DEFAULT_PAGE_SIZE)):
        raw = request.GET.get(name, default)
        try:
            params[name] = int(raw)
        except (TypeError, ValueError):
            raise InvalidFilterValue(name, raw) from None
    return params


def _query_filter(request, filter_cls):
    return filter_cls(**{
        name: request.GET.get(name) or request.GET.get(_camel(name))
        for name in filter_cls.__dataclass_fields__
    })


def _camel(name):
    head, *rest = name.split("_")
    return head + "".join(part.title() for part in rest)


def _iso(value):
    return value.isoformat() if value else None


def item_to_dict(item):
    return {
        "id": item.pk,
        "title": item.title,
        "author": item.author,
        "isbn": item.isbn,
        "totalCopies": item.total_copies,
        "availableCopies": item.available_copies,
        "createdAt": _iso(item.created_at),
        "updatedAt": _iso(item.updated_at),
    }


def member_to_dict(member):
    return {
        "id": member.pk,
        "name": member.name,
        "email": member.email,
        "role": member.role,
        "createdAt": _iso(member.created_at),
        "updatedAt": _iso(member.updated_at),
    }


def loan_to_dict(loan):
    return {
        "id": loan.pk,
        "memberId": loan.member_id,
        "memberName": loan.member.name,
        "memberEmail": loan.member.email,
        "itemId": loan.item_id,
        "itemTitle": loan.item.title,
        "itemAuthor": loan.item.author,
        "borrowedAt": _iso(loan.borrowed_at),
        "dueDate": _iso(loan.due_date),
        "returnedAt": _iso(loan.returned_at),
        "createdAt": _iso(loan.created_at),
        "updatedAt": _iso(loan.updated_at),
    }


def page_to_dict(page, serialize):
    return {
        "data": [serialize(obj) for obj in page.object_list],
        "page": page.number - 1,
        "size": page.paginator.per_page,
        "totalElements": page.paginator.count,
        "totalPages": page.paginator.num_pages,
        "first": not page.has_previous(),
        "last": not page.has_next(),
    }


@login_required
@require_GET
@lending_errors
def item_list(request):
    page = CatalogService().list_items(_query_filter(request, ItemFilter), **_page_params(request))
    return JsonResponse(page_to_dict(page, item_to_dict))


@login_required
@require_POST
@lending_errors
def borrow_item(request, item_id):
    member = _member_for_user(request.user)
    if member is None:
        return _error("no_member_profile", "Your account is not linked to a library member.", 403)

    loan = LendingService().borrow(member.pk, item_id)
    return JsonResponse(loan_to_dict(loan), status=201)


@login_required
@require_POST
@lending_errors
def return_loan(request, loan_id):
    service = LendingService()
    loan = service.get_loan(loan_id)

    if not is_staff_user(request.user):
        member = _member_for_user(request.user)
        if member is None or loan.member_id != member.pk:
            return HttpResponseForbidden("You are not allowed to return this loan.")

    return JsonResponse(loan_to_dict(service.return_item(loan_id)))


@login_required
@require_GET
@lending_errors
def loan_list(request):
    loan_filter = _query_filter(request, LoanFilter)
    if not is_staff_user(request.user):
        member = _member_for_user(request.user)
        if member is None:
            return _error("no_member_profile", "Your account is not linked to a library member.", 403)
        loan_filter.member_id = member.pk

    page = LendingService().list_loans(loan_filter, **_page_params(request))
    return JsonResponse(page_to_dict(page, loan_to_dict))


@login_required
@require_GET
@lending_errors
def loan_detail(request, loan_id):
    loan = LendingService().get_loan(loan_id)
    if not is_staff_user(request.user):
        member = _member_for_user(request.user)
        if member is None or loan.member_id != member.pk:
            return HttpResponseForbidden("You are not authorized to view this loan.")
    return JsonResponse(loan_to_dict(loan))


@login_required
@user_passes_test(is_staff_user)
@require_GET
@lending_errors
def overdue_loans(request):
    page = LendingService().list_overdue_loans(**_page_params(request))
    return JsonResponse(page_to_dict(page, loan_to_dict))


@login_required
@user_passes_test(is_staff_user)
@require_POST
@lending_errors
def loan_create(request):
    data = _payload(request)
    if data is None:
        return _invalid_body()
    form = LoanCreateForm(data)
    if not form.is_valid():
        return _form_error(form)
    loan = LendingService().create_loan(form.to_patch())
    return JsonResponse(loan_to_dict(loan), status=201)


@login_required
@user_passes_test(is_staff_user)
@require_POST
@lending_errors
def loan_update(request, loan_id):
    data = _payload(request)
    if data is None:
        return _invalid_body()
    form = LoanPatchForm(data)
    if not form.is_valid():
        return _form_error(form)
    loan = LendingService().update_loan(loan_id, form.to_patch())
    return JsonResponse(loan_to_dict(loan))


@login_required
@user_passes_test(is_staff_user)
@require_POST
@lending_errors
def loan_delete(request, loan_id):
    LendingService().delete_loan(loan_id)
    return HttpResponse(status=204)


@login_required
@user_passes_test(is_staff_user)
@require_GET
@lending_errors
def member_list(request):
    page = CatalogService().list_members(_query_filter(request, MemberFilter), **_page_params(request))
    return JsonResponse(page_to_dict(page, member_to_dict))


@login_required
@user_passes_test(is_staff_user)
@require_POST
@lending_errors
def item_set_total(request, item_id):
    data = _payload(request)
    if data is None:
        return _invalid_body()
    form = TotalCopiesForm(data)
    if not form.is_valid():
        return _form_error(form)
    item = CatalogService().set_total_copies(item_id, form.cleaned_data["total_copies"])
    return JsonResponse(item_to_dict(item))
