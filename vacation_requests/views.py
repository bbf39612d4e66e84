"""JSON views exposing the vacation workflow to the web client."""
from __future__ import annotations

import calendar
import json
import logging
from collections import defaultdict
from datetime import date, timedelta
from typing import Dict, List, Optional

from django.contrib.auth import authenticate, get_user_model, login, logout
from django.db import transaction
from django.forms.models import model_to_dict
from django.http import JsonResponse
from django.utils import timezone
from django.views import View

from .exceptions import (
    InsufficientBalanceError,
    InsufficientPermissionError,
    InvalidRangeError,
    InvalidTransitionError,
    NotFoundError,
    PendingRequestsError,
    RoleNotEligibleError,
    VacationError,
)
from .forms import (
    AdminRegistrationForm,
    CalendarFilterForm,
    CompanySettingsForm,
    DecisionForm,
    JoinCompanyForm,
    LoginForm,
    RoleForm,
    VacationDaysForm,
    VacationRequestForm,
)
from .ledger import BalanceLedger
from .lifecycle import RequestLifecycle
from .models import DECIDER_ROLES, LEDGER_ROLES, Company, Member, VacationRequest, role_of
from .notifications import build_default_sink
from .store import VacationStore

User = get_user_model()
logger = logging.getLogger(__name__)

ERROR_STATUS = {
    InvalidRangeError: 400,
    InsufficientBalanceError: 400,
    RoleNotEligibleError: 400,
    InsufficientPermissionError: 403,
    NotFoundError: 404,
    InvalidTransitionError: 409,
    PendingRequestsError: 409,
}

ADMIN_ONLY = frozenset({Member.Role.ADMIN})


def _error(message: str, status: int, **extra) -> JsonResponse:
    return JsonResponse({"error": message, **extra}, status=status)


def _form_error(form) -> JsonResponse:
    return _error("Invalid input.", 400, fields=form.errors.get_json_data())


def _status_for(exc: VacationError) -> int:
    for error_class, status in ERROR_STATUS.items():
        if isinstance(exc, error_class):
            return status
    return 400


def member_payload(member: Member) -> dict:
    return {
        "id": member.pk,
        "name": member.display_name,
        "email": member.user.email,
        "role": member.role,
        "company_id": member.company_id,
        "vacation_days_total": member.vacation_days_total,
        "vacation_days_used": member.vacation_days_used,
        "active": member.active,
    }


def request_payload(vacation_request: VacationRequest) -> dict:
    manager = vacation_request.manager
    return {
        "id": vacation_request.pk,
        "member_id": vacation_request.member_id,
        "member_name": vacation_request.member.display_name,
        "member_email": vacation_request.member.user.email,
        "start_date": vacation_request.start_date,
        "end_date": vacation_request.end_date,
        "days_count": vacation_request.days_count,
        "status": vacation_request.status,
        "note": vacation_request.note,
        "manager_id": vacation_request.manager_id,
        "manager_name": manager.display_name if manager else None,
        "created_at": vacation_request.created_at,
        "updated_at": vacation_request.updated_at,
    }


def company_payload(company: Company) -> dict:
    return {
        "id": company.pk,
        "name": company.name,
        "access_code": company.access_code,
        "plan": company.plan,
        "work_days": company.work_days,
        "vacation_days": company.vacation_days,
        "exclude_weekends": company.exclude_weekends,
        "created_at": company.created_at,
    }


class ApiView(View):
    """Base view: JSON body parsing, member gatekeeping and error translation."""

    login_required = True
    allowed_roles: Optional[frozenset] = None

    member: Optional[Member] = None
    payload: dict

    def dispatch(self, request, *args, **kwargs):
        if self.login_required:
            denied = self.check_member(request)
            if denied is not None:
                return denied
        try:
            self.payload = self.parse_body(request)
        except ValueError:
            return _error("Request body must be a JSON object.", 400)
        try:
            return super().dispatch(request, *args, **kwargs)
        except VacationError as exc:
            logger.info("Rejected %s %s: %s", request.method, request.path, exc)
            return _error(str(exc), _status_for(exc), code=exc.code, details=exc.params)

    def check_member(self, request) -> Optional[JsonResponse]:
        if not request.user.is_authenticated:
            return _error("Authentication required.", 401)
        try:
            self.member = Member.objects.select_related("company", "user").get(user=request.user)
        except Member.DoesNotExist:
            return _error("No company membership for this account.", 403)
        if not self.member.active:
            return _error("This account is deactivated.", 401)
        if self.allowed_roles is not None and role_of(self.member) not in self.allowed_roles:
            return _error("Insufficient permissions.", 403)
        return None

    @staticmethod
    def parse_body(request) -> dict:
        if request.method in {"GET", "HEAD", "OPTIONS"} or not request.body:
            return {}
        payload = json.loads(request.body)
        if not isinstance(payload, dict):
            raise ValueError("expected a JSON object")
        return payload

    def get_store(self) -> VacationStore:
        return VacationStore()

    def get_lifecycle(self) -> RequestLifecycle:
        store = self.get_store()
        sink = build_default_sink()
        return RequestLifecycle(store, BalanceLedger(store, sink), sink)


# ======================== AUTH ========================


class RegisterAdminView(ApiView):
    """Creates a company with a fresh access code and its first admin."""

    login_required = False

    def post(self, request):
        form = AdminRegistrationForm(self.payload)
        if not form.is_valid():
            return _form_error(form)
        data = form.cleaned_data
        with transaction.atomic():
            company = Company.objects.create(name=data["company_name"])
            user = User.objects.create_user(
                username=data["email"],
                email=data["email"],
                password=data["password"],
                first_name=data["name"],
            )
            member = Member.objects.create(
                user=user,
                company=company,
                role=Member.Role.ADMIN,
                vacation_days_total=0,
            )
        login(request, user)
        logger.info("Registered company %s with admin %s", company.pk, member.pk)
        return JsonResponse(
            {"user": member_payload(member), "company": {"name": company.name, "access_code": company.access_code}},
            status=201,
        )


class RegisterView(ApiView):
    """Joins an existing company using its access code."""

    login_required = False

    def post(self, request):
        form = JoinCompanyForm(self.payload)
        if not form.is_valid():
            return _form_error(form)
        data = form.cleaned_data
        company: Company = data["access_code"]
        with transaction.atomic():
            user = User.objects.create_user(
                username=data["email"],
                email=data["email"],
                password=data["password"],
                first_name=data["name"],
            )
            member = Member.objects.create(
                user=user,
                company=company,
                role=data["role"],
                vacation_days_total=company.vacation_days,
            )
        login(request, user)
        logger.info("Member %s joined company %s as %s", member.pk, company.pk, member.role)
        return JsonResponse({"user": member_payload(member)}, status=201)


class LoginView(ApiView):
    login_required = False

    def post(self, request):
        form = LoginForm(self.payload)
        if not form.is_valid():
            return _form_error(form)
        user = authenticate(
            request,
            username=form.cleaned_data["email"].lower(),
            password=form.cleaned_data["password"],
        )
        member = Member.objects.filter(user=user, active=True).first() if user is not None else None
        if member is None:
            return _error("Invalid credentials.", 401)
        login(request, user)
        return JsonResponse({"user": member_payload(member)})


class LogoutView(ApiView):
    login_required = False

    def post(self, request):
        logout(request)
        return JsonResponse({"success": True})


# ======================== VACATION REQUESTS ========================


class VacationRequestListView(ApiView):
    """Lists visible requests and accepts new ones."""

    def get(self, request):
        requests = self.get_lifecycle().visible_requests(self.member)
        return JsonResponse([request_payload(item) for item in requests], safe=False)

    def post(self, request):
        form = VacationRequestForm(self.payload)
        if not form.is_valid():
            return _form_error(form)
        vacation_request = self.get_lifecycle().submit(
            self.member,
            form.cleaned_data["start_date"],
            form.cleaned_data["end_date"],
            form.cleaned_data["note"],
        )
        return JsonResponse(request_payload(vacation_request), status=201)


class VacationRequestDetailView(ApiView):
    def get(self, request, pk: int):
        vacation_request = self.get_lifecycle().get_request(pk, self.member)
        return JsonResponse(request_payload(vacation_request))


class VacationRequestDecisionView(ApiView):
    """Approve or deny a pending request."""

    allowed_roles = DECIDER_ROLES

    def put(self, request, pk: int):
        form = DecisionForm(self.payload)
        if not form.is_valid():
            return _form_error(form)
        vacation_request = self.get_lifecycle().decide(pk, self.member, form.cleaned_data["status"])
        return JsonResponse({"success": True, "request": request_payload(vacation_request)})

    post = put


class VacationRequestCancelView(ApiView):
    def post(self, request, pk: int):
        vacation_request = self.get_lifecycle().cancel(pk, self.member)
        return JsonResponse({"success": True, "request": request_payload(vacation_request)})


# ======================== MEMBERS ========================


class MemberListView(ApiView):
    allowed_roles = DECIDER_ROLES

    def get(self, request):
        members = Member.objects.for_company(self.member.company_id).select_related("user")
        return JsonResponse([member_payload(member) for member in members], safe=False)


class MemberVacationDaysView(ApiView):
    """Overrides a member's allotment; admins have none to set."""

    allowed_roles = DECIDER_ROLES

    def put(self, request, pk: int):
        form = VacationDaysForm(self.payload)
        if not form.is_valid():
            return _form_error(form)
        store = self.get_store()
        target = store.load_member(pk, company_id=self.member.company_id)
        ledger = BalanceLedger(store, build_default_sink())
        ledger.adjust_total(target, form.cleaned_data["vacation_days_total"], actor=self.member)
        return JsonResponse({"success": True, "user": member_payload(target)})


class MemberRoleView(ApiView):
    allowed_roles = ADMIN_ONLY

    def put(self, request, pk: int):
        form = RoleForm(self.payload)
        if not form.is_valid():
            return _form_error(form)
        target = self.get_store().load_member(pk, company_id=self.member.company_id)
        new_role = Member.Role(form.cleaned_data["role"])
        if new_role not in LEDGER_ROLES:
            # Only members with a balance can have requests approved.
            pending = target.vacation_requests.pending().count()
            if pending:
                raise PendingRequestsError(target.pk, pending)
        target.role = new_role
        target.save(update_fields=["role"])
        logger.info("Member %s is now %s", target.pk, target.role)
        return JsonResponse({"success": True, "user": member_payload(target)})


class MemberToggleActiveView(ApiView):
    allowed_roles = ADMIN_ONLY

    def put(self, request, pk: int):
        target = self.get_store().load_member(pk, company_id=self.member.company_id)
        target.active = not target.active
        target.save(update_fields=["active"])
        return JsonResponse({"success": True, "user": member_payload(target)})


# ======================== COMPANY ========================


class CompanyView(ApiView):
    def get(self, request):
        return JsonResponse(company_payload(self.member.company))

    def put(self, request):
        if role_of(self.member) not in ADMIN_ONLY:
            return _error("Insufficient permissions.", 403)
        company = self.member.company
        fields = CompanySettingsForm.Meta.fields
        form = CompanySettingsForm({**model_to_dict(company, fields=fields), **self.payload}, instance=company)
        if not form.is_valid():
            return _form_error(form)
        company = form.save()
        return JsonResponse({"success": True, "company": company_payload(company)})


# ======================== NOTIFICATIONS ========================


class NotificationListView(ApiView):
    def get(self, request):
        notifications = self.member.notifications.unread()
        return JsonResponse(
            [
                {
                    "id": notification.pk,
                    "message": notification.message,
                    "kind": notification.kind,
                    "created_at": notification.created_at,
                }
                for notification in notifications
            ],
            safe=False,
        )


class NotificationReadView(ApiView):
    def put(self, request):
        updated = self.member.notifications.unread().update(read=True)
        return JsonResponse({"success": True, "updated": updated})

    post = put


# ======================== STATISTICS ========================


class StatsView(ApiView):
    allowed_roles = DECIDER_ROLES

    def get(self, request):
        company_id = self.member.company_id
        now = timezone.now()
        requests = VacationRequest.objects.for_company(company_id)
        return JsonResponse(
            {
                "total_employees": Member.objects.for_company(company_id).active().count(),
                "pending_requests": requests.pending().count(),
                "approved_this_month": requests.approved()
                .filter(created_at__year=now.year, created_at__month=now.month)
                .count(),
            }
        )


# ======================== CALENDAR ========================


class CalendarView(ApiView):
    """Month grid of approved leave the viewer is allowed to see."""

    def get_month_year(self) -> tuple[int, int]:
        today = date.today()
        form = CalendarFilterForm(self.request.GET)
        if not form.is_valid():
            return today.year, today.month
        return form.cleaned_data["year"] or today.year, form.cleaned_data["month"] or today.month

    def get(self, request):
        year, month = self.get_month_year()
        cal = calendar.Calendar(firstweekday=0)
        days_iter = list(cal.itermonthdates(year, month))
        first_visible_day = days_iter[0]
        last_visible_day = days_iter[-1]

        events_by_day: Dict[date, List[dict]] = defaultdict(list)
        approved_requests = (
            self.get_lifecycle()
            .visible_requests(self.member)
            .approved()
            .overlapping(first_visible_day, last_visible_day)
        )
        for vacation_request in approved_requests:
            day = max(vacation_request.start_date, first_visible_day)
            last_day = min(vacation_request.end_date, last_visible_day)
            while day <= last_day:
                events_by_day[day].append(
                    {"request_id": vacation_request.pk, "label": vacation_request.member.display_name}
                )
                day += timedelta(days=1)

        weeks = []
        week = []
        for day in days_iter:
            week.append({"date": day, "in_month": day.month == month, "events": events_by_day.get(day, [])})
            if len(week) == 7:
                weeks.append(week)
                week = []

        return JsonResponse(
            {"year": year, "month": month, "month_name": calendar.month_name[month], "weeks": weeks}
        )
