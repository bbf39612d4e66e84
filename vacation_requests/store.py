"""Persistence for the vacation core, backed by the Django ORM."""
from __future__ import annotations

from typing import ContextManager, Iterable, List, Optional

from django.db import transaction
from django.utils import timezone

from .exceptions import NotFoundError
from .models import Company, Member, VacationRequest
from .working_days import VacationPolicy


class VacationStore:
    """Loads and saves members, requests and company policies.

    Writes that must stay consistent with each other run inside
    :meth:`atomic`; rows read with ``lock=True`` are held with
    ``SELECT ... FOR UPDATE`` until that transaction ends.
    """

    def atomic(self) -> ContextManager:
        return transaction.atomic()

    def load_member(self, member_id: int, *, company_id: Optional[int] = None, lock: bool = False) -> Member:
        queryset = Member.objects.select_related("user")
        if lock:
            queryset = queryset.select_for_update(of=("self",))
        if company_id is not None:
            queryset = queryset.for_company(company_id)
        try:
            return queryset.get(pk=member_id)
        except Member.DoesNotExist:
            raise NotFoundError("Member", member_id) from None

    def save_member(self, member: Member, fields: Iterable[str]) -> None:
        member.save(update_fields=list(fields))

    def load_request(
        self,
        request_id: int,
        *,
        company_id: Optional[int] = None,
        lock: bool = False,
    ) -> VacationRequest:
        queryset = VacationRequest.objects.all()
        if lock:
            queryset = queryset.select_for_update()
        if company_id is not None:
            queryset = queryset.for_company(company_id)
        try:
            return queryset.get(pk=request_id)
        except VacationRequest.DoesNotExist:
            raise NotFoundError("Request", request_id) from None

    def save_request(
        self,
        vacation_request: VacationRequest,
        *,
        expected_status: Optional[str] = None,
    ) -> bool:
        """Insert a new request or update an existing one.

        With ``expected_status`` the update only applies while the stored
        status still matches, and ``False`` is returned when another writer
        got there first.
        """

        if vacation_request.pk is None:
            vacation_request.save()
            return True
        if expected_status is None:
            vacation_request.save()
            return True

        vacation_request.updated_at = timezone.now()
        updated = VacationRequest.objects.filter(pk=vacation_request.pk, status=expected_status).update(
            status=vacation_request.status,
            manager=vacation_request.manager,
            note=vacation_request.note,
            updated_at=vacation_request.updated_at,
        )
        return updated == 1

    def current_status(self, request_id: int) -> str:
        return VacationRequest.objects.values_list("status", flat=True).get(pk=request_id)

    def list_requests(self, company_id: int):
        return (
            VacationRequest.objects.for_company(company_id)
            .select_related("member__user", "manager__user")
            .order_by("-created_at", "-id")
        )

    def get_policy(self, company_id: int) -> VacationPolicy:
        try:
            company = Company.objects.only("exclude_weekends", "work_days").get(pk=company_id)
        except Company.DoesNotExist:
            raise NotFoundError("Company", company_id) from None
        return company.policy

    def decider_ids(self, company_id: int) -> List[int]:
        return list(
            Member.objects.for_company(company_id).active().deciders().values_list("pk", flat=True)
        )
