"""State machine for vacation requests: submit, decide and cancel."""
from __future__ import annotations

import logging
from datetime import date
from functools import partial
from typing import Optional

from django.db import transaction

from .exceptions import (
    InsufficientBalanceError,
    InsufficientPermissionError,
    InvalidTransitionError,
    NotFoundError,
    RoleNotEligibleError,
)
from .ledger import BalanceLedger
from .models import DECIDER_ROLES, LEDGER_ROLES, Member, Notification, VacationRequest, role_of
from .notifications import NotificationSink, build_default_sink, decision_message, new_request_message
from .store import VacationStore
from .working_days import VacationPolicy

logger = logging.getLogger(__name__)

DECISIONS = frozenset({VacationRequest.Status.APPROVED, VacationRequest.Status.DENIED})


class RequestLifecycle:
    """The only component allowed to change a request's status.

    ``pending`` is the single non-terminal status; every transition out of
    it happens at most once and, for approvals, together with the ledger
    update in one transaction.
    """

    def __init__(
        self,
        store: Optional[VacationStore] = None,
        ledger: Optional[BalanceLedger] = None,
        sink: Optional[NotificationSink] = None,
    ) -> None:
        self.store = store or VacationStore()
        self.sink = sink or build_default_sink()
        self.ledger = ledger or BalanceLedger(self.store, self.sink)

    def _notify_after_commit(self, recipient_ids, message: str, kind: str) -> None:
        transaction.on_commit(partial(self.sink.deliver, recipient_ids, message, kind), robust=True)

    def submit(
        self,
        member: Member,
        start_date: date,
        end_date: date,
        note: str = "",
        policy: Optional[VacationPolicy] = None,
    ) -> VacationRequest:
        role = role_of(member)
        if role not in LEDGER_ROLES:
            raise RoleNotEligibleError(role)

        if policy is None:
            policy = self.store.get_policy(member.company_id)
        days = policy.count(start_date, end_date)

        available = self.ledger.available(member)
        if days > available:
            logger.warning(
                "Member %s requested %s day(s) with %s available",
                member.pk,
                days,
                available,
            )
            raise InsufficientBalanceError(
                available=available,
                requested=days,
                exclude_weekends=policy.exclude_weekends,
            )

        with self.store.atomic():
            vacation_request = VacationRequest(
                member=member,
                start_date=start_date,
                end_date=end_date,
                days_count=days,
                note=note or "",
            )
            self.store.save_request(vacation_request)
            recipients = set(self.store.decider_ids(member.company_id))
            self._notify_after_commit(
                recipients,
                new_request_message(vacation_request),
                Notification.Kind.NEW_REQUEST,
            )
        logger.info("Member %s submitted request %s for %s day(s)", member.pk, vacation_request.pk, days)
        return vacation_request

    def decide(self, request_id: int, decided_by: Member, decision: str) -> VacationRequest:
        role = role_of(decided_by)
        if role not in DECIDER_ROLES:
            raise InsufficientPermissionError(role)

        with self.store.atomic():
            vacation_request = self.store.load_request(request_id, company_id=decided_by.company_id, lock=True)
            current = VacationRequest.Status(vacation_request.status)
            try:
                target = VacationRequest.Status(decision)
            except ValueError:
                raise InvalidTransitionError(current, decision) from None
            if current != VacationRequest.Status.PENDING or target not in DECISIONS:
                raise InvalidTransitionError(current, target)

            vacation_request.status = target
            vacation_request.manager = decided_by
            if not self.store.save_request(vacation_request, expected_status=VacationRequest.Status.PENDING):
                # Another decision committed between our read and our write.
                raise InvalidTransitionError(self.store.current_status(request_id), target)

            if vacation_request.status == VacationRequest.Status.APPROVED:
                owner = self.store.load_member(vacation_request.member_id)
                self.ledger.reserve_on_approval(owner, vacation_request.days_count)

            self._notify_after_commit(
                {vacation_request.member_id},
                decision_message(vacation_request),
                Notification.Kind.REQUEST_UPDATE,
            )
        logger.info("Request %s %s by member %s", request_id, vacation_request.status, decided_by.pk)
        return vacation_request

    def cancel(self, request_id: int, requested_by: Member) -> VacationRequest:
        with self.store.atomic():
            vacation_request = self.store.load_request(request_id, company_id=requested_by.company_id, lock=True)
            if vacation_request.member_id != requested_by.pk:
                raise InsufficientPermissionError(
                    role_of(requested_by),
                    "Only the owner can cancel a vacation request.",
                )
            current = VacationRequest.Status(vacation_request.status)
            if current != VacationRequest.Status.PENDING:
                raise InvalidTransitionError(current, VacationRequest.Status.CANCELLED)

            vacation_request.status = VacationRequest.Status.CANCELLED
            if not self.store.save_request(vacation_request, expected_status=VacationRequest.Status.PENDING):
                raise InvalidTransitionError(self.store.current_status(request_id), VacationRequest.Status.CANCELLED)
        logger.info("Request %s cancelled by its owner %s", request_id, requested_by.pk)
        return vacation_request

    def visible_requests(self, viewer: Member):
        """Requests the viewer may read: all of the company for deciders, own otherwise."""

        requests = self.store.list_requests(viewer.company_id)
        if role_of(viewer) in DECIDER_ROLES:
            return requests
        return requests.filter(member=viewer)

    def get_request(self, request_id: int, viewer: Member) -> VacationRequest:
        try:
            return self.visible_requests(viewer).get(pk=request_id)
        except VacationRequest.DoesNotExist:
            raise NotFoundError("Request", request_id) from None
