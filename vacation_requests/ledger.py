"""Per-member accounting of allotted and used vacation days."""
from __future__ import annotations

import logging
from functools import partial
from typing import Optional

from django.db import transaction

from .exceptions import InsufficientBalanceError, InsufficientPermissionError, RoleNotEligibleError
from .models import DECIDER_ROLES, LEDGER_ROLES, Member, Notification, role_of
from .notifications import NotificationSink, allotment_message, build_default_sink
from .store import VacationStore

logger = logging.getLogger(__name__)


class BalanceLedger:
    """Tracks ``(total, used)`` per member. Admins have no balance."""

    def __init__(self, store: Optional[VacationStore] = None, sink: Optional[NotificationSink] = None) -> None:
        self.store = store or VacationStore()
        self.sink = sink or build_default_sink()

    @staticmethod
    def ensure_eligible(member: Member) -> None:
        role = role_of(member)
        if role not in LEDGER_ROLES:
            raise RoleNotEligibleError(role)

    def available(self, member: Member) -> int:
        self.ensure_eligible(member)
        return member.vacation_days_total - member.vacation_days_used

    def reserve_on_approval(self, member: Member, days: int) -> Member:
        """Consume ``days`` from the member's balance.

        The balance is re-read under a row lock, so the check reflects the
        state at decision time rather than at submission time.
        """

        if days < 0:
            raise ValueError("Days to reserve cannot be negative.")
        self.ensure_eligible(member)
        with self.store.atomic():
            current = self.store.load_member(member.pk, lock=True)
            self.ensure_eligible(current)
            available = current.vacation_days_total - current.vacation_days_used
            if days > available:
                logger.warning(
                    "Rejected reservation of %s day(s) for member %s: %s available",
                    days,
                    current.pk,
                    available,
                )
                raise InsufficientBalanceError(available=available, requested=days)
            current.vacation_days_used += days
            self.store.save_member(current, ["vacation_days_used"])
        member.vacation_days_used = current.vacation_days_used
        member.vacation_days_total = current.vacation_days_total
        logger.info("Reserved %s day(s) for member %s", days, member.pk)
        return member

    def adjust_total(self, member: Member, new_total: int, *, actor: Optional[Member] = None) -> Member:
        """Set the member's allotment. A total below ``used`` is accepted."""

        if new_total < 0:
            raise ValueError("Vacation days cannot be negative.")
        if actor is not None:
            actor_role = role_of(actor)
            if actor_role not in DECIDER_ROLES:
                raise InsufficientPermissionError(actor_role)
        self.ensure_eligible(member)
        with self.store.atomic():
            company_id = actor.company_id if actor is not None else None
            current = self.store.load_member(member.pk, company_id=company_id, lock=True)
            self.ensure_eligible(current)
            current.vacation_days_total = new_total
            self.store.save_member(current, ["vacation_days_total"])
            transaction.on_commit(
                partial(
                    self.sink.deliver,
                    {current.pk},
                    allotment_message(new_total),
                    Notification.Kind.VACATION_UPDATE,
                ),
                robust=True,
            )
        member.vacation_days_total = new_total
        if current.vacation_days_used > new_total:
            logger.warning(
                "Member %s now has %s used of %s total day(s)",
                member.pk,
                current.vacation_days_used,
                new_total,
            )
        return member
