"""Notification sinks and the messages sent for vacation workflow events."""
from __future__ import annotations

import logging
from typing import Collection, Iterable, List, Protocol

from django.conf import settings
from django.core.mail import send_mail

from .models import Member, Notification, VacationRequest

logger = logging.getLogger(__name__)


class NotificationSink(Protocol):
    def deliver(self, recipient_ids: Collection[int], message: str, kind: str) -> None:
        ...


class DatabaseNotificationSink:
    """Stores one unread notification row per recipient."""

    def deliver(self, recipient_ids: Collection[int], message: str, kind: str) -> None:
        if not recipient_ids:
            return
        Notification.objects.bulk_create(
            [Notification(member_id=member_id, message=message, kind=kind) for member_id in recipient_ids]
        )


class EmailNotificationSink:
    """Mails recipients that have an address; failures are silent."""

    def deliver(self, recipient_ids: Collection[int], message: str, kind: str) -> None:
        addresses = [
            email
            for email in Member.objects.filter(pk__in=list(recipient_ids)).values_list("user__email", flat=True)
            if email
        ]
        if not addresses:
            return
        send_mail(
            subject=f"Vacay Hub: {Notification.Kind(kind).label}",
            message=message,
            from_email=getattr(settings, "DEFAULT_FROM_EMAIL", "no-reply@example.com"),
            recipient_list=addresses,
            fail_silently=True,
        )


class FanOutSink:
    """Delivers to several sinks; one failing sink does not stop the others."""

    def __init__(self, sinks: Iterable[NotificationSink]) -> None:
        self.sinks: List[NotificationSink] = list(sinks)

    def deliver(self, recipient_ids: Collection[int], message: str, kind: str) -> None:
        for sink in self.sinks:
            try:
                sink.deliver(recipient_ids, message, kind)
            except Exception:
                logger.exception("Notification sink %s failed for %s", type(sink).__name__, kind)


def build_default_sink() -> NotificationSink:
    sinks: List[NotificationSink] = [DatabaseNotificationSink()]
    if getattr(settings, "VACAY_NOTIFY_BY_EMAIL", False):
        sinks.append(EmailNotificationSink())
    return FanOutSink(sinks)


def new_request_message(vacation_request: VacationRequest) -> str:
    return (
        f"New vacation request from {vacation_request.member.display_name}: "
        f"{vacation_request.start_date} to {vacation_request.end_date} "
        f"({vacation_request.days_count} day(s))."
    )


def decision_message(vacation_request: VacationRequest) -> str:
    outcome = "approved" if vacation_request.status == VacationRequest.Status.APPROVED else "denied"
    return (
        f"Your vacation request from {vacation_request.start_date} to "
        f"{vacation_request.end_date} was {outcome}."
    )


def allotment_message(total: int) -> str:
    return f"Your vacation days were set to {total}."


def reminder_message(vacation_request: VacationRequest) -> str:
    return (
        f"Reminder: your vacation starts on {vacation_request.start_date} "
        f"and ends on {vacation_request.end_date}. Please hand over your tasks before you leave."
    )
