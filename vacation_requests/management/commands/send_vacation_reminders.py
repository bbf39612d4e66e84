from __future__ import annotations

from datetime import date, timedelta

from django.core.management.base import BaseCommand

from ...models import Notification, VacationRequest
from ...notifications import build_default_sink, reminder_message


class Command(BaseCommand):
    help = "Remind members of approved vacation that is about to start."

    def add_arguments(self, parser):
        parser.add_argument(
            "--days",
            type=int,
            default=2,
            help="Number of days in advance to send reminders (default: 2).",
        )

    def handle(self, *args, **options):
        days = options["days"]
        today = date.today()
        window_end = today + timedelta(days=days)
        upcoming = VacationRequest.objects.approved().filter(
            start_date__range=(today, window_end),
            member__active=True,
        ).select_related("member")
        sink = build_default_sink()
        count = 0
        for vacation_request in upcoming:
            sink.deliver({vacation_request.member_id}, reminder_message(vacation_request), Notification.Kind.REMINDER)
            count += 1
        self.stdout.write(self.style.SUCCESS(f"Sent {count} vacation reminder(s)."))
