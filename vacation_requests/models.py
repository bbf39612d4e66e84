"""Database models for companies, members and their vacation requests."""
from __future__ import annotations

import string
from datetime import date

from django.conf import settings
from django.db import models
from django.utils.crypto import get_random_string

from .working_days import VacationPolicy

ACCESS_CODE_CHARS = string.ascii_uppercase + string.digits


def generate_access_code() -> str:
    return "VC-" + get_random_string(9, allowed_chars=ACCESS_CODE_CHARS)


def default_vacation_days() -> int:
    return getattr(settings, "VACAY_DEFAULT_VACATION_DAYS", 30)


class Company(models.Model):
    """A tenant. Members and their requests never cross company boundaries."""

    name = models.CharField(max_length=255)
    access_code = models.CharField(max_length=50, unique=True, default=generate_access_code)
    plan = models.CharField(max_length=50, default="free")
    work_days = models.PositiveSmallIntegerField(default=5)
    vacation_days = models.PositiveIntegerField(default=default_vacation_days)
    exclude_weekends = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        verbose_name_plural = "companies"
        ordering = ["name"]

    def __str__(self) -> str:
        return self.name

    @property
    def policy(self) -> VacationPolicy:
        return VacationPolicy(exclude_weekends=self.exclude_weekends, work_days=self.work_days)


class MemberQuerySet(models.QuerySet):
    def for_company(self, company_id: int) -> "MemberQuerySet":
        return self.filter(company_id=company_id)

    def active(self) -> "MemberQuerySet":
        return self.filter(active=True)

    def deciders(self) -> "MemberQuerySet":
        return self.filter(role__in=[Member.Role.MANAGER, Member.Role.ADMIN])


class Member(models.Model):
    """A person inside a company together with their vacation allotment."""

    class Role(models.TextChoices):
        ADMIN = "admin", "Admin"
        MANAGER = "manager", "Manager"
        EMPLOYEE = "employee", "Employee"

    user = models.OneToOneField(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="member",
    )
    company = models.ForeignKey(
        Company,
        on_delete=models.CASCADE,
        related_name="members",
    )
    role = models.CharField(max_length=20, choices=Role.choices, default=Role.EMPLOYEE)
    vacation_days_total = models.PositiveIntegerField(default=default_vacation_days)
    vacation_days_used = models.PositiveIntegerField(default=0)
    active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)

    objects = MemberQuerySet.as_manager()

    class Meta:
        ordering = ["company", "user__username"]

    def __str__(self) -> str:
        return f"{self.display_name} ({self.get_role_display()}, {self.company})"

    @property
    def display_name(self) -> str:
        return self.user.get_full_name() or self.user.get_username()

    @property
    def available_days(self) -> int:
        return self.vacation_days_total - self.vacation_days_used


# Closed role gates; compare with role_of(), never with raw strings.
LEDGER_ROLES = frozenset({Member.Role.MANAGER, Member.Role.EMPLOYEE})
DECIDER_ROLES = frozenset({Member.Role.MANAGER, Member.Role.ADMIN})


def role_of(member: Member) -> Member.Role:
    """Return the member's role as an enum member; unknown roles raise ValueError."""
    return Member.Role(member.role)


class VacationRequestQuerySet(models.QuerySet):
    def for_company(self, company_id: int) -> "VacationRequestQuerySet":
        return self.filter(member__company_id=company_id)

    def pending(self) -> "VacationRequestQuerySet":
        return self.filter(status=VacationRequest.Status.PENDING)

    def approved(self) -> "VacationRequestQuerySet":
        return self.filter(status=VacationRequest.Status.APPROVED)

    def overlapping(self, start: date, end: date) -> "VacationRequestQuerySet":
        return self.filter(start_date__lte=end, end_date__gte=start)


class VacationRequest(models.Model):
    """A leave request. Its status is only changed by the request lifecycle."""

    class Status(models.TextChoices):
        PENDING = "pending", "Pending"
        APPROVED = "approved", "Approved"
        DENIED = "denied", "Denied"
        CANCELLED = "cancelled", "Cancelled"

    member = models.ForeignKey(
        Member,
        on_delete=models.CASCADE,
        related_name="vacation_requests",
    )
    start_date = models.DateField()
    end_date = models.DateField()
    days_count = models.PositiveIntegerField()
    status = models.CharField(
        max_length=20,
        choices=Status.choices,
        default=Status.PENDING,
    )
    note = models.TextField(blank=True)
    manager = models.ForeignKey(
        Member,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="decided_vacation_requests",
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = VacationRequestQuerySet.as_manager()

    class Meta:
        ordering = ["-created_at", "-id"]

    def __str__(self) -> str:
        return f"{self.member.display_name} {self.start_date}->{self.end_date} ({self.status})"

    @property
    def is_terminal(self) -> bool:
        return self.status != self.Status.PENDING


class NotificationQuerySet(models.QuerySet):
    def unread(self) -> "NotificationQuerySet":
        return self.filter(read=False)


class Notification(models.Model):
    """A message surfaced to a member inside the application."""

    class Kind(models.TextChoices):
        NEW_REQUEST = "new_request", "New request"
        REQUEST_UPDATE = "request_update", "Request update"
        VACATION_UPDATE = "vacation_update", "Vacation days update"
        REMINDER = "reminder", "Reminder"

    member = models.ForeignKey(
        Member,
        on_delete=models.CASCADE,
        related_name="notifications",
    )
    message = models.TextField()
    kind = models.CharField(max_length=50, choices=Kind.choices)
    read = models.BooleanField(default=False)
    created_at = models.DateTimeField(auto_now_add=True)

    objects = NotificationQuerySet.as_manager()

    class Meta:
        ordering = ["-created_at", "-id"]

    def __str__(self) -> str:
        return f"{self.member.display_name}: {self.message}"
