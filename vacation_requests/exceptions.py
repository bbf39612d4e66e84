"""Errors raised by the vacation accounting and request lifecycle."""
from __future__ import annotations

from datetime import date
from typing import Any

from django.core.exceptions import ValidationError


class VacationError(ValidationError):
    """Base class for rejected vacation operations.

    Every subclass carries a stable ``code`` and the structured ``params``
    used to render its message, so callers can build precise responses.
    """

    default_code = "invalid"
    default_message = "The operation was rejected."

    def __init__(self, message: str | None = None, **params: Any) -> None:
        super().__init__(message or self.default_message, code=self.default_code, params=params)

    def __str__(self) -> str:
        return self.messages[0]


class InvalidRangeError(VacationError):
    default_code = "invalid_range"
    default_message = "End date %(end_date)s cannot be earlier than start date %(start_date)s."

    def __init__(self, start_date: date, end_date: date) -> None:
        super().__init__(start_date=start_date, end_date=end_date)


class InsufficientBalanceError(VacationError):
    default_code = "insufficient_balance"
    default_message = "Not enough vacation days. Available: %(available)s, requested: %(requested)s%(weekend_hint)s."

    def __init__(self, available: int, requested: int, exclude_weekends: bool = False) -> None:
        super().__init__(
            available=available,
            requested=requested,
            exclude_weekends=exclude_weekends,
            weekend_hint=" (weekends excluded)" if exclude_weekends else "",
        )


class RoleNotEligibleError(VacationError):
    default_code = "role_not_eligible"
    default_message = "Members with the %(role)s role do not have vacation days."

    def __init__(self, role: str) -> None:
        super().__init__(role=str(role))


class InsufficientPermissionError(VacationError):
    default_code = "insufficient_permission"
    default_message = "Insufficient permissions for the %(role)s role."

    def __init__(self, role: str, message: str | None = None) -> None:
        super().__init__(message, role=str(role))


class NotFoundError(VacationError):
    default_code = "not_found"
    default_message = "%(kind)s %(identifier)s not found."

    def __init__(self, kind: str, identifier: Any) -> None:
        super().__init__(kind=kind, identifier=identifier)


class InvalidTransitionError(VacationError):
    default_code = "invalid_transition"
    default_message = "A %(current)s request cannot become %(target)s."

    def __init__(self, current: str, target: str) -> None:
        super().__init__(current=str(current), target=str(target))


class PendingRequestsError(VacationError):
    default_code = "pending_requests"
    default_message = "Member %(member_id)s still has %(count)s pending request(s)."

    def __init__(self, member_id: Any, count: int) -> None:
        super().__init__(member_id=member_id, count=count)
