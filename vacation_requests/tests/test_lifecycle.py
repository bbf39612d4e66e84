from __future__ import annotations

import copy
import threading
from datetime import date

from django.db import connection
from django.test import TestCase, TransactionTestCase

from ..exceptions import (
    InsufficientBalanceError,
    InsufficientPermissionError,
    InvalidRangeError,
    InvalidTransitionError,
    NotFoundError,
    RoleNotEligibleError,
)
from ..ledger import BalanceLedger
from ..lifecycle import RequestLifecycle
from ..models import Member, Notification, VacationRequest
from ..notifications import FanOutSink
from ..store import VacationStore
from ..working_days import VacationPolicy
from .base import BrokenSink, RecordingSink, make_company, make_member

MONDAY = date(2026, 10, 19)
WEDNESDAY = date(2026, 10, 21)
FRIDAY = date(2026, 10, 23)
SATURDAY = date(2026, 10, 24)
SUNDAY = date(2026, 10, 25)


class StaleReadStore(VacationStore):
    """Hands out a snapshot taken before a competing decision committed."""

    def __init__(self, snapshot: VacationRequest) -> None:
        self.snapshot = snapshot

    def load_request(self, request_id, *, company_id=None, lock=False):
        return copy.copy(self.snapshot)


class RequestLifecycleTests(TestCase):
    def setUp(self):
        self.company = make_company(exclude_weekends=True)
        self.employee = make_member(self.company, "employee@example.com", total=10, used=0)
        self.manager = make_member(self.company, "manager@example.com", role=Member.Role.MANAGER, total=20)
        self.admin = make_member(self.company, "admin@example.com", role=Member.Role.ADMIN, total=0)
        self.sink = RecordingSink()
        self.lifecycle = self._lifecycle()

    def _lifecycle(self, store=None, sink=None) -> RequestLifecycle:
        store = store or VacationStore()
        sink = sink or self.sink
        return RequestLifecycle(store, BalanceLedger(store, sink), sink)

    def _submit(self, start=MONDAY, end=FRIDAY, member=None) -> VacationRequest:
        with self.captureOnCommitCallbacks(execute=True):
            return self.lifecycle.submit(member or self.employee, start, end, "Family trip")

    # ---- submit ----

    def test_submit_creates_pending_request_with_counted_days(self):
        vacation_request = self._submit(MONDAY, SUNDAY)
        vacation_request.refresh_from_db()
        self.assertEqual(vacation_request.status, VacationRequest.Status.PENDING)
        self.assertEqual(vacation_request.days_count, 5)
        self.assertEqual(vacation_request.note, "Family trip")
        self.assertIsNone(vacation_request.manager)

    def test_submit_uses_company_policy_when_weekends_count(self):
        self.company.exclude_weekends = False
        self.company.save()
        vacation_request = self._submit(MONDAY, SUNDAY)
        self.assertEqual(vacation_request.days_count, 7)

    def test_explicit_policy_overrides_company_policy(self):
        vacation_request = self.lifecycle.submit(
            self.employee, SATURDAY, SUNDAY, policy=VacationPolicy(exclude_weekends=False)
        )
        self.assertEqual(vacation_request.days_count, 2)

    def test_weekend_only_request_counts_zero_days(self):
        vacation_request = self._submit(SATURDAY, SUNDAY)
        self.assertEqual(vacation_request.days_count, 0)

    def test_submit_notifies_every_decider_of_the_company(self):
        make_member(make_company("Globex"), "boss@globex.example", role=Member.Role.MANAGER)
        inactive = make_member(self.company, "former@example.com", role=Member.Role.MANAGER)
        inactive.active = False
        inactive.save()

        self._submit()

        self.assertEqual(len(self.sink.deliveries), 1)
        recipients, message, kind = self.sink.deliveries[0]
        self.assertEqual(recipients, {self.manager.pk, self.admin.pk})
        self.assertEqual(kind, Notification.Kind.NEW_REQUEST)
        self.assertIn("5 day(s)", message)

    def test_admin_can_never_submit(self):
        with self.assertRaises(RoleNotEligibleError):
            self.lifecycle.submit(self.admin, MONDAY, MONDAY)
        self.assertFalse(VacationRequest.objects.exists())

    def test_submit_rejects_request_exceeding_balance(self):
        member = make_member(self.company, "busy@example.com", total=10, used=8)
        with self.assertRaises(InsufficientBalanceError) as ctx:
            self.lifecycle.submit(member, MONDAY, WEDNESDAY)
        self.assertEqual(ctx.exception.params["available"], 2)
        self.assertEqual(ctx.exception.params["requested"], 3)
        self.assertTrue(ctx.exception.params["exclude_weekends"])
        self.assertIn("Available: 2, requested: 3 (weekends excluded)", str(ctx.exception))
        self.assertFalse(VacationRequest.objects.exists())
        self.assertEqual(self.sink.deliveries, [])

    def test_submit_rejects_inverted_range(self):
        with self.assertRaises(InvalidRangeError):
            self.lifecycle.submit(self.employee, FRIDAY, MONDAY)

    def test_submission_does_not_reserve_days(self):
        self._submit()
        self._submit()
        self.employee.refresh_from_db()
        self.assertEqual(self.employee.vacation_days_used, 0)
        self.assertEqual(VacationRequest.objects.pending().count(), 2)

    # ---- decide ----

    def test_approval_consumes_exactly_the_request_days(self):
        vacation_request = self._submit()
        with self.captureOnCommitCallbacks(execute=True):
            self.lifecycle.decide(vacation_request.pk, self.manager, VacationRequest.Status.APPROVED)

        vacation_request.refresh_from_db()
        self.employee.refresh_from_db()
        self.assertEqual(vacation_request.status, VacationRequest.Status.APPROVED)
        self.assertEqual(vacation_request.manager, self.manager)
        self.assertEqual(self.employee.vacation_days_used, 5)
        recipients, message, kind = self.sink.deliveries[-1]
        self.assertEqual(recipients, {self.employee.pk})
        self.assertEqual(kind, Notification.Kind.REQUEST_UPDATE)
        self.assertIn("approved", message)

    def test_denial_leaves_balance_untouched(self):
        vacation_request = self._submit()
        with self.captureOnCommitCallbacks(execute=True):
            self.lifecycle.decide(vacation_request.pk, self.admin, "denied")

        vacation_request.refresh_from_db()
        self.employee.refresh_from_db()
        self.assertEqual(vacation_request.status, VacationRequest.Status.DENIED)
        self.assertEqual(self.employee.vacation_days_used, 0)
        self.assertIn("denied", self.sink.deliveries[-1][1])

    def test_approval_rechecks_balance_at_decision_time(self):
        first = self._submit(MONDAY, FRIDAY)
        second = self._submit(MONDAY, FRIDAY)
        third = self._submit(MONDAY, MONDAY)
        self.lifecycle.decide(first.pk, self.manager, "approved")
        self.lifecycle.decide(second.pk, self.manager, "approved")
        deliveries_before = len(self.sink.deliveries)

        with self.captureOnCommitCallbacks(execute=True):
            with self.assertRaises(InsufficientBalanceError) as ctx:
                self.lifecycle.decide(third.pk, self.manager, "approved")

        self.assertEqual(ctx.exception.params["available"], 0)
        third.refresh_from_db()
        self.employee.refresh_from_db()
        self.assertEqual(third.status, VacationRequest.Status.PENDING)
        self.assertIsNone(third.manager)
        self.assertEqual(self.employee.vacation_days_used, 10)
        self.assertEqual(len(self.sink.deliveries), deliveries_before)

    def test_failed_approval_still_allows_a_later_denial(self):
        vacation_request = self._submit()
        Member.objects.filter(pk=self.employee.pk).update(vacation_days_total=1)
        with self.assertRaises(InsufficientBalanceError):
            self.lifecycle.decide(vacation_request.pk, self.manager, "approved")
        self.lifecycle.decide(vacation_request.pk, self.manager, "denied")
        vacation_request.refresh_from_db()
        self.assertEqual(vacation_request.status, VacationRequest.Status.DENIED)

    def test_employees_cannot_decide(self):
        vacation_request = self._submit()
        with self.assertRaises(InsufficientPermissionError):
            self.lifecycle.decide(vacation_request.pk, self.employee, "approved")

    def test_deciding_missing_request(self):
        with self.assertRaises(NotFoundError):
            self.lifecycle.decide(4242, self.manager, "approved")

    def test_deciding_across_tenants_is_not_found(self):
        vacation_request = self._submit()
        foreign_manager = make_member(make_company("Globex"), "boss@globex.example", role=Member.Role.MANAGER)
        with self.assertRaises(NotFoundError):
            self.lifecycle.decide(vacation_request.pk, foreign_manager, "approved")
        vacation_request.refresh_from_db()
        self.assertEqual(vacation_request.status, VacationRequest.Status.PENDING)

    def test_a_request_leaves_pending_only_once(self):
        vacation_request = self._submit()
        self.lifecycle.decide(vacation_request.pk, self.manager, "approved")

        with self.assertRaises(InvalidTransitionError) as ctx:
            self.lifecycle.decide(vacation_request.pk, self.manager, "denied")
        self.assertEqual(ctx.exception.params["current"], "approved")
        with self.assertRaises(InvalidTransitionError):
            self.lifecycle.decide(vacation_request.pk, self.admin, "approved")
        with self.assertRaises(InvalidTransitionError):
            self.lifecycle.cancel(vacation_request.pk, self.employee)

        self.employee.refresh_from_db()
        self.assertEqual(self.employee.vacation_days_used, 5)

    def test_decision_must_be_approve_or_deny(self):
        vacation_request = self._submit()
        for decision in ("pending", "cancelled", "maybe"):
            with self.assertRaises(InvalidTransitionError):
                self.lifecycle.decide(vacation_request.pk, self.manager, decision)
        vacation_request.refresh_from_db()
        self.assertEqual(vacation_request.status, VacationRequest.Status.PENDING)

    def test_racing_decisions_only_the_first_wins(self):
        vacation_request = self._submit()
        # Both deciders read the request while it was still pending.
        snapshot = VacationRequest.objects.get(pk=vacation_request.pk)
        self.lifecycle.decide(vacation_request.pk, self.manager, "denied")

        loser = self._lifecycle(store=StaleReadStore(snapshot))
        with self.assertRaises(InvalidTransitionError) as ctx:
            loser.decide(vacation_request.pk, self.admin, "approved")

        self.assertEqual(ctx.exception.params["current"], "denied")
        vacation_request.refresh_from_db()
        self.employee.refresh_from_db()
        self.assertEqual(vacation_request.status, VacationRequest.Status.DENIED)
        self.assertEqual(vacation_request.manager, self.manager)
        self.assertEqual(self.employee.vacation_days_used, 0)

    def test_racing_approvals_consume_days_once(self):
        vacation_request = self._submit()
        snapshot = VacationRequest.objects.get(pk=vacation_request.pk)
        self.lifecycle.decide(vacation_request.pk, self.manager, "approved")

        loser = self._lifecycle(store=StaleReadStore(snapshot))
        with self.assertRaises(InvalidTransitionError):
            loser.decide(vacation_request.pk, self.admin, "approved")

        self.employee.refresh_from_db()
        self.assertEqual(self.employee.vacation_days_used, 5)

    def test_sink_failure_does_not_undo_the_decision(self):
        vacation_request = self._submit()
        lifecycle = self._lifecycle(sink=FanOutSink([BrokenSink(), self.sink]))
        with self.assertLogs("vacation_requests.notifications", level="ERROR"):
            with self.captureOnCommitCallbacks(execute=True):
                lifecycle.decide(vacation_request.pk, self.manager, "approved")

        vacation_request.refresh_from_db()
        self.assertEqual(vacation_request.status, VacationRequest.Status.APPROVED)
        self.assertEqual(self.sink.kinds()[-1], Notification.Kind.REQUEST_UPDATE)

    # ---- cancel ----

    def test_owner_cancels_pending_request_without_ledger_effect(self):
        vacation_request = self._submit()
        self.lifecycle.cancel(vacation_request.pk, self.employee)
        vacation_request.refresh_from_db()
        self.employee.refresh_from_db()
        self.assertEqual(vacation_request.status, VacationRequest.Status.CANCELLED)
        self.assertEqual(self.employee.vacation_days_used, 0)

    def test_only_the_owner_may_cancel(self):
        vacation_request = self._submit()
        with self.assertRaises(InsufficientPermissionError):
            self.lifecycle.cancel(vacation_request.pk, self.manager)
        vacation_request.refresh_from_db()
        self.assertEqual(vacation_request.status, VacationRequest.Status.PENDING)

    def test_cancelled_request_cannot_be_decided(self):
        vacation_request = self._submit()
        self.lifecycle.cancel(vacation_request.pk, self.employee)
        with self.assertRaises(InvalidTransitionError) as ctx:
            self.lifecycle.decide(vacation_request.pk, self.manager, "approved")
        self.assertEqual(ctx.exception.params["current"], "cancelled")
        with self.assertRaises(InvalidTransitionError):
            self.lifecycle.cancel(vacation_request.pk, self.employee)

    # ---- visibility ----

    def test_employees_see_only_their_own_requests(self):
        colleague = make_member(self.company, "colleague@example.com")
        own = self._submit()
        other = self._submit(member=colleague)

        self.assertEqual(list(self.lifecycle.visible_requests(self.employee)), [own])
        self.assertEqual(set(self.lifecycle.visible_requests(self.manager)), {own, other})
        with self.assertRaises(NotFoundError):
            self.lifecycle.get_request(other.pk, self.employee)
        self.assertEqual(self.lifecycle.get_request(other.pk, self.admin), other)


class ConcurrentDecisionTests(TransactionTestCase):
    """Two deciders act on the same request from separate connections."""

    def setUp(self):
        self.company = make_company(exclude_weekends=True)
        self.employee = make_member(self.company, "employee@example.com", total=10)
        self.manager = make_member(self.company, "manager@example.com", role=Member.Role.MANAGER)
        self.admin = make_member(self.company, "admin@example.com", role=Member.Role.ADMIN, total=0)
        self.sink = RecordingSink()
        self.vacation_request = self._lifecycle().submit(self.employee, MONDAY, FRIDAY)

    def _lifecycle(self) -> RequestLifecycle:
        store = VacationStore()
        return RequestLifecycle(store, BalanceLedger(store, self.sink), self.sink)

    def _decide_together(self, *decisions):
        """Run each ``(decider, decision)`` in its own thread; return ``(decision, error)`` pairs."""
        barrier = threading.Barrier(len(decisions))
        outcomes = []

        def run(decider, decision):
            try:
                barrier.wait()
                self._lifecycle().decide(self.vacation_request.pk, decider, decision)
                outcomes.append((decision, None))
            except Exception as exc:
                outcomes.append((decision, exc))
            finally:
                connection.close()

        threads = [threading.Thread(target=run, args=pair) for pair in decisions]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=30)
        self.assertEqual(len(outcomes), len(decisions))
        return outcomes

    def _split(self, outcomes):
        winners = [decision for decision, error in outcomes if error is None]
        errors = [error for _, error in outcomes if error is not None]
        self.assertEqual(len(winners), 1, outcomes)
        self.assertEqual(len(errors), 1, outcomes)
        self.assertIsInstance(errors[0], InvalidTransitionError)
        return winners[0], errors[0]

    def test_exactly_one_concurrent_decision_wins(self):
        winner, error = self._split(
            self._decide_together(
                (self.manager, VacationRequest.Status.APPROVED),
                (self.admin, VacationRequest.Status.DENIED),
            )
        )
        self.assertEqual(error.params["current"], winner)

        self.vacation_request.refresh_from_db()
        self.employee.refresh_from_db()
        self.assertEqual(self.vacation_request.status, winner)
        expected_used = 5 if winner == VacationRequest.Status.APPROVED else 0
        self.assertEqual(self.employee.vacation_days_used, expected_used)

    def test_concurrent_approvals_consume_days_once(self):
        self._split(
            self._decide_together(
                (self.manager, VacationRequest.Status.APPROVED),
                (self.admin, VacationRequest.Status.APPROVED),
            )
        )
        self.employee.refresh_from_db()
        self.assertEqual(self.employee.vacation_days_used, 5)
        self.assertEqual(self.sink.kinds().count(Notification.Kind.REQUEST_UPDATE), 1)
