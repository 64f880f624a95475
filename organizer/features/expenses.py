"""
Expense Planning

Couple-scoped finances: monthly expenses, recurring expenses (optionally
mirrored to Google Calendar), savings goals and the monthly closing.

Nothing is fetched before the couple partition check passes. Every read
is filtered by the couple id and every write is stamped with it.
"""

import calendar as month_calendar
from datetime import date
from typing import Any, Optional

import structlog
from pydantic import BaseModel

from organizer.audit.logger import AuditLogger, correlated_action
from organizer.features.base import FeatureController, record_changes, table_collection, validate_record
from organizer.models.profile import UserProfile
from organizer.models.records import (
    Expense,
    Goal,
    MonthlyClosing,
    PaymentSource,
    RecordValidationError,
    RecurringExpense,
)
from organizer.services.calendar.google_calendar import (
    CalendarAuthError,
    CalendarError,
    CalendarSync,
    build_recurring_event,
)
from organizer.services.storage.interface import DataGateway, Filter
from organizer.store.optimistic import MutationResult
from organizer.store.subscriptions import SubscriptionManager
from organizer.store.tenancy import PartitionScope, TenancyCheck, TenancyGate


logger = structlog.get_logger(__name__)

EXPENSES_TABLE = "expenses"
RECURRING_TABLE = "recurring_expenses"
GOALS_TABLE = "goals"
CLOSINGS_TABLE = "monthly_closings"


def month_key(day: date) -> str:
    return f"{day.year}-{day.month:02d}"


def month_bounds(day: date) -> tuple[date, date]:
    last = month_calendar.monthrange(day.year, day.month)[1]
    return date(day.year, day.month, 1), date(day.year, day.month, last)


class SourceSummary(BaseModel):
    paid: float = 0.0
    unpaid: float = 0.0

    @property
    def total(self) -> float:
        return self.paid + self.unpaid


class MonthSummary(BaseModel):
    month_year: str
    by_source: dict[PaymentSource, SourceSummary]

    @property
    def total(self) -> float:
        return sum(s.total for s in self.by_source.values())


class ExpensePlanner(FeatureController):
    """Controller for the planning (expenses) screen."""

    def __init__(
        self,
        gateway: DataGateway,
        subscriptions: SubscriptionManager,
        profile: UserProfile,
        calendar_sync: Optional[CalendarSync] = None,
        audit: Optional[AuditLogger] = None,
        month: Optional[date] = None,
    ):
        super().__init__(gateway, subscriptions, audit)
        self._profile = profile
        self._calendar = calendar_sync
        self._gate = TenancyGate(gateway, audit=audit)
        self.month = (month or date.today()).replace(day=1)
        self.tenancy: Optional[TenancyCheck] = None
        self.scope: Optional[PartitionScope] = None

        self.expenses = table_collection(
            gateway, EXPENSES_TABLE, Expense,
            filters=self._expense_filters,
            order_by="due_date",
            stamp=self._stamp,
            sort_key=lambda e: (e.due_date or date.max, e.description.lower()),
            audit=audit,
        )
        self.recurring = table_collection(
            gateway, RECURRING_TABLE, RecurringExpense,
            filters=self._scoped,
            order_by="day_of_month",
            stamp=self._stamp,
            sort_key=lambda r: (r.day_of_month, r.description.lower()),
            audit=audit,
        )
        self.goals = table_collection(
            gateway, GOALS_TABLE, Goal,
            filters=self._scoped,
            order_by="created_at",
            stamp=self._stamp,
            visible=lambda g: not g.is_archived,
            audit=audit,
        )
        self.closings = table_collection(
            gateway, CLOSINGS_TABLE, MonthlyClosing,
            filters=lambda: self._scoped() + [Filter.eq("month_year", month_key(self.month))],
            order_by=None,
            stamp=self._stamp,
            audit=audit,
        )
        self._bindings = [
            (self.expenses, [EXPENSES_TABLE]),
            (self.recurring, [RECURRING_TABLE]),
            (self.goals, [GOALS_TABLE]),
            (self.closings, [CLOSINGS_TABLE]),
        ]

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    async def mount(self) -> None:
        """Run the partition check; only a ready partition gets data."""
        self.tenancy = await self._gate.check(self._profile)
        if not self.tenancy.ready:
            return
        self.scope = PartitionScope(self.tenancy.couple_id)
        await super().mount()

    async def select_month(self, month: date) -> None:
        self.month = month.replace(day=1)
        if self.scope:
            await self.expenses.refresh()
            await self.closings.refresh()

    def _require_scope(self) -> PartitionScope:
        if self.scope is None:
            raise RecordValidationError("Couple data is not available.", "couple_id")
        return self.scope

    def _scoped(self) -> list[Filter]:
        return self._require_scope().filters()

    def _expense_filters(self) -> list[Filter]:
        first, last = month_bounds(self.month)
        return self._scoped() + [Filter.gte("due_date", first), Filter.lte("due_date", last)]

    def _stamp(self, row: dict[str, Any]) -> dict[str, Any]:
        return self._require_scope().stamp(row)

    # =========================================================================
    # EXPENSES
    # =========================================================================

    async def add_expense(
        self,
        description: str,
        amount: float,
        due_date: date,
        payment_source: PaymentSource = PaymentSource.PERSONAL_ACCOUNT,
    ) -> MutationResult:
        expense = validate_record(Expense, {
            "description": description,
            "amount": amount,
            "due_date": due_date,
            "payment_source": payment_source,
            "is_paid": False,
            "couple_id": self._require_scope().couple_id,
        })
        return await self.expenses.insert(expense)

    async def edit_expense(self, expense_id: str, changes: dict[str, Any]) -> MutationResult:
        current = self.expenses.get(expense_id)
        if current is None:
            return MutationResult(ok=False, operation="update", error="Record no longer exists")
        edited = validate_record(Expense, {**current.model_dump(), **changes})
        typed_changes = {k: v for k, v in record_changes(edited, "couple_id").items() if k in changes}
        return await self.expenses.update(expense_id, typed_changes)

    async def toggle_paid(self, expense_id: str) -> MutationResult:
        current = self.expenses.get(expense_id)
        if current is None:
            return MutationResult(ok=False, operation="update", error="Record no longer exists")
        return await self.expenses.update(expense_id, {"is_paid": not current.is_paid})

    async def delete_expense(self, expense_id: str) -> MutationResult:
        return await self.expenses.remove(expense_id)

    def summary(self) -> MonthSummary:
        """Paid / unpaid totals per payment source for the selected month."""
        first, last = month_bounds(self.month)
        by_source = {source: SourceSummary() for source in PaymentSource}
        for expense in self.expenses:
            if expense.due_date is None or not (first <= expense.due_date <= last):
                continue
            bucket = by_source[expense.payment_source]
            if expense.is_paid:
                bucket.paid += expense.amount
            else:
                bucket.unpaid += expense.amount
        return MonthSummary(month_year=month_key(self.month), by_source=by_source)

    # =========================================================================
    # GOALS
    # =========================================================================

    async def save_goal(
        self,
        name: str,
        target_amount: float,
        goal_id: Optional[str] = None,
    ) -> MutationResult:
        if goal_id:
            validate_record(Goal, {"name": name, "target_amount": target_amount})
            return await self.goals.update(goal_id, {"name": name.strip(), "target_amount": target_amount})

        goal = validate_record(Goal, {
            "name": name,
            "target_amount": target_amount,
            "current_amount": 0.0,
            "created_by": self._profile.name,
            "is_archived": False,
        })
        return await self.goals.insert(goal)

    async def goal_transaction(self, goal_id: str, delta: float) -> MutationResult:
        """Deposit (positive) or withdraw (negative); never below zero."""
        goal = self.goals.get(goal_id)
        if goal is None:
            return MutationResult(ok=False, operation="update", error="Record no longer exists")
        new_amount = max(0.0, goal.current_amount + delta)
        return await self.goals.update(goal_id, {"current_amount": new_amount})

    async def archive_goal(self, goal_id: str) -> MutationResult:
        return await self.goals.update(goal_id, {"is_archived": True})

    # =========================================================================
    # RECURRING EXPENSES
    # =========================================================================

    @correlated_action
    async def save_recurring(
        self,
        description: str,
        amount: float,
        day_of_month: int,
        start_date: date,
        end_date: Optional[date] = None,
        payment_source: PaymentSource = PaymentSource.PERSONAL_ACCOUNT,
        sync_calendar: bool = False,
        recurring_id: Optional[str] = None,
    ) -> MutationResult:
        """
        Create or edit a recurring expense and keep its calendar event in step.

        A failed calendar delete (sync turned off) aborts the save; a failed
        create/update still saves the expense and reports the problem.
        """
        existing = self.recurring.get(recurring_id) if recurring_id else None
        if recurring_id and existing is None:
            return MutationResult(ok=False, operation="update", error="Record no longer exists")

        record = validate_record(RecurringExpense, {
            "description": description,
            "amount": amount,
            "day_of_month": day_of_month,
            "start_date": start_date,
            "end_date": end_date,
            "payment_source": payment_source,
            "is_active": existing.is_active if existing else True,
            "google_calendar_event_id": existing.google_calendar_event_id if existing else None,
            "couple_id": self._require_scope().couple_id,
        })

        event_id = record.google_calendar_event_id
        warning = None
        if sync_calendar or event_id:
            if self._calendar is None:
                return MutationResult(ok=False, operation="save_recurring", error="Google Calendar is not configured.")
            body = build_recurring_event(
                record.description, record.amount, record.day_of_month, record.start_date, record.end_date,
            )
            try:
                event_id = await self._calendar.sync(sync_calendar, event_id, body, recurring_id)
            except CalendarAuthError as e:
                return MutationResult(ok=False, operation="save_recurring", error=str(e))
            except CalendarError as e:
                if not sync_calendar:
                    return MutationResult(ok=False, operation="save_recurring", error=str(e))
                logger.warning("calendar_sync_failed", error=str(e), record_id=recurring_id)
                warning = f"Saved, but the calendar event could not be synced: {e}"

        if existing:
            changes = record_changes(record, "couple_id")
            changes["google_calendar_event_id"] = event_id
            result = await self.recurring.update(existing.id, changes)
        else:
            result = await self.recurring.insert(record.model_copy(update={"google_calendar_event_id": event_id}))

        if warning and result.ok:
            result = result.model_copy(update={"error": warning})
        return result

    @correlated_action
    async def delete_recurring(self, recurring_id: str) -> MutationResult:
        """Delete the linked calendar event first; abort if that fails."""
        record = self.recurring.get(recurring_id)
        if record is None:
            return MutationResult(ok=False, operation="delete", error="Record no longer exists")

        if record.google_calendar_event_id:
            if self._calendar is None:
                return MutationResult(ok=False, operation="delete", error="Google Calendar is not configured.")
            try:
                await self._calendar.remove(record.google_calendar_event_id, recurring_id)
            except CalendarError as e:
                return MutationResult(ok=False, operation="delete", error=str(e))

        return await self.recurring.remove(recurring_id)

    # =========================================================================
    # MONTHLY CLOSING
    # =========================================================================

    @property
    def closing(self) -> Optional[MonthlyClosing]:
        items = self.closings.items
        return items[0] if items else None

    @correlated_action
    async def save_closing(
        self,
        income_nicolas: float,
        income_ana: float,
        goal_allocations: dict[str, float],
        notes: Optional[str] = None,
        shared_goal: Optional[float] = None,
        analysis: Optional[dict[str, Any]] = None,
    ) -> MutationResult:
        """
        Save the month's closing and move each goal by its allocation change.

        Goals move by (new allocation - previous allocation), so saving the
        same closing twice does not double-count.
        """
        previous = self.closing
        previous_allocations = previous.goal_allocations if previous else {}
        allocations = {k: float(v) for k, v in goal_allocations.items() if v}

        record = validate_record(MonthlyClosing, {
            "month_year": month_key(self.month),
            "income_nicolas": income_nicolas,
            "income_ana": income_ana,
            "shared_goal": shared_goal,
            "notes": notes,
            "goal_allocations": allocations,
            "analysis": analysis,
            "couple_id": self._require_scope().couple_id,
        })

        if previous and previous.id and not self.closings.is_pending(previous.id):
            changes = record_changes(record, "couple_id")
            result = await self.closings.update(previous.id, changes)
        else:
            result = await self.closings.insert(record)
        if not result.ok:
            return result

        for goal_id in sorted(set(previous_allocations) | set(allocations)):
            delta = allocations.get(goal_id, 0.0) - previous_allocations.get(goal_id, 0.0)
            if delta == 0:
                continue
            moved = await self.goal_transaction(goal_id, delta)
            if not moved.ok:
                logger.warning("closing_goal_update_failed", goal_id=goal_id, error=moved.error)
                return result.model_copy(update={"error": f"Closing saved, but a goal was not updated: {moved.error}"})
        return result
