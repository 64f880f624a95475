"""
Reminders Board

Shared sticky-note board. Only open reminders are fetched (oldest
first); marking one done removes it from everyone's board. The
assignee filter and the urgency ordering are applied locally.
"""

from datetime import date
from enum import Enum
from typing import Optional

from organizer.audit.logger import AuditLogger
from organizer.features.base import FeatureController, table_collection, validate_record
from organizer.models.profile import UserProfile
from organizer.models.records import Reminder, ReminderColor, RecordValidationError, Subtask
from organizer.services.storage.interface import DataGateway, Filter
from organizer.store.optimistic import MutationResult
from organizer.store.subscriptions import SubscriptionManager


REMINDERS_TABLE = "reminders"


class ReminderFilter(str, Enum):
    ME = "me"
    OTHER = "other"
    ALL = "all"


def urgency_key(reminder: Reminder, today: date) -> tuple:
    """Overdue, then due today, then upcoming, then undated; ties by date, then age."""
    if reminder.due_date is None:
        score = 3
    elif reminder.due_date < today:
        score = 0
    elif reminder.due_date == today:
        score = 1
    else:
        score = 2
    return (
        score,
        reminder.due_date or date.max,
        reminder.created_at is None,
        reminder.created_at.isoformat() if reminder.created_at else "",
    )


class ReminderBoard(FeatureController):
    """Controller for the reminders screen."""

    def __init__(
        self,
        gateway: DataGateway,
        subscriptions: SubscriptionManager,
        profile: UserProfile,
        partner_name: Optional[str] = None,
        audit: Optional[AuditLogger] = None,
    ):
        super().__init__(gateway, subscriptions, audit)
        self._profile = profile
        self._partner_name = partner_name
        self.reminders = table_collection(
            gateway,
            REMINDERS_TABLE,
            Reminder,
            filters=lambda: [Filter.eq("is_done", False)],
            order_by="created_at",
            visible=lambda r: not r.is_done,
            audit=audit,
        )
        self._bindings = [(self.reminders, [REMINDERS_TABLE])]

    @property
    def me(self) -> str:
        return self._profile.name

    def visible(self, which: ReminderFilter = ReminderFilter.ME, today: Optional[date] = None) -> list[Reminder]:
        """Reminders for the chosen filter, most urgent first."""
        today = today or date.today()
        selected = []
        for reminder in self.reminders:
            assigned = reminder.assigned_to
            if which == ReminderFilter.ME and self.me not in assigned:
                continue
            if which == ReminderFilter.OTHER and (
                not self._partner_name
                or self._partner_name not in assigned
                or self.me in assigned
            ):
                continue
            selected.append(reminder)
        return sorted(selected, key=lambda r: urgency_key(r, today))

    def on_day(self, day: date) -> list[Reminder]:
        """Calendar view: open reminders due on one day."""
        return [r for r in self.reminders if r.due_date == day]

    async def add(
        self,
        title: str,
        content: Optional[str] = None,
        due_date: Optional[date] = None,
        color: ReminderColor = ReminderColor.YELLOW,
        assigned_to: Optional[list[str]] = None,
        subtasks: Optional[list[str]] = None,
    ) -> MutationResult:
        """
        Raises:
            RecordValidationError: empty title
        """
        if not title or not title.strip():
            raise RecordValidationError("A reminder needs a title.", "title")

        reminder = validate_record(Reminder, {
            "title": title.strip(),
            "content": content or None,
            "due_date": due_date,
            "color": color,
            "created_by": self.me,
            "assigned_to": assigned_to if assigned_to is not None else [self.me],
            "subtasks": [Subtask(text=t.strip()) for t in subtasks or [] if t.strip()],
            "is_done": False,
        })
        return await self.reminders.insert(reminder)

    async def mark_done(self, reminder_id: str) -> MutationResult:
        return await self.reminders.update(reminder_id, {"is_done": True})

    async def update_subtasks(self, reminder_id: str, subtasks: list[Subtask]) -> MutationResult:
        kept = [st for st in subtasks if st.text.strip()]
        return await self.reminders.update(reminder_id, {"subtasks": kept})

    async def toggle_subtask(self, reminder_id: str, subtask_id: str) -> MutationResult:
        reminder = self.reminders.get(reminder_id)
        if reminder is None:
            return MutationResult(ok=False, operation="update", error="Record no longer exists")
        subtasks = [
            st.model_copy(update={"is_done": not st.is_done}) if st.id == subtask_id else st
            for st in reminder.subtasks or []
        ]
        return await self.update_subtasks(reminder_id, subtasks)

    async def delete(self, reminder_id: str) -> MutationResult:
        return await self.reminders.remove(reminder_id)
