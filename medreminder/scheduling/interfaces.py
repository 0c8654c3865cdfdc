"""
Collaborator contracts the scheduling engine depends on
"""
from datetime import datetime
from typing import List, Optional, Protocol

from .schedule_models import Medication, MedicationReminder, MedicationSchedule


class MedicationStore(Protocol):
    def get(self, medication_id: int) -> Optional[Medication]:
        ...

    def all_ids(self) -> List[int]:
        ...


class ScheduleStore(Protocol):
    def schedules_for(self, medication_id: int) -> List[MedicationSchedule]:
        ...


class ReminderStore(Protocol):
    def future_untaken(self, medication_id: int, after: datetime) -> List[MedicationReminder]:
        """Untaken reminders of the medication at or after ``after``"""
        ...

    def most_recent_taken(self, medication_id: int, schedule_id: int) -> Optional[MedicationReminder]:
        ...

    def insert(self, reminder: MedicationReminder) -> int:
        ...

    def delete_by_id(self, reminder_id: int) -> None:
        ...

    def set_notification_id(self, reminder_id: int, notification_id: str) -> None:
        ...

    def mark_taken(self, reminder_id: int, taken_at: datetime) -> Optional[int]:
        """Mark a reminder taken and return its medication id (None if unknown)"""
        ...


class AlarmScheduler(Protocol):
    def schedule(
        self,
        reminder_id: int,
        medication_name: str,
        dosage: str,
        is_interval: bool,
        next_occurrence_at: Optional[datetime],
        fires_at: datetime,
    ) -> Optional[str]:
        """Arm an alarm for a persisted reminder; returns the alarm handle if any"""
        ...

    def cancel_all(self, reminder_id: int) -> None:
        ...
