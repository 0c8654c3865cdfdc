"""
Two-way diff between the ideal occurrence set and persisted reminders
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Tuple

from .occurrences import truncate_to_minute
from .schedule_models import MedicationReminder, Occurrence

logger = logging.getLogger(__name__)

ReminderKey = Tuple[Optional[int], datetime]


def reminder_key(schedule_id: Optional[int], ts: datetime) -> ReminderKey:
    """Identity of a reminder slot: schedule plus minute-truncated time"""
    return (schedule_id, truncate_to_minute(ts))


@dataclass
class ReconciliationResult:
    to_insert: List[Occurrence] = field(default_factory=list)
    to_delete: List[int] = field(default_factory=list)
    matched: int = 0

    @property
    def is_noop(self) -> bool:
        return not self.to_insert and not self.to_delete


class ReminderReconciler:
    """Decides which occurrences to persist and which reminders are stale.

    Matching pairs are left alone, so feeding the result back in (inserting
    ``to_insert`` and deleting ``to_delete``) makes the next call a no-op.
    """

    def reconcile(
        self,
        ideal: Iterable[Occurrence],
        existing: Iterable[MedicationReminder],
    ) -> ReconciliationResult:
        ideal_by_key: Dict[ReminderKey, Occurrence] = {}
        for occ in sorted(ideal):
            ideal_by_key.setdefault(reminder_key(occ.schedule_id, occ.timestamp), occ)

        existing_by_key: Dict[ReminderKey, MedicationReminder] = {}
        duplicates: List[MedicationReminder] = []
        for reminder in sorted(existing, key=lambda r: (r.reminder_time, r.id or 0)):
            if reminder.is_taken:
                # History is immutable; callers should not pass these at all
                continue
            key = reminder_key(reminder.schedule_id, reminder.reminder_time)
            if key in existing_by_key:
                duplicates.append(reminder)
            else:
                existing_by_key[key] = reminder

        result = ReconciliationResult()
        for key, occ in ideal_by_key.items():
            if key in existing_by_key:
                result.matched += 1
            else:
                result.to_insert.append(occ)

        stale = [r for key, r in existing_by_key.items() if key not in ideal_by_key]
        if duplicates:
            logger.warning(
                f"⚠️  [Reconcile] {len(duplicates)} duplicate reminder(s) share a slot; "
                f"extra copies will be removed: ids={[r.id for r in duplicates]}"
            )
        result.to_delete = [
            r.id for r in sorted(stale + duplicates, key=lambda r: (r.reminder_time, r.id or 0))
            if r.id is not None
        ]
        return result
