import logging
from datetime import datetime
from typing import List, Optional
from sqlalchemy.orm import Session
from sqlalchemy import select, update, delete

from medreminder.models.medication import (
    MedicationRecord,
    MedicationScheduleRecord,
    MedicationReminderRecord,
)
from .metrics import malformed_rows_total
from .schedule_models import Medication, MedicationReminder, MedicationSchedule, schedule_from_dict

logger = logging.getLogger(__name__)

STORED_DATETIME_FORMAT = "%Y-%m-%dT%H:%M:%S"

# Newest taken rows parsed when looking for the last taken dose
RECENT_TAKEN_SCAN = 20


def format_stored_datetime(dt: datetime) -> str:
    """Canonical stored form: ISO local date-time, second precision"""
    return dt.strftime(STORED_DATETIME_FORMAT)


def parse_stored_datetime(value: Optional[str]) -> Optional[datetime]:
    """Parse a stored date-time; raises ValueError on malformed text"""
    if value is None or str(value).strip() == "":
        return None
    parsed = datetime.fromisoformat(str(value).strip())
    # Stored values are wall-clock; drop any offset a foreign writer attached
    return parsed.replace(tzinfo=None)


def _to_domain(row: MedicationReminderRecord) -> MedicationReminder:
    reminder_time = parse_stored_datetime(row.reminder_time)
    if reminder_time is None:
        raise ValueError("empty reminder_time")
    return MedicationReminder(
        id=row.id,
        medication_id=row.medication_id,
        schedule_id=row.schedule_id,
        reminder_time=reminder_time,
        is_taken=bool(row.is_taken),
        taken_at=parse_stored_datetime(row.taken_at),
        notification_id=row.notification_id,
    )


def _parse_rows(rows: List[MedicationReminderRecord]) -> List[MedicationReminder]:
    parsed = []
    for row in rows:
        try:
            parsed.append(_to_domain(row))
        except ValueError as e:
            # Treated as absent for this run; worst case it is regenerated
            logger.warning(
                f"⚠️  [Reminders] Skipping reminder {row.id} with unparseable time "
                f"reminder_time={row.reminder_time!r} taken_at={row.taken_at!r}: {e}"
            )
            malformed_rows_total.labels(table="medication_reminders").inc()
    return parsed


class SqlMedicationStore:
    def __init__(self, db: Session):
        self.db = db

    def get(self, medication_id: int) -> Optional[Medication]:
        row = self.db.get(MedicationRecord, medication_id)
        if row is None:
            return None
        return Medication(
            id=row.id,
            name=row.name,
            dosage=row.dosage,
            start_date=row.start_date,
            end_date=row.end_date,
        )

    def all_ids(self) -> List[int]:
        stmt = select(MedicationRecord.id).order_by(MedicationRecord.id.asc())
        return list(self.db.execute(stmt).scalars())


class SqlScheduleStore:
    def __init__(self, db: Session):
        self.db = db

    def schedules_for(self, medication_id: int) -> List[MedicationSchedule]:
        stmt = (
            select(MedicationScheduleRecord)
            .where(MedicationScheduleRecord.medication_id == medication_id)
            .order_by(MedicationScheduleRecord.id.asc())
        )
        schedules: List[MedicationSchedule] = []
        for row in self.db.execute(stmt).scalars():
            try:
                schedules.append(schedule_from_dict(row.to_schedule_dict()))
            except (ValueError, KeyError, TypeError) as e:
                logger.warning(
                    f"⚠️  [Schedules] Skipping malformed schedule {row.id} "
                    f"(type={row.schedule_type!r}) of medication {medication_id}: {e}"
                )
                malformed_rows_total.labels(table="medication_schedules").inc()
        return schedules


class SqlReminderStore:
    def __init__(self, db: Session):
        self.db = db

    def future_untaken(self, medication_id: int, after: datetime) -> List[MedicationReminder]:
        # Time filtering happens after parsing; malformed text has no order
        stmt = (
            select(MedicationReminderRecord)
            .where(MedicationReminderRecord.medication_id == medication_id)
            .where(MedicationReminderRecord.is_taken == False)  # noqa: E712
        )
        reminders = _parse_rows(list(self.db.execute(stmt).scalars()))
        return sorted(
            (r for r in reminders if r.reminder_time >= after),
            key=lambda r: (r.reminder_time, r.id),
        )

    def most_recent_taken(self, medication_id: int, schedule_id: int) -> Optional[MedicationReminder]:
        # Only the newest rows can hold the answer; history grows for the whole course
        stmt = (
            select(MedicationReminderRecord)
            .where(MedicationReminderRecord.medication_id == medication_id)
            .where(MedicationReminderRecord.schedule_id == schedule_id)
            .where(MedicationReminderRecord.is_taken == True)  # noqa: E712
            .order_by(
                MedicationReminderRecord.taken_at.desc().nulls_last(),
                MedicationReminderRecord.id.desc(),
            )
            .limit(RECENT_TAKEN_SCAN)
        )
        taken = _parse_rows(list(self.db.execute(stmt).scalars()))
        if not taken:
            return None
        return max(taken, key=lambda r: r.taken_at or r.reminder_time)

    def insert(self, reminder: MedicationReminder) -> int:
        row = MedicationReminderRecord(
            medication_id=reminder.medication_id,
            schedule_id=reminder.schedule_id,
            reminder_time=format_stored_datetime(reminder.reminder_time),
            is_taken=reminder.is_taken,
            taken_at=format_stored_datetime(reminder.taken_at) if reminder.taken_at else None,
            notification_id=reminder.notification_id,
        )
        self.db.add(row)
        self.db.commit()
        self.db.refresh(row)
        return row.id

    def delete_by_id(self, reminder_id: int) -> None:
        self.db.execute(
            delete(MedicationReminderRecord).where(MedicationReminderRecord.id == reminder_id)
        )
        self.db.commit()

    def set_notification_id(self, reminder_id: int, notification_id: str) -> None:
        self.db.execute(
            update(MedicationReminderRecord)
            .where(MedicationReminderRecord.id == reminder_id)
            .values(notification_id=notification_id)
        )
        self.db.commit()

    def mark_taken(self, reminder_id: int, taken_at: datetime) -> Optional[int]:
        row = self.db.get(MedicationReminderRecord, reminder_id)
        if row is None:
            return None
        row.is_taken = True
        row.taken_at = format_stored_datetime(taken_at)
        self.db.add(row)
        self.db.commit()
        return row.medication_id

    def get(self, reminder_id: int) -> Optional[MedicationReminder]:
        row = self.db.get(MedicationReminderRecord, reminder_id)
        if row is None:
            return None
        parsed = _parse_rows([row])
        return parsed[0] if parsed else None
