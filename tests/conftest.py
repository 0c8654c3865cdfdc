"""Shared fixtures for medication scheduling tests."""

# pylint: disable=redefined-outer-name

from datetime import date, datetime
from typing import Dict, List, Optional

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from medreminder.db.base import Base
from medreminder.db.session import enable_sqlite_foreign_keys
from medreminder import models  # noqa: F401  (registers tables)
from medreminder.scheduling.alarms import InMemoryAlarmScheduler
from medreminder.scheduling.clock import FixedClock
from medreminder.scheduling.orchestrator import SchedulingOrchestrator
from medreminder.scheduling.schedule_models import (
    Medication,
    MedicationReminder,
    MedicationSchedule,
)


# =============================================================================
# IN-MEMORY STORES
# =============================================================================


class FakeMedicationStore:
    def __init__(self):
        self.medications: Dict[int, Medication] = {}

    def add(self, medication: Medication) -> Medication:
        self.medications[medication.id] = medication
        return medication

    def get(self, medication_id: int) -> Optional[Medication]:
        return self.medications.get(medication_id)

    def all_ids(self) -> List[int]:
        return sorted(self.medications)


class FakeScheduleStore:
    def __init__(self):
        self.by_medication: Dict[int, List[MedicationSchedule]] = {}

    def set(self, medication_id: int, schedules: List[MedicationSchedule]) -> None:
        self.by_medication[medication_id] = list(schedules)

    def schedules_for(self, medication_id: int) -> List[MedicationSchedule]:
        return list(self.by_medication.get(medication_id, []))


class FakeReminderStore:
    """Keeps reminders in a dict and records every mutation in ``log``"""

    def __init__(self):
        self.rows: Dict[int, MedicationReminder] = {}
        self.log: List[tuple] = []
        self._next_id = 1

    def add(self, reminder: MedicationReminder) -> MedicationReminder:
        reminder.id = self._next_id
        self._next_id += 1
        self.rows[reminder.id] = reminder
        return reminder

    def future_untaken(self, medication_id: int, after: datetime) -> List[MedicationReminder]:
        return sorted(
            (
                r for r in self.rows.values()
                if r.medication_id == medication_id and not r.is_taken and r.reminder_time >= after
            ),
            key=lambda r: (r.reminder_time, r.id),
        )

    def most_recent_taken(self, medication_id: int, schedule_id: int) -> Optional[MedicationReminder]:
        taken = [
            r for r in self.rows.values()
            if r.medication_id == medication_id and r.schedule_id == schedule_id and r.is_taken
        ]
        if not taken:
            return None
        return max(taken, key=lambda r: r.taken_at or r.reminder_time)

    def insert(self, reminder: MedicationReminder) -> int:
        self.add(reminder)
        self.log.append(("insert", reminder.id))
        return reminder.id

    def delete_by_id(self, reminder_id: int) -> None:
        self.rows.pop(reminder_id, None)
        self.log.append(("delete", reminder_id))

    def set_notification_id(self, reminder_id: int, notification_id: str) -> None:
        self.rows[reminder_id].notification_id = notification_id

    def mark_taken(self, reminder_id: int, taken_at: datetime) -> Optional[int]:
        reminder = self.rows.get(reminder_id)
        if reminder is None:
            return None
        reminder.is_taken = True
        reminder.taken_at = taken_at
        return reminder.medication_id

    def untaken_times(self, medication_id: int) -> List[datetime]:
        return sorted(
            r.reminder_time for r in self.rows.values()
            if r.medication_id == medication_id and not r.is_taken
        )


# =============================================================================
# FIXTURES
# =============================================================================


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(datetime(2024, 3, 10, 9, 30))


@pytest.fixture
def medications() -> FakeMedicationStore:
    return FakeMedicationStore()


@pytest.fixture
def schedules() -> FakeScheduleStore:
    return FakeScheduleStore()


@pytest.fixture
def reminders() -> FakeReminderStore:
    return FakeReminderStore()


@pytest.fixture
def alarms() -> InMemoryAlarmScheduler:
    return InMemoryAlarmScheduler()


@pytest.fixture
def orchestrator(medications, schedules, reminders, alarms, clock) -> SchedulingOrchestrator:
    return SchedulingOrchestrator(
        medications=medications,
        schedules=schedules,
        reminders=reminders,
        alarms=alarms,
        clock=clock,
    )


@pytest.fixture
def medication(medications) -> Medication:
    return medications.add(
        Medication(id=1, name="Amoxicillin", dosage="500mg", start_date=date(2024, 3, 1))
    )


@pytest.fixture
def db_session():
    """SQLite in-memory session with all tables created."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    enable_sqlite_foreign_keys(engine)
    Base.metadata.create_all(bind=engine)
    session = sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)
        engine.dispose()
