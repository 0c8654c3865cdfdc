import logging
from datetime import datetime, timedelta
from typing import List, Optional

from sqlalchemy.orm import Session

from medreminder.core.config import settings
from .alarms import CeleryAlarmScheduler
from .clock import Clock, SystemClock
from .interfaces import AlarmScheduler
from .orchestrator import RunReport, SchedulingOrchestrator
from .repository import SqlMedicationStore, SqlReminderStore, SqlScheduleStore
from .window import ScheduleWindowPolicy

logger = logging.getLogger(__name__)


class ReminderSchedulingService:
    """Medication reminder scheduling bound to one database session"""

    def __init__(
        self,
        db: Session,
        clock: Optional[Clock] = None,
        alarms: Optional[AlarmScheduler] = None,
        horizon: Optional[timedelta] = None,
    ):
        self.db = db
        self.clock = clock or SystemClock(settings.DEFAULT_TIMEZONE)
        self.alarms = alarms or CeleryAlarmScheduler()
        self.medications = SqlMedicationStore(db)
        self.schedules = SqlScheduleStore(db)
        self.reminders = SqlReminderStore(db)
        self.orchestrator = SchedulingOrchestrator(
            medications=self.medications,
            schedules=self.schedules,
            reminders=self.reminders,
            alarms=self.alarms,
            clock=self.clock,
            window_policy=ScheduleWindowPolicy(
                horizon or timedelta(hours=settings.PROJECTION_HORIZON_HOURS)
            ),
        )

    def run(self, medication_id: int) -> RunReport:
        return self.orchestrator.run(medication_id)

    def mark_taken(self, reminder_id: int, taken_at: Optional[datetime] = None) -> Optional[int]:
        """Record a dose as taken and disarm its alarm.

        Returns the medication id so the caller can trigger a rerun, or None
        when the reminder does not exist.
        """
        taken_at = taken_at or self.clock.now()
        medication_id = self.reminders.mark_taken(reminder_id, taken_at)
        if medication_id is None:
            logger.warning(f"⚠️  [Scheduling] Reminder {reminder_id} not found; nothing marked taken")
            return None
        self.alarms.cancel_all(reminder_id)
        logger.info(
            f"💊 [Scheduling] Reminder {reminder_id} of medication {medication_id} "
            f"taken at {taken_at.isoformat()}"
        )
        return medication_id

    def medication_ids(self) -> List[int]:
        return self.medications.all_ids()
