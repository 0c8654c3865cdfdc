"""
Alarm scheduling: one delayed Celery task per persisted reminder
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, List, Optional

from celery import Celery

from medreminder.core.config import settings

from zoneinfo import ZoneInfo

logger = logging.getLogger(__name__)

FIRE_ALARM_TASK = "reminders.fire_dose_alarm"


def alarm_task_id(reminder_id: int) -> str:
    """Deterministic task id, so an alarm can be revoked knowing only the reminder"""
    return f"dose-alarm-{reminder_id}"


def to_aware_local(dt: datetime) -> datetime:
    """Attach the wall-clock zone schedules are written in"""
    if dt.tzinfo is not None:
        return dt
    tz_name = settings.DEFAULT_TIMEZONE
    if tz_name:
        return dt.replace(tzinfo=ZoneInfo(tz_name))
    return dt.astimezone()


@dataclass
class AlarmRequest:
    reminder_id: int
    medication_name: str
    dosage: str
    is_interval: bool
    next_occurrence_at: Optional[datetime]
    fires_at: datetime

    def to_payload(self) -> Dict[str, object]:
        return {
            "reminder_id": self.reminder_id,
            "medication_name": self.medication_name,
            "dosage": self.dosage,
            "is_interval": self.is_interval,
            "next_occurrence_at": self.next_occurrence_at.isoformat() if self.next_occurrence_at else None,
            "fires_at": self.fires_at.isoformat(),
        }


class CeleryAlarmScheduler:
    """Arms alarms as ETA tasks on the alarm queue and revokes them by reminder id"""

    def __init__(self, app: Optional[Celery] = None):
        if app is None:
            from .celery_app import celery_app
            app = celery_app
        self.app = app

    def schedule(
        self,
        reminder_id: int,
        medication_name: str,
        dosage: str,
        is_interval: bool,
        next_occurrence_at: Optional[datetime],
        fires_at: datetime,
    ) -> Optional[str]:
        request = AlarmRequest(
            reminder_id=reminder_id,
            medication_name=medication_name,
            dosage=dosage,
            is_interval=is_interval,
            next_occurrence_at=next_occurrence_at,
            fires_at=fires_at,
        )
        task_id = alarm_task_id(reminder_id)
        self.app.send_task(
            FIRE_ALARM_TASK,
            kwargs=request.to_payload(),
            eta=to_aware_local(fires_at),
            task_id=task_id,
            queue=settings.ALARM_QUEUE,
            routing_key=settings.ALARM_QUEUE,
        )
        logger.debug(f"⏰ [Alarms] Armed {task_id} for {fires_at.isoformat()}")
        return task_id

    def cancel_all(self, reminder_id: int) -> None:
        task_id = alarm_task_id(reminder_id)
        self.app.control.revoke(task_id)
        logger.debug(f"🛑 [Alarms] Revoked {task_id}")


class InMemoryAlarmScheduler:
    """Keeps armed alarms in a dict; for embedding the engine without a broker"""

    def __init__(self):
        self.armed: Dict[int, AlarmRequest] = {}
        self.scheduled: List[AlarmRequest] = []
        self.cancelled: List[int] = []

    def schedule(
        self,
        reminder_id: int,
        medication_name: str,
        dosage: str,
        is_interval: bool,
        next_occurrence_at: Optional[datetime],
        fires_at: datetime,
    ) -> Optional[str]:
        request = AlarmRequest(
            reminder_id=reminder_id,
            medication_name=medication_name,
            dosage=dosage,
            is_interval=is_interval,
            next_occurrence_at=next_occurrence_at,
            fires_at=fires_at,
        )
        self.armed[reminder_id] = request
        self.scheduled.append(request)
        return alarm_task_id(reminder_id)

    def cancel_all(self, reminder_id: int) -> None:
        self.armed.pop(reminder_id, None)
        self.cancelled.append(reminder_id)
