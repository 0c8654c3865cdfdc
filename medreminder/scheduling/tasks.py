"""
Celery tasks for medication reminder scheduling
"""
from datetime import datetime
from typing import Any, Dict, Optional

from celery import Celery, shared_task
from celery.utils.log import get_task_logger
from sqlalchemy.orm import Session

from medreminder.core.config import settings
from medreminder.db.session import SessionLocal
from .celery_app import celery_app
from .errors import RunLockTimeout
from .metrics import scheduling_runs_superseded_total
from .occurrences import truncate_to_minute
from .repository import SqlReminderStore, parse_stored_datetime
from .run_gate import MedicationRunGate, get_run_gate
from .service import ReminderSchedulingService

logger = get_task_logger(__name__)

SCHEDULE_MEDICATION_TASK = "reminders.schedule_medication"
DISPATCH_TASK = "reminders.dispatch"


def enqueue_medication_run(
    medication_id: int,
    reason: str,
    app: Optional[Celery] = None,
    gate: Optional[MedicationRunGate] = None,
) -> bool:
    """Queue a scheduling run for one medication.

    Any run for the same medication that is still queued becomes stale and
    exits without doing work. Returns False for ids that cannot exist.
    """
    if medication_id is None or int(medication_id) <= 0:
        logger.error(f"❌ [Scheduling] Refusing to enqueue run for invalid medication id {medication_id!r} ({reason})")
        return False

    app = app or celery_app
    gate = gate or get_run_gate()
    token = gate.register_pending(medication_id)
    app.send_task(
        SCHEDULE_MEDICATION_TASK,
        kwargs={"medication_id": medication_id, "token": token, "reason": reason},
        queue=settings.SCHEDULING_QUEUE,
        routing_key=settings.SCHEDULING_QUEUE,
    )
    logger.info(f"📨 [Scheduling] Enqueued run for medication {medication_id} ({reason})")
    return True


@shared_task(
    name=SCHEDULE_MEDICATION_TASK,
    autoretry_for=(RunLockTimeout,),
    retry_backoff=True,
    max_retries=5,
)
def schedule_medication_task(medication_id: int, token: str, reason: str = "unspecified") -> Dict[str, Any]:
    """Run the scheduler for one medication unless a newer trigger replaced this one"""
    gate = get_run_gate()
    if not gate.is_current(medication_id, token):
        scheduling_runs_superseded_total.inc()
        logger.info(f"⏭️  [Scheduling] Run for medication {medication_id} ({reason}) superseded before start")
        return {"medication_id": medication_id, "status": "superseded"}

    with gate.hold(medication_id):
        # A newer trigger may have landed while we waited for the lock
        if not gate.claim(medication_id, token):
            scheduling_runs_superseded_total.inc()
            logger.info(f"⏭️  [Scheduling] Run for medication {medication_id} ({reason}) superseded while waiting")
            return {"medication_id": medication_id, "status": "superseded"}

        db: Session = SessionLocal()
        try:
            report = ReminderSchedulingService(db).run(medication_id)
        finally:
            db.close()

    if report.aborted:
        return {"medication_id": medication_id, "status": "aborted", "reason": report.aborted_reason}
    return {
        "medication_id": medication_id,
        "status": "ok",
        "inserted": report.inserted,
        "deleted": report.deleted,
    }


@shared_task(name="reminders.refresh_all_medications")
def refresh_all_medications_task() -> int:
    """Enqueue a run for every medication. Returns number enqueued."""
    db: Session = SessionLocal()
    try:
        medication_ids = ReminderSchedulingService(db).medication_ids()
    finally:
        db.close()

    enqueued = 0
    for medication_id in medication_ids:
        if enqueue_medication_run(medication_id, reason="periodic_refresh"):
            enqueued += 1
    logger.info(f"🔁 [Scheduling] Periodic refresh enqueued {enqueued} medication run(s)")
    return enqueued


@shared_task(name="reminders.mark_dose_taken")
def mark_dose_taken_task(reminder_id: int, taken_at: Optional[str] = None) -> Optional[int]:
    """Record a dose as taken and re-plan its medication. Returns the medication id."""
    db: Session = SessionLocal()
    try:
        when: Optional[datetime] = parse_stored_datetime(taken_at)
        medication_id = ReminderSchedulingService(db).mark_taken(reminder_id, when)
    finally:
        db.close()

    if medication_id is not None:
        enqueue_medication_run(medication_id, reason="dose_taken")
    return medication_id


@shared_task(name="reminders.fire_dose_alarm")
def fire_dose_alarm_task(
    reminder_id: int,
    medication_name: str,
    dosage: str,
    is_interval: bool,
    next_occurrence_at: Optional[str],
    fires_at: str,
) -> bool:
    """Publish a due dose alarm to the output queue. Returns whether it was published."""
    db: Session = SessionLocal()
    try:
        reminder = SqlReminderStore(db).get(reminder_id)
    finally:
        db.close()

    if reminder is None or reminder.is_taken:
        # Deleted or taken after the alarm was armed
        logger.info(f"🔍 [Alarms] Skipping alarm for reminder {reminder_id}; no longer pending")
        return False

    armed_for = parse_stored_datetime(fires_at)
    if armed_for is None or truncate_to_minute(armed_for) != truncate_to_minute(reminder.reminder_time):
        # The id now names a different reminder than the one this alarm was armed for
        logger.warning(
            f"⚠️  [Alarms] Skipping alarm for reminder {reminder_id}: armed for {fires_at}, "
            f"reminder is due {reminder.reminder_time.isoformat()}"
        )
        return False

    payload = {
        "reminder_id": reminder_id,
        "medication_id": reminder.medication_id,
        "schedule_id": reminder.schedule_id,
        "medication_name": medication_name,
        "dosage": dosage,
        "is_interval": is_interval,
        "next_occurrence_at": next_occurrence_at,
        "timestamp": fires_at,
    }
    celery_app.send_task(
        DISPATCH_TASK,
        args=[payload],
        queue=settings.OUTPUT_QUEUE,
        routing_key=settings.OUTPUT_QUEUE,
    )
    logger.info(f"🔔 [Alarms] Dispatched alarm for reminder {reminder_id} ({medication_name})")
    return True
