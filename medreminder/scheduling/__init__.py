"""Medication reminder scheduling (occurrence generation, reconciliation, Celery tasks).

The pure pieces (schedule variants, window policy, occurrence generator and
reconciler) have no I/O. ``SchedulingOrchestrator`` drives them against the
store and alarm interfaces; ``ReminderSchedulingService`` binds those to
SQLAlchemy and Celery.
"""
from .schedule_models import (  # noqa: F401
    AsNeededSchedule,
    BoundedIntervalSchedule,
    ContinuousIntervalSchedule,
    CustomAlarmsSchedule,
    DailySchedule,
    Medication,
    MedicationReminder,
    MedicationSchedule,
    Occurrence,
    ScheduleType,
    WeeklySchedule,
    Weekday,
    schedule_from_dict,
)
from .window import GenerationWindow, ScheduleWindowPolicy  # noqa: F401
from .occurrences import OccurrenceGenerator  # noqa: F401
from .reconciler import ReconciliationResult, ReminderReconciler  # noqa: F401
from .orchestrator import RunReport, SchedulingOrchestrator  # noqa: F401
from .keyed_runner import KeyedTaskRunner  # noqa: F401
