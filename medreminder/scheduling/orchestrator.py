"""
Per-medication scheduling run: generate, reconcile, apply
"""
import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional

from .clock import Clock
from .interfaces import AlarmScheduler, MedicationStore, ReminderStore, ScheduleStore
from .metrics import (
    reminders_deleted_total,
    reminders_inserted_total,
    scheduling_runs_aborted_total,
    scheduling_runs_total,
)
from .occurrences import OccurrenceGenerator
from .reconciler import ReminderReconciler
from .schedule_models import (
    ContinuousIntervalSchedule,
    Medication,
    MedicationReminder,
    MedicationSchedule,
    Occurrence,
)
from .window import GenerationWindow, ScheduleWindowPolicy

logger = logging.getLogger(__name__)


@dataclass
class ScheduleRunSummary:
    schedule_id: Optional[int]
    inserted: int = 0
    deleted: int = 0
    window_empty: bool = False


@dataclass
class RunReport:
    medication_id: int
    ran_at: datetime
    schedules: List[ScheduleRunSummary] = field(default_factory=list)
    aborted_reason: Optional[str] = None

    @property
    def aborted(self) -> bool:
        return self.aborted_reason is not None

    @property
    def inserted(self) -> int:
        return sum(s.inserted for s in self.schedules)

    @property
    def deleted(self) -> int:
        return sum(s.deleted for s in self.schedules)


def next_occurrence_map(ideal: List[Occurrence]) -> Dict[datetime, Optional[datetime]]:
    """Map each occurrence time to the following one in the sorted ideal set"""
    ordered = sorted(ideal)
    following: Dict[datetime, Optional[datetime]] = {}
    for current, nxt in zip(ordered, ordered[1:] + [None]):
        following[current.timestamp] = nxt.timestamp if nxt is not None else None
    return following


class SchedulingOrchestrator:
    """Brings one medication's persisted reminders in line with its schedules.

    Safe to call any number of times, in any order: a run with unchanged
    inputs neither inserts nor deletes anything. Collaborator failures
    propagate; the next run re-derives the correct state.
    """

    def __init__(
        self,
        medications: MedicationStore,
        schedules: ScheduleStore,
        reminders: ReminderStore,
        alarms: AlarmScheduler,
        clock: Clock,
        window_policy: Optional[ScheduleWindowPolicy] = None,
        generator: Optional[OccurrenceGenerator] = None,
        reconciler: Optional[ReminderReconciler] = None,
    ):
        self.medications = medications
        self.schedules = schedules
        self.reminders = reminders
        self.alarms = alarms
        self.clock = clock
        self.window_policy = window_policy or ScheduleWindowPolicy()
        self.generator = generator or OccurrenceGenerator()
        self.reconciler = reconciler or ReminderReconciler()

    def run(self, medication_id: int) -> RunReport:
        now = self.clock.now()
        report = RunReport(medication_id=medication_id, ran_at=now)
        scheduling_runs_total.inc()

        medication = self.medications.get(medication_id)
        if medication is None:
            logger.warning(f"⚠️  [Scheduling] Medication {medication_id} not found; skipping run")
            return self._abort(report, "medication_not_found")

        schedules = self.schedules.schedules_for(medication_id)
        if not schedules:
            logger.info(f"🔍 [Scheduling] Medication {medication_id} has no schedules; skipping run")
            return self._abort(report, "no_schedules")

        window = self.window_policy.resolve_window(medication, now)
        logger.info(
            f"🕒 [Scheduling] Run medication={medication_id} now={now.isoformat()} "
            f"window=[{window.start.isoformat()}, {window.end.isoformat()}) schedules={len(schedules)}"
        )

        existing_by_schedule: Dict[Optional[int], List[MedicationReminder]] = defaultdict(list)
        for reminder in self.reminders.future_untaken(medication_id, after=now):
            existing_by_schedule[reminder.schedule_id].append(reminder)

        for schedule in schedules:
            summary = self._run_schedule(
                medication, schedule, window, existing_by_schedule.pop(schedule.id, [])
            )
            report.schedules.append(summary)

        # Whatever is left belongs to no current schedule and can never be ideal
        for schedule_id, orphans in existing_by_schedule.items():
            logger.info(
                f"🧹 [Scheduling] Removing {len(orphans)} reminder(s) of unknown schedule "
                f"{schedule_id} for medication {medication_id}"
            )
            summary = ScheduleRunSummary(schedule_id=schedule_id)
            summary.deleted = self._apply_deletes([r.id for r in orphans if r.id is not None])
            report.schedules.append(summary)

        logger.info(
            f"✅ [Scheduling] Done medication={medication_id} inserted={report.inserted} "
            f"deleted={report.deleted}"
        )
        return report

    def _run_schedule(
        self,
        medication: Medication,
        schedule: MedicationSchedule,
        window: GenerationWindow,
        existing: List[MedicationReminder],
    ) -> ScheduleRunSummary:
        summary = ScheduleRunSummary(schedule_id=schedule.id)

        if window.is_empty:
            # Course over or not reachable: nothing is ideal, stale reminders still go
            summary.window_empty = True
            ideal: List[Occurrence] = []
        else:
            last_taken_at = None
            if isinstance(schedule, ContinuousIntervalSchedule):
                last_taken = self.reminders.most_recent_taken(medication.id, schedule.id)
                if last_taken is not None:
                    last_taken_at = last_taken.taken_at or last_taken.reminder_time
            ideal = self.generator.generate(
                schedule,
                window.start,
                window.end,
                last_taken_at=last_taken_at,
                course_start=medication.start_date,
            )

        diff = self.reconciler.reconcile(ideal, existing)
        logger.debug(
            f"🧮 [Scheduling] medication={medication.id} schedule={schedule.id} "
            f"ideal={len(ideal)} matched={diff.matched} insert={len(diff.to_insert)} "
            f"delete={len(diff.to_delete)}"
        )

        following = next_occurrence_map(ideal) if schedule.is_interval else {}
        # Inserts first so an edit never leaves the medication without an armed alarm
        for occ in diff.to_insert:
            reminder_id = self.reminders.insert(
                MedicationReminder(
                    medication_id=medication.id,
                    schedule_id=schedule.id,
                    reminder_time=occ.timestamp,
                )
            )
            handle = self.alarms.schedule(
                reminder_id=reminder_id,
                medication_name=medication.name,
                dosage=medication.dosage or "",
                is_interval=occ.is_interval,
                next_occurrence_at=following.get(occ.timestamp),
                fires_at=occ.timestamp,
            )
            if handle:
                self.reminders.set_notification_id(reminder_id, handle)
            summary.inserted += 1
            reminders_inserted_total.inc()

        summary.deleted = self._apply_deletes(diff.to_delete)
        return summary

    def _apply_deletes(self, reminder_ids: List[int]) -> int:
        for reminder_id in reminder_ids:
            self.alarms.cancel_all(reminder_id)
            self.reminders.delete_by_id(reminder_id)
            reminders_deleted_total.inc()
        return len(reminder_ids)

    def _abort(self, report: RunReport, reason: str) -> RunReport:
        report.aborted_reason = reason
        scheduling_runs_aborted_total.labels(reason=reason).inc()
        return report
