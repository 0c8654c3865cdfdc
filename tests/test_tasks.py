"""Celery task and alarm scheduler tests with mocked collaborators."""

from datetime import date, datetime
from unittest.mock import MagicMock, patch

import pytest

from medreminder.core.config import settings
from medreminder.models.medication import MedicationRecord
from medreminder.scheduling import tasks
from medreminder.scheduling.alarms import FIRE_ALARM_TASK, CeleryAlarmScheduler
from medreminder.scheduling.orchestrator import RunReport, ScheduleRunSummary
from medreminder.scheduling.repository import SqlReminderStore
from medreminder.scheduling.schedule_models import MedicationReminder


@pytest.fixture
def gate():
    gate = MagicMock()
    gate.register_pending.return_value = "token-1"
    gate.is_current.return_value = True
    gate.claim.return_value = True
    return gate


class TestEnqueueMedicationRun:
    @pytest.mark.parametrize("medication_id", [0, -3, None])
    def test_invalid_ids_are_rejected(self, medication_id, gate):
        app = MagicMock()

        assert not tasks.enqueue_medication_run(medication_id, "schedule_saved", app=app, gate=gate)
        app.send_task.assert_not_called()
        gate.register_pending.assert_not_called()

    def test_enqueues_with_fresh_token(self, gate):
        app = MagicMock()

        assert tasks.enqueue_medication_run(4, "schedule_saved", app=app, gate=gate)

        gate.register_pending.assert_called_once_with(4)
        app.send_task.assert_called_once_with(
            tasks.SCHEDULE_MEDICATION_TASK,
            kwargs={"medication_id": 4, "token": "token-1", "reason": "schedule_saved"},
            queue=settings.SCHEDULING_QUEUE,
            routing_key=settings.SCHEDULING_QUEUE,
        )


class TestScheduleMedicationTask:
    def test_superseded_run_does_no_work(self, gate):
        gate.is_current.return_value = False
        with patch.object(tasks, "get_run_gate", return_value=gate), \
                patch.object(tasks, "SessionLocal") as session_local:
            result = tasks.schedule_medication_task(medication_id=4, token="stale")

        assert result == {"medication_id": 4, "status": "superseded"}
        gate.hold.assert_not_called()
        session_local.assert_not_called()

    def test_replaced_while_waiting_for_lock(self, gate):
        gate.claim.return_value = False
        with patch.object(tasks, "get_run_gate", return_value=gate), \
                patch.object(tasks, "SessionLocal") as session_local:
            result = tasks.schedule_medication_task(medication_id=4, token="token-1")

        assert result["status"] == "superseded"
        session_local.assert_not_called()

    def test_current_run_executes_and_closes_session(self, gate):
        report = RunReport(
            medication_id=4,
            ran_at=datetime(2024, 3, 10, 9, 30),
            schedules=[ScheduleRunSummary(schedule_id=1, inserted=2, deleted=1)],
        )
        with patch.object(tasks, "get_run_gate", return_value=gate), \
                patch.object(tasks, "SessionLocal") as session_local, \
                patch.object(tasks, "ReminderSchedulingService") as service_cls:
            service_cls.return_value.run.return_value = report
            result = tasks.schedule_medication_task(medication_id=4, token="token-1")

        assert result == {"medication_id": 4, "status": "ok", "inserted": 2, "deleted": 1}
        gate.claim.assert_called_once_with(4, "token-1")
        session_local.return_value.close.assert_called_once()

    def test_aborted_run_reports_reason(self, gate):
        report = RunReport(medication_id=4, ran_at=datetime(2024, 3, 10), aborted_reason="no_schedules")
        with patch.object(tasks, "get_run_gate", return_value=gate), \
                patch.object(tasks, "SessionLocal"), \
                patch.object(tasks, "ReminderSchedulingService") as service_cls:
            service_cls.return_value.run.return_value = report
            result = tasks.schedule_medication_task(medication_id=4, token="token-1")

        assert result == {"medication_id": 4, "status": "aborted", "reason": "no_schedules"}


class TestTriggerTasks:
    def test_refresh_enqueues_every_medication(self):
        with patch.object(tasks, "SessionLocal"), \
                patch.object(tasks, "ReminderSchedulingService") as service_cls, \
                patch.object(tasks, "enqueue_medication_run", return_value=True) as enqueue:
            service_cls.return_value.medication_ids.return_value = [1, 2, 3]
            count = tasks.refresh_all_medications_task()

        assert count == 3
        assert [c.args[0] for c in enqueue.call_args_list] == [1, 2, 3]

    def test_mark_taken_triggers_rerun(self):
        with patch.object(tasks, "SessionLocal"), \
                patch.object(tasks, "ReminderSchedulingService") as service_cls, \
                patch.object(tasks, "enqueue_medication_run") as enqueue:
            service_cls.return_value.mark_taken.return_value = 9
            medication_id = tasks.mark_dose_taken_task(31, "2024-03-10T08:02:00")

        assert medication_id == 9
        service_cls.return_value.mark_taken.assert_called_once_with(31, datetime(2024, 3, 10, 8, 2))
        enqueue.assert_called_once_with(9, reason="dose_taken")

    def test_mark_taken_unknown_reminder_does_not_enqueue(self):
        with patch.object(tasks, "SessionLocal"), \
                patch.object(tasks, "ReminderSchedulingService") as service_cls, \
                patch.object(tasks, "enqueue_medication_run") as enqueue:
            service_cls.return_value.mark_taken.return_value = None
            assert tasks.mark_dose_taken_task(31) is None

        enqueue.assert_not_called()


class TestFireDoseAlarmTask:
    ALARM = dict(
        reminder_id=5,
        medication_name="Ibuprofen",
        dosage="200mg",
        is_interval=True,
        next_occurrence_at="2024-03-10T14:00:00",
        fires_at="2024-03-10T08:00:00",
    )

    def test_pending_reminder_is_dispatched(self):
        reminder = MedicationReminder(
            id=5, medication_id=2, schedule_id=3, reminder_time=datetime(2024, 3, 10, 8, 0)
        )
        with patch.object(tasks, "SessionLocal"), \
                patch.object(tasks, "SqlReminderStore") as store_cls, \
                patch.object(tasks, "celery_app") as app:
            store_cls.return_value.get.return_value = reminder
            assert tasks.fire_dose_alarm_task(**self.ALARM)

        args, kwargs = app.send_task.call_args
        assert args[0] == tasks.DISPATCH_TASK
        assert kwargs["queue"] == settings.OUTPUT_QUEUE
        payload = kwargs["args"][0]
        assert payload["medication_id"] == 2
        assert payload["next_occurrence_at"] == "2024-03-10T14:00:00"

    @pytest.mark.parametrize("is_taken", [True, None])
    def test_taken_or_deleted_reminder_is_skipped(self, is_taken):
        reminder = None
        if is_taken:
            reminder = MedicationReminder(
                id=5, medication_id=2, schedule_id=3,
                reminder_time=datetime(2024, 3, 10, 8, 0), is_taken=True,
            )
        with patch.object(tasks, "SessionLocal"), \
                patch.object(tasks, "SqlReminderStore") as store_cls, \
                patch.object(tasks, "celery_app") as app:
            store_cls.return_value.get.return_value = reminder
            assert not tasks.fire_dose_alarm_task(**self.ALARM)

        app.send_task.assert_not_called()

    def test_alarm_armed_for_another_time_is_skipped(self):
        reminder = MedicationReminder(
            id=5, medication_id=9, schedule_id=4, reminder_time=datetime(2024, 3, 12, 8, 0)
        )
        with patch.object(tasks, "SessionLocal"), \
                patch.object(tasks, "SqlReminderStore") as store_cls, \
                patch.object(tasks, "celery_app") as app:
            store_cls.return_value.get.return_value = reminder
            assert not tasks.fire_dose_alarm_task(**self.ALARM)

        app.send_task.assert_not_called()

    def test_deleted_reminder_id_is_not_handed_to_a_new_reminder(self, db_session):
        first = MedicationRecord(name="Ibuprofen", dosage="200mg", start_date=date(2024, 3, 1))
        second = MedicationRecord(name="Metformin", dosage="850mg", start_date=date(2024, 3, 1))
        db_session.add_all([first, second])
        db_session.commit()
        store = SqlReminderStore(db_session)
        old_id = store.insert(
            MedicationReminder(medication_id=first.id, schedule_id=None, reminder_time=datetime(2024, 3, 11, 8, 0))
        )
        store.delete_by_id(old_id)

        new_id = store.insert(
            MedicationReminder(medication_id=second.id, schedule_id=None, reminder_time=datetime(2024, 3, 12, 8, 0))
        )
        assert new_id != old_id

        with patch.object(tasks, "SessionLocal", return_value=db_session), \
                patch.object(tasks, "celery_app") as app:
            fired = tasks.fire_dose_alarm_task(**dict(self.ALARM, reminder_id=old_id, fires_at="2024-03-11T08:00:00"))

        assert not fired
        app.send_task.assert_not_called()


class TestCeleryAlarmScheduler:
    def test_schedule_sends_eta_task_with_stable_id(self):
        app = MagicMock()
        scheduler = CeleryAlarmScheduler(app=app)

        handle = scheduler.schedule(
            reminder_id=5,
            medication_name="Ibuprofen",
            dosage="200mg",
            is_interval=False,
            next_occurrence_at=None,
            fires_at=datetime(2024, 3, 10, 8, 0),
        )

        assert handle == "dose-alarm-5"
        args, kwargs = app.send_task.call_args
        assert args[0] == FIRE_ALARM_TASK
        assert kwargs["task_id"] == "dose-alarm-5"
        assert kwargs["queue"] == settings.ALARM_QUEUE
        assert kwargs["eta"].tzinfo is not None
        assert kwargs["kwargs"]["fires_at"] == "2024-03-10T08:00:00"
        assert kwargs["kwargs"]["next_occurrence_at"] is None

    def test_cancel_revokes_by_reminder(self):
        app = MagicMock()

        CeleryAlarmScheduler(app=app).cancel_all(5)

        app.control.revoke.assert_called_once_with("dose-alarm-5")
