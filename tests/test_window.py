"""Generation window tests."""

from datetime import date, datetime, timedelta

from medreminder.scheduling.schedule_models import Medication
from medreminder.scheduling.window import DEFAULT_HORIZON, GenerationWindow, ScheduleWindowPolicy

NOW = datetime(2024, 3, 10, 9, 30)


def _medication(start_date, end_date=None):
    return Medication(id=1, name="Metformin", start_date=start_date, end_date=end_date)


class TestScheduleWindowPolicy:
    def test_open_ended_course_uses_rolling_horizon(self):
        window = ScheduleWindowPolicy().resolve_window(_medication(date(2024, 3, 1)), NOW)

        assert window == GenerationWindow(start=NOW, end=NOW + DEFAULT_HORIZON)
        assert DEFAULT_HORIZON == timedelta(hours=48)

    def test_future_course_starts_at_its_first_midnight(self):
        window = ScheduleWindowPolicy().resolve_window(_medication(date(2024, 3, 11)), NOW)

        assert window.start == datetime(2024, 3, 11, 0, 0)
        assert window.end == NOW + timedelta(hours=48)

    def test_end_date_is_inclusive_through_midnight(self):
        window = ScheduleWindowPolicy().resolve_window(
            _medication(date(2024, 3, 1), end_date=date(2024, 3, 10)), NOW
        )

        assert window.end == datetime(2024, 3, 11, 0, 0)
        assert window.contains(datetime(2024, 3, 10, 23, 59))
        assert not window.contains(datetime(2024, 3, 11, 0, 0))

    def test_finished_course_gives_empty_window(self):
        window = ScheduleWindowPolicy().resolve_window(
            _medication(date(2024, 2, 1), end_date=date(2024, 3, 5)), NOW
        )

        assert window.is_empty

    def test_course_starting_beyond_horizon_gives_empty_window(self):
        window = ScheduleWindowPolicy().resolve_window(_medication(date(2024, 4, 1)), NOW)

        assert window.is_empty

    def test_custom_horizon(self):
        window = ScheduleWindowPolicy(timedelta(hours=6)).resolve_window(
            _medication(date(2024, 3, 1)), NOW
        )

        assert window.end == datetime(2024, 3, 10, 15, 30)
