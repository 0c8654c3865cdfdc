"""
Occurrence generation for medication schedules
"""
import logging
from datetime import date, datetime, time, timedelta
from typing import Iterator, List, Optional

from .schedule_models import (
    AsNeededSchedule,
    BoundedIntervalSchedule,
    ContinuousIntervalSchedule,
    MedicationSchedule,
    Occurrence,
    _TimesOfDaySchedule,
)

logger = logging.getLogger(__name__)

_ONE_MINUTE = timedelta(minutes=1)


def truncate_to_minute(ts: datetime) -> datetime:
    return ts.replace(second=0, microsecond=0)


def _days_in_window(window_start: datetime, window_end: datetime) -> Iterator[date]:
    """Every calendar day that intersects [window_start, window_end)"""
    if window_start >= window_end:
        return
    day = window_start.date()
    last_day = (window_end - timedelta(microseconds=1)).date()
    while day <= last_day:
        yield day
        day += timedelta(days=1)


class OccurrenceGenerator:
    """Computes the ideal reminder timestamps of a schedule inside a window.

    Pure and deterministic: the same schedule, window and anchor inputs always
    give the same sorted list, and nothing is read or written.
    """

    def generate(
        self,
        schedule: MedicationSchedule,
        window_start: datetime,
        window_end: datetime,
        last_taken_at: Optional[datetime] = None,
        course_start: Optional[date] = None,
    ) -> List[Occurrence]:
        """Return sorted, de-duplicated occurrences in [window_start, window_end).

        ``last_taken_at`` and ``course_start`` only matter for continuous
        intervals, where they decide the anchor of the sequence.
        """
        if window_start >= window_end:
            return []

        if isinstance(schedule, AsNeededSchedule):
            timestamps = []
        elif isinstance(schedule, ContinuousIntervalSchedule):
            timestamps = self._continuous_interval(
                schedule, window_start, window_end, last_taken_at, course_start
            )
        elif isinstance(schedule, BoundedIntervalSchedule):
            timestamps = self._bounded_interval(schedule, window_start, window_end)
        elif isinstance(schedule, _TimesOfDaySchedule):
            timestamps = self._times_of_day(schedule, window_start, window_end)
        else:
            raise TypeError(f"Unsupported schedule variant: {type(schedule).__name__}")

        return [
            Occurrence(timestamp=ts, schedule_id=schedule.id, is_interval=schedule.is_interval)
            for ts in sorted(set(timestamps))
        ]

    @staticmethod
    def continuous_anchor(
        schedule: ContinuousIntervalSchedule,
        course_start: date,
        last_taken_at: Optional[datetime] = None,
    ) -> datetime:
        """Anchor of a continuous interval sequence.

        The last taken dose wins once there is one; before that the sequence
        starts on the first day of the course at the schedule's anchor time.
        A taken dose recorded before the course started is ignored.
        """
        nominal = datetime.combine(course_start, schedule.anchor_time)
        if last_taken_at is None:
            return truncate_to_minute(nominal)
        if last_taken_at < datetime.combine(course_start, time.min):
            logger.info(
                f"🧭 [Occurrences] schedule={schedule.id} last taken {last_taken_at.isoformat()} "
                f"predates course start {course_start.isoformat()}; using nominal anchor"
            )
            return truncate_to_minute(nominal)
        return truncate_to_minute(last_taken_at)

    def _continuous_interval(
        self,
        schedule: ContinuousIntervalSchedule,
        window_start: datetime,
        window_end: datetime,
        last_taken_at: Optional[datetime],
        course_start: Optional[date],
    ) -> List[datetime]:
        interval = schedule.interval
        if interval < _ONE_MINUTE:
            logger.warning(
                f"⚠️  [Occurrences] schedule={schedule.id} has a non-positive interval "
                f"({schedule.interval_hours}h {schedule.interval_minutes}m); nothing generated"
            )
            return []

        course_start = course_start or window_start.date()
        first = self.continuous_anchor(schedule, course_start, last_taken_at)
        if last_taken_at is not None and last_taken_at >= datetime.combine(course_start, time.min):
            # The taken dose itself is not a reminder
            first += interval

        if first < window_start:
            # Whole steps that fall before the window are skipped, the cadence is kept
            missed = (window_start - first) // interval
            current = first + missed * interval
            if current < window_start:
                current += interval
        else:
            current = first

        timestamps = []
        while current < window_end:
            timestamps.append(current)
            current += interval
        return timestamps

    def _bounded_interval(
        self,
        schedule: BoundedIntervalSchedule,
        window_start: datetime,
        window_end: datetime,
    ) -> List[datetime]:
        interval = schedule.interval
        if interval < _ONE_MINUTE:
            logger.warning(
                f"⚠️  [Occurrences] schedule={schedule.id} has a non-positive interval "
                f"({schedule.interval_hours}h {schedule.interval_minutes}m); nothing generated"
            )
            return []
        if schedule.end_time < schedule.start_time:
            logger.warning(
                f"⚠️  [Occurrences] schedule={schedule.id} window ends ({schedule.end_time}) "
                f"before it starts ({schedule.start_time}); nothing generated"
            )
            return []

        timestamps = []
        for day in _days_in_window(window_start, window_end):
            current = datetime.combine(day, schedule.start_time)
            day_end = datetime.combine(day, schedule.end_time)
            # Each day restarts from start_time; nothing spills past midnight
            while current <= day_end and current.date() == day:
                if window_start <= current < window_end:
                    timestamps.append(current)
                current += interval
        return timestamps

    def _times_of_day(
        self,
        schedule: _TimesOfDaySchedule,
        window_start: datetime,
        window_end: datetime,
    ) -> List[datetime]:
        timestamps = []
        for day in _days_in_window(window_start, window_end):
            if not schedule.allows(day):
                continue
            for tod in schedule.specific_times:
                candidate = datetime.combine(day, tod)
                if window_start <= candidate < window_end:
                    timestamps.append(candidate)
        return timestamps
