"""
Medication schedule variants and the values the scheduling engine passes around
"""
from datetime import date, datetime, time, timedelta
from typing import Optional, Tuple, FrozenSet, Dict, Any, Union, ClassVar, Iterable
from enum import Enum
from dataclasses import dataclass, field

from .errors import ScheduleDefinitionError


class ScheduleType(Enum):
    """Types of medication schedules"""
    DAILY = "daily"
    WEEKLY = "weekly"
    INTERVAL = "interval"
    AS_NEEDED = "as_needed"
    CUSTOM_ALARMS = "custom_alarms"


class Weekday(Enum):
    """Days of the week"""
    MONDAY = 0
    TUESDAY = 1
    WEDNESDAY = 2
    THURSDAY = 3
    FRIDAY = 4
    SATURDAY = 5
    SUNDAY = 6


TIME_FORMAT = "%H:%M"


def parse_time_of_day(value: Union[str, time]) -> time:
    """Parse 'HH:MM' or 'HH:MM:SS' into a time"""
    if isinstance(value, time):
        return value
    return time.fromisoformat(str(value).strip())


def _format_time(value: time) -> str:
    if value.second or value.microsecond:
        return value.isoformat()
    return value.strftime(TIME_FORMAT)


def _normalize_times(values: Iterable[Union[str, time]]) -> Tuple[time, ...]:
    return tuple(sorted({parse_time_of_day(v) for v in values}))


def _normalize_days(values: Optional[Iterable[Union[int, Weekday]]]) -> FrozenSet[Weekday]:
    if not values:
        return frozenset()
    return frozenset(v if isinstance(v, Weekday) else Weekday(int(v)) for v in values)


@dataclass(frozen=True)
class Medication:
    """The slice of a medication the scheduler reads"""
    id: int
    name: str
    start_date: date
    dosage: Optional[str] = None
    end_date: Optional[date] = None  # inclusive through the end of that day


@dataclass(frozen=True)
class _TimesOfDaySchedule:
    id: int
    medication_id: int
    specific_times: Tuple[time, ...]
    days_of_week: FrozenSet[Weekday] = frozenset()

    schedule_type: ClassVar[ScheduleType]
    is_interval: ClassVar[bool] = False

    def __post_init__(self):
        object.__setattr__(self, "specific_times", _normalize_times(self.specific_times))
        object.__setattr__(self, "days_of_week", _normalize_days(self.days_of_week))
        if not self.specific_times:
            raise ScheduleDefinitionError(
                f"{self.schedule_type.name} schedule {self.id} needs at least one time of day"
            )

    def allows(self, day: date) -> bool:
        """Empty weekday set means every day"""
        return not self.days_of_week or Weekday(day.weekday()) in self.days_of_week

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "medication_id": self.medication_id,
            "type": self.schedule_type.value,
            "specific_times": [_format_time(t) for t in self.specific_times],
            "days_of_week": sorted(d.value for d in self.days_of_week),
        }


@dataclass(frozen=True)
class DailySchedule(_TimesOfDaySchedule):
    """Fixed times every day, optionally restricted to some weekdays"""
    schedule_type: ClassVar[ScheduleType] = ScheduleType.DAILY


@dataclass(frozen=True)
class CustomAlarmsSchedule(_TimesOfDaySchedule):
    """Several user-picked alarm times per day"""
    schedule_type: ClassVar[ScheduleType] = ScheduleType.CUSTOM_ALARMS


@dataclass(frozen=True)
class WeeklySchedule(_TimesOfDaySchedule):
    """Fixed times on specific weekdays"""
    schedule_type: ClassVar[ScheduleType] = ScheduleType.WEEKLY

    def __post_init__(self):
        super().__post_init__()
        if not self.days_of_week:
            raise ScheduleDefinitionError(f"WEEKLY schedule {self.id} needs at least one weekday")


@dataclass(frozen=True)
class _IntervalSchedule:
    id: int
    medication_id: int
    interval_hours: int = 0
    interval_minutes: int = 0

    schedule_type: ClassVar[ScheduleType] = ScheduleType.INTERVAL
    is_interval: ClassVar[bool] = True

    @property
    def interval(self) -> timedelta:
        return timedelta(hours=self.interval_hours, minutes=self.interval_minutes)

    def _base_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "medication_id": self.medication_id,
            "type": self.schedule_type.value,
            "interval_hours": self.interval_hours,
            "interval_minutes": self.interval_minutes,
        }


@dataclass(frozen=True)
class ContinuousIntervalSchedule(_IntervalSchedule):
    """Every N hours/minutes around the clock.

    The sequence is anchored at the medication start date plus ``anchor_time``
    until a dose is taken, then at the last taken dose.
    """
    anchor_time: time = time(0, 0)

    def to_dict(self) -> Dict[str, Any]:
        base = self._base_dict()
        base["interval_start_time"] = _format_time(self.anchor_time)
        base["interval_end_time"] = None
        return base


@dataclass(frozen=True)
class BoundedIntervalSchedule(_IntervalSchedule):
    """Every N hours/minutes inside a daily window, restarting at ``start_time`` each day"""
    start_time: time = time(0, 0)
    end_time: time = time(23, 59)

    def to_dict(self) -> Dict[str, Any]:
        base = self._base_dict()
        base["interval_start_time"] = _format_time(self.start_time)
        base["interval_end_time"] = _format_time(self.end_time)
        return base


@dataclass(frozen=True)
class AsNeededSchedule:
    """Taken on demand, never reminded"""
    id: int
    medication_id: int

    schedule_type: ClassVar[ScheduleType] = ScheduleType.AS_NEEDED
    is_interval: ClassVar[bool] = False

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "medication_id": self.medication_id, "type": self.schedule_type.value}


MedicationSchedule = Union[
    DailySchedule,
    CustomAlarmsSchedule,
    WeeklySchedule,
    ContinuousIntervalSchedule,
    BoundedIntervalSchedule,
    AsNeededSchedule,
]


def schedule_from_dict(data: Dict[str, Any]) -> MedicationSchedule:
    """Build the schedule variant for a stored/serialized schedule.

    INTERVAL rows without an end time are continuous; their start time (if any)
    is the nominal start-of-day anchor. Rows with an end time are bounded, with
    the window starting at 00:00 when no start time is given.
    """
    schedule_type = ScheduleType(data["type"])
    sid = data["id"]
    mid = data["medication_id"]

    if schedule_type == ScheduleType.AS_NEEDED:
        return AsNeededSchedule(id=sid, medication_id=mid)

    if schedule_type == ScheduleType.INTERVAL:
        hours = int(data.get("interval_hours") or 0)
        minutes = int(data.get("interval_minutes") or 0)
        start_raw = data.get("interval_start_time")
        end_raw = data.get("interval_end_time")
        start = parse_time_of_day(start_raw) if start_raw else None
        if end_raw:
            return BoundedIntervalSchedule(
                id=sid,
                medication_id=mid,
                interval_hours=hours,
                interval_minutes=minutes,
                start_time=start or time(0, 0),
                end_time=parse_time_of_day(end_raw),
            )
        return ContinuousIntervalSchedule(
            id=sid,
            medication_id=mid,
            interval_hours=hours,
            interval_minutes=minutes,
            anchor_time=start or time(0, 0),
        )

    cls = {
        ScheduleType.DAILY: DailySchedule,
        ScheduleType.CUSTOM_ALARMS: CustomAlarmsSchedule,
        ScheduleType.WEEKLY: WeeklySchedule,
    }[schedule_type]
    return cls(
        id=sid,
        medication_id=mid,
        specific_times=tuple(data.get("specific_times") or ()),
        days_of_week=frozenset(data.get("days_of_week") or ()),
    )


@dataclass(frozen=True, order=True)
class Occurrence:
    """A computed, not yet persisted reminder timestamp"""
    timestamp: datetime
    schedule_id: int
    is_interval: bool = field(default=False, compare=False)


@dataclass
class MedicationReminder:
    """A persisted reminder as the scheduler sees it"""
    medication_id: int
    schedule_id: Optional[int]
    reminder_time: datetime
    id: Optional[int] = None
    is_taken: bool = False
    taken_at: Optional[datetime] = None
    notification_id: Optional[str] = None
