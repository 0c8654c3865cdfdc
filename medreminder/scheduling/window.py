from dataclasses import dataclass
from datetime import datetime, time, timedelta
from typing import Optional

from .schedule_models import Medication


DEFAULT_HORIZON = timedelta(hours=48)


@dataclass(frozen=True)
class GenerationWindow:
    """Half-open [start, end) range of timestamps to materialize"""
    start: datetime
    end: datetime

    @property
    def is_empty(self) -> bool:
        return self.start >= self.end

    def contains(self, ts: datetime) -> bool:
        return self.start <= ts < self.end


class ScheduleWindowPolicy:
    """Clamps generation to the medication's active dates and a rolling horizon"""

    def __init__(self, horizon: Optional[timedelta] = None):
        self.horizon = horizon if horizon is not None else DEFAULT_HORIZON

    def resolve_window(self, medication: Medication, now: datetime) -> GenerationWindow:
        start = max(now, datetime.combine(medication.start_date, time.min))
        end = now + self.horizon
        if medication.end_date is not None:
            # end_date is inclusive, so the bound is midnight after it
            end_of_course = datetime.combine(medication.end_date + timedelta(days=1), time.min)
            end = min(end, end_of_course)
        return GenerationWindow(start=start, end=end)
