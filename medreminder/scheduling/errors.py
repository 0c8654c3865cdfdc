class SchedulingError(Exception):
    """Base error for the scheduling engine"""


class ScheduleDefinitionError(SchedulingError, ValueError):
    """A schedule variant was built with fields that cannot describe a schedule"""


class RunLockTimeout(SchedulingError):
    """The per-medication run lock could not be acquired in time"""

    def __init__(self, medication_id: int, timeout_seconds: float):
        self.medication_id = medication_id
        self.timeout_seconds = timeout_seconds
        super().__init__(
            f"Could not acquire scheduling lock for medication {medication_id} "
            f"within {timeout_seconds}s"
        )
