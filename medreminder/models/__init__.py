from .medication import MedicationRecord, MedicationScheduleRecord, MedicationReminderRecord  # noqa: F401
