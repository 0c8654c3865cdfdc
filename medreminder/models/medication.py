"""
Storage tables for medications, their schedules and materialized reminders
"""
from datetime import datetime
from sqlalchemy import Column, Integer, String, Date, DateTime, Boolean, ForeignKey, Index, JSON
from sqlalchemy.orm import relationship

from medreminder.db.base import Base


class MedicationRecord(Base):
    """Medication as owned by the medication CRUD side"""
    __tablename__ = "medications"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    dosage = Column(String, nullable=True)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=True)  # inclusive

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    schedules = relationship(
        "MedicationScheduleRecord",
        back_populates="medication",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    reminders = relationship(
        "MedicationReminderRecord",
        back_populates="medication",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )


class MedicationScheduleRecord(Base):
    """One dosing schedule; type tag plus the columns of its variant"""
    __tablename__ = "medication_schedules"

    id = Column(Integer, primary_key=True, index=True)
    medication_id = Column(Integer, ForeignKey("medications.id", ondelete="CASCADE"), nullable=False, index=True)
    schedule_type = Column(String, nullable=False)  # daily, weekly, interval, as_needed, custom_alarms

    # daily / weekly / custom_alarms
    specific_times = Column(JSON, nullable=True)  # ["08:00", "20:00"]
    days_of_week = Column(JSON, nullable=True)  # [0, 2, 4] with 0=Monday

    # interval
    interval_hours = Column(Integer, nullable=True)
    interval_minutes = Column(Integer, nullable=True)
    interval_start_time = Column(String, nullable=True)  # "HH:MM"
    interval_end_time = Column(String, nullable=True)  # "HH:MM"

    medication = relationship("MedicationRecord", back_populates="schedules")

    def to_schedule_dict(self) -> dict:
        return {
            "id": self.id,
            "medication_id": self.medication_id,
            "type": self.schedule_type,
            "specific_times": self.specific_times,
            "days_of_week": self.days_of_week,
            "interval_hours": self.interval_hours,
            "interval_minutes": self.interval_minutes,
            "interval_start_time": self.interval_start_time,
            "interval_end_time": self.interval_end_time,
        }


class MedicationReminderRecord(Base):
    """A materialized dose reminder"""
    __tablename__ = "medication_reminders"

    id = Column(Integer, primary_key=True, index=True)
    medication_id = Column(Integer, ForeignKey("medications.id", ondelete="CASCADE"), nullable=False)
    schedule_id = Column(
        Integer, ForeignKey("medication_schedules.id", ondelete="CASCADE"), nullable=True
    )
    # ISO local date-time text, e.g. "2024-03-10T08:00:00"
    reminder_time = Column(String(32), nullable=False)
    is_taken = Column(Boolean, nullable=False, default=False)
    taken_at = Column(String(32), nullable=True)
    notification_id = Column(String, nullable=True)  # alarm handle

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    medication = relationship("MedicationRecord", back_populates="reminders")

    __table_args__ = (
        Index("ix_medication_reminders_med_taken", "medication_id", "is_taken"),
        Index("ix_medication_reminders_schedule_time", "schedule_id", "reminder_time"),
        # Ids name armed alarms, so a deleted id must never come back
        {"sqlite_autoincrement": True},
    )
