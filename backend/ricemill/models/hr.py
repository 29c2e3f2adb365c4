"""SQLModel models for HR data (employees, attendance)."""
from typing import Optional
import datetime as dt
from datetime import datetime
from sqlalchemy import UniqueConstraint
from sqlmodel import SQLModel, Field

from ricemill.models.common import LifecycleStatus, utcnow


class Employee(SQLModel, table=True):
    """
    Mill employee.

    ``balance`` accumulates salary owed but not yet paid by salary runs.
    """

    __tablename__ = "employees"

    id: Optional[int] = Field(default=None, primary_key=True)
    name: str = Field(index=True)
    email: Optional[str] = Field(default=None, index=True)
    phone: Optional[str] = None
    designation_id: Optional[int] = Field(default=None, foreign_key="designations.id", index=True)
    salary: float = Field(default=0.0)
    joining_date: Optional[dt.date] = None
    balance: float = Field(default=0.0)
    status: str = Field(default=LifecycleStatus.ACTIVE.value, index=True)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class Attendance(SQLModel, table=True):
    """One employee's attendance for one day."""

    __tablename__ = "attendance"
    __table_args__ = (UniqueConstraint("employee_id", "date", name="uq_attendance_employee_date"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    employee_id: int = Field(foreign_key="employees.id", index=True)
    date: dt.date = Field(index=True)
    status: str = Field(default="present")  # present | absent | leave
    check_in: Optional[str] = None   # "HH:MM"
    check_out: Optional[str] = None
    overtime_hours: float = Field(default=0.0)
    notes: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
