"""Attendance sheets: one row per (employee, date), summarised per day and per month."""
from __future__ import annotations

from datetime import date
from typing import Any, Optional

from dateutil.relativedelta import relativedelta
from loguru import logger
from sqlalchemy import case, delete
from sqlmodel import Session, col, func, select

from ricemill.core.errors import NotFoundError, ValidationError
from ricemill.models.common import LifecycleStatus, utcnow
from ricemill.models.hr import Attendance, Employee

ATTENDANCE_STATUSES = ("present", "absent", "leave")


def _counts():
    """present/absent/leave counters for a grouped attendance query."""
    return (
        func.count(func.distinct(Attendance.employee_id)).label("total_employee"),
        func.coalesce(func.sum(case((Attendance.status == "present", 1), else_=0)), 0).label("total_present"),
        func.coalesce(func.sum(case((Attendance.status == "absent", 1), else_=0)), 0).label("total_absent"),
        func.coalesce(func.sum(case((Attendance.status == "leave", 1), else_=0)), 0).label("total_leave"),
        func.coalesce(func.sum(Attendance.overtime_hours), 0.0).label("total_overtime"),
    )


def month_bounds(year: int, month: int) -> tuple[date, date]:
    if not 1 <= month <= 12:
        raise ValidationError("Month must be between 1 and 12")
    first = date(year, month, 1)
    return first, first + relativedelta(months=1, days=-1)


def record_attendance(
    session: Session,
    day: date,
    rows: list[dict[str, Any]],
    description: Optional[str] = None,
) -> dict[str, Any]:
    """Insert or update each employee's row for ``day``; returns the day's summary."""
    if not rows:
        raise ValidationError("At least one employee row is required")

    seen: set[int] = set()
    for row in rows:
        employee_id = row.get("employee_id")
        if employee_id in seen:
            raise ValidationError(f"Employee {employee_id} appears twice for {day}")
        seen.add(employee_id)

        status = row.get("status") or "present"
        if status not in ATTENDANCE_STATUSES:
            raise ValidationError(f"Invalid attendance status: {status}")
        employee = session.get(Employee, employee_id)
        if employee is None:
            raise NotFoundError(f"Employee {employee_id} not found")
        if employee.status != LifecycleStatus.ACTIVE.value:
            raise ValidationError(f"Employee {employee_id} is inactive")

        record = session.exec(
            select(Attendance).where(Attendance.employee_id == employee_id, Attendance.date == day)
        ).first()
        if record is None:
            record = Attendance(employee_id=employee_id, date=day)
        record.status = status
        record.check_in = row.get("check_in")
        record.check_out = row.get("check_out")
        record.overtime_hours = row.get("overtime_hours") or 0.0
        record.notes = row.get("notes") or description
        record.updated_at = utcnow()
        session.add(record)

    session.flush()
    logger.info(f"Recorded attendance for {len(rows)} employee(s) on {day}")
    return attendance_for_date(session, day)


def attendance_for_date(session: Session, day: date) -> dict[str, Any]:
    summary = session.exec(
        select(*_counts()).where(Attendance.date == day)
    ).one()
    if not summary.total_employee:
        raise NotFoundError(f"No attendance recorded for {day}")

    employees = session.exec(
        select(Attendance, Employee.name)
        .join(Employee, Attendance.employee_id == Employee.id)
        .where(Attendance.date == day)
        .order_by(Employee.name)
    ).all()
    return {
        "date": day,
        **summary._asdict(),
        "employees": [
            {
                "employee_id": a.employee_id,
                "employee_name": name,
                "status": a.status,
                "check_in": a.check_in,
                "check_out": a.check_out,
                "overtime_hours": a.overtime_hours,
                "notes": a.notes,
            }
            for a, name in employees
        ],
    }


def attendance_summary(
    session: Session,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    page: int = 1,
    page_size: int = 25,
) -> tuple[list[dict[str, Any]], int]:
    """Per-day counts, newest first, paged by day."""
    stmt = select(Attendance.date, *_counts()).group_by(Attendance.date)
    if date_from:
        stmt = stmt.where(Attendance.date >= date_from)
    if date_to:
        stmt = stmt.where(Attendance.date <= date_to)

    total = session.exec(select(func.count()).select_from(stmt.subquery())).one()
    rows = session.exec(
        stmt.order_by(col(Attendance.date).desc()).offset((page - 1) * page_size).limit(page_size)
    ).all()
    return [r._asdict() for r in rows], total


def employee_attendance(session: Session, employee_id: int, limit: int = 10) -> list[Attendance]:
    if session.get(Employee, employee_id) is None:
        raise NotFoundError(f"Employee {employee_id} not found")
    return list(
        session.exec(
            select(Attendance)
            .where(Attendance.employee_id == employee_id)
            .order_by(col(Attendance.date).desc())
            .limit(limit)
        ).all()
    )


def monthly_attendance(session: Session, year: int, month: int) -> dict[str, Any]:
    """Month totals plus one line per employee with day counts and overtime."""
    first, last = month_bounds(year, month)
    in_month = (Attendance.date >= first, Attendance.date <= last)

    totals = session.exec(select(*_counts()).where(*in_month)).one()
    per_employee = session.exec(
        select(Attendance.employee_id, Employee.name, *_counts()[1:])
        .join(Employee, Attendance.employee_id == Employee.id)
        .where(*in_month)
        .group_by(Attendance.employee_id, Employee.name)
        .order_by(Employee.name)
    ).all()
    return {
        "year": year,
        "month": month,
        "working_days": session.exec(
            select(func.count(func.distinct(Attendance.date))).where(*in_month)
        ).one(),
        **totals._asdict(),
        "employees": [
            {
                "employee_id": r.employee_id,
                "employee_name": r.name,
                "total_present": r.total_present,
                "total_absent": r.total_absent,
                "total_leave": r.total_leave,
                "total_overtime": r.total_overtime,
            }
            for r in per_employee
        ],
    }


def delete_attendance(session: Session, dates: list[date]) -> int:
    if not dates:
        raise ValidationError("Please provide the dates to delete")
    result = session.execute(delete(Attendance).where(col(Attendance.date).in_(dates)))
    logger.info(f"Deleted {result.rowcount} attendance row(s) for {len(dates)} date(s)")
    return result.rowcount
