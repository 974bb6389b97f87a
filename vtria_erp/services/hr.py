"""
HR Services
Departments, employees, geofenced attendance and leave management
"""
import logging
from datetime import date, datetime, time
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import desc, extract, or_
from sqlalchemy.orm import Session

from vtria_erp.core.config import settings
from vtria_erp.core.exceptions import (
    AccessDeniedError, BusinessLogicError, InsufficientPermissionsError, NotFoundError, ValidationError
)
from vtria_erp.models.hr import (
    AttendanceRecord, Department, Employee, LeaveApplication, LeaveBalance, LeaveType
)
from vtria_erp.models.user import User
from vtria_erp.services.audit import AuditService
from vtria_erp.services.document_numbers import DocumentNumberService
from vtria_erp.services.location_access import LocationAccessService

logger = logging.getLogger(__name__)

EMPLOYEE_FIELDS = (
    "first_name", "last_name", "email", "phone", "department_id", "designation",
    "employee_type", "date_of_joining", "status", "reporting_manager_id"
)
EMPLOYEE_STATUSES = ("active", "inactive", "terminated")
ATTENDANCE_ACTIONS = ("check_in", "check_out")
LEAVE_ACTIONS = ("approve", "reject")
ACTIVE_LEAVE_STATUSES = ("pending", "approved")


def parse_clock(value: str) -> time:
    hours, minutes = value.split(":")
    return time(int(hours), int(minutes))


def count_leave_days(start_date: date, end_date: date, is_half_day: bool = False) -> Decimal:
    """Inclusive calendar days, or half a day for a single-day half-day leave"""
    if end_date < start_date:
        raise ValidationError("End date must not be before start date")
    if is_half_day:
        if start_date != end_date:
            raise ValidationError("A half-day leave must start and end on the same day")
        return Decimal("0.5")
    return Decimal((end_date - start_date).days + 1)


class DepartmentService:
    """Service for departments"""

    def __init__(self, db: Session):
        self.db = db

    def list_departments(self, active_only: bool = True) -> List[Department]:
        query = self.db.query(Department)
        if active_only:
            query = query.filter(Department.is_active.is_(True))
        return query.order_by(Department.name).all()

    def get_department(self, department_id: int) -> Department:
        department = self.db.query(Department).filter(Department.id == department_id).first()
        if not department:
            raise NotFoundError(f"Department {department_id} not found")
        return department

    def create_department(self, data: Dict[str, Any]) -> Department:
        if not data.get("name"):
            raise ValidationError("Department name is required")
        if self.db.query(Department).filter(Department.name == data["name"]).first():
            raise ValidationError(f"Department '{data['name']}' already exists")
        department = Department(
            name=data["name"], code=data.get("code"), description=data.get("description"),
            head_employee_id=data.get("head_employee_id"),
        )
        self.db.add(department)
        self.db.commit()
        self.db.refresh(department)
        return department

    def update_department(self, department_id: int, data: Dict[str, Any]) -> Department:
        department = self.get_department(department_id)
        name = data.get("name")
        if name and name != department.name and \
                self.db.query(Department).filter(Department.name == name).first():
            raise ValidationError(f"Department '{name}' already exists")
        for field in ("name", "code", "description", "head_employee_id", "is_active"):
            if data.get(field) is not None:
                setattr(department, field, data[field])
        self.db.commit()
        self.db.refresh(department)
        return department


class EmployeeService:
    """Service for the employee master"""

    def __init__(self, db: Session):
        self.db = db
        self.audit = AuditService(db)
        self.numbers = DocumentNumberService(db)

    def get_employee(self, employee_id: int) -> Employee:
        employee = self.db.query(Employee).filter(Employee.id == employee_id).first()
        if not employee:
            raise NotFoundError(f"Employee {employee_id} not found")
        return employee

    def list_employees(
        self,
        department_id: Optional[int] = None,
        status: Optional[str] = None,
        search: Optional[str] = None,
        page: int = 1,
        limit: int = 20,
    ) -> Tuple[List[Employee], int]:
        query = self.db.query(Employee)
        if department_id:
            query = query.filter(Employee.department_id == department_id)
        if status:
            query = query.filter(Employee.status == status)
        if search:
            term = f"%{search}%"
            query = query.filter(or_(
                Employee.first_name.ilike(term),
                Employee.last_name.ilike(term),
                Employee.email.ilike(term),
                Employee.employee_code.ilike(term),
            ))
        total = query.count()
        items = query.order_by(Employee.employee_code).offset((page - 1) * limit).limit(limit).all()
        return items, total

    def _check(self, values: Dict[str, Any], employee: Optional[Employee] = None):
        email = values.get("email")
        if email:
            existing = self.db.query(Employee).filter(Employee.email == email).first()
            if existing and (employee is None or existing.id != employee.id):
                raise ValidationError(f"Employee email {email} already exists")
        if values.get("department_id"):
            DepartmentService(self.db).get_department(values["department_id"])
        if values.get("reporting_manager_id"):
            if employee is not None and values["reporting_manager_id"] == employee.id:
                raise ValidationError("An employee cannot report to themselves")
            self.get_employee(values["reporting_manager_id"])
        if values.get("status") and values["status"] not in EMPLOYEE_STATUSES:
            raise ValidationError(f"Status must be one of: {', '.join(EMPLOYEE_STATUSES)}")

    def create_employee(self, data: Dict[str, Any], user: Optional[User] = None) -> Employee:
        values = {k: v for k, v in data.items() if k in EMPLOYEE_FIELDS and v is not None}
        for required in ("first_name", "last_name", "email"):
            if not values.get(required):
                raise ValidationError(f"{required} is required")
        self._check(values)
        values.setdefault("status", "active")

        employee = Employee(employee_code=self.numbers.next_employee_code(), **values)
        self.db.add(employee)
        self.db.flush()

        LeaveService(self.db).initialize_balances(employee.id, date.today().year, commit=False)
        self.audit.log_audit(
            "employees", employee.id, "CREATE",
            new_values={"employee_code": employee.employee_code, **values}, user=user
        )
        self.db.commit()
        self.db.refresh(employee)
        logger.info(f"Employee {employee.employee_code} created")
        return employee

    def update_employee(self, employee_id: int, data: Dict[str, Any], user: Optional[User] = None) -> Employee:
        employee = self.get_employee(employee_id)
        values = {k: v for k, v in data.items() if k in EMPLOYEE_FIELDS and v is not None}
        self._check(values, employee)

        old_values = {k: getattr(employee, k) for k in values}
        for field, value in values.items():
            setattr(employee, field, value)
        self.audit.log_audit("employees", employee.id, "UPDATE", old_values=old_values, new_values=values, user=user)
        self.db.commit()
        self.db.refresh(employee)
        return employee

    def delete_employee(self, employee_id: int, user: Optional[User] = None) -> Employee:
        employee = self.get_employee(employee_id)
        old_status = employee.status
        employee.status = "inactive"
        self.audit.log_audit(
            "employees", employee.id, "DELETE",
            old_values={"status": old_status}, new_values={"status": "inactive"}, user=user
        )
        self.db.commit()
        return employee


class AttendanceService:
    """Service for geofenced check-in and check-out"""

    def __init__(self, db: Session):
        self.db = db
        self.locations = LocationAccessService(db)

    def record_attendance(
        self,
        employee_id: int,
        action: str,
        latitude: float,
        longitude: float,
        notes: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> AttendanceRecord:
        if action not in ATTENDANCE_ACTIONS:
            raise ValidationError("Action must be 'check_in' or 'check_out'")
        employee = self.db.query(Employee).filter(Employee.id == employee_id).first()
        if not employee:
            raise NotFoundError(f"Employee {employee_id} not found")
        if employee.status != "active":
            raise BusinessLogicError(f"Employee {employee.employee_code} is {employee.status}")

        now = now or datetime.now()
        validation = self.locations.validate_location(
            employee_id, latitude, longitude, purpose="attendance", today=now.date()
        )
        if not validation["is_valid"]:
            raise AccessDeniedError(validation["message"], details=validation)

        nearest = validation["valid_locations"][0] if validation["valid_locations"] else None
        record = self.db.query(AttendanceRecord).filter(
            AttendanceRecord.employee_id == employee_id,
            AttendanceRecord.attendance_date == now.date()
        ).first()

        if action == "check_in":
            if record and record.check_in_time:
                raise BusinessLogicError("Already checked in today")
            start = datetime.combine(now.date(), parse_clock(settings.WORK_START_TIME))
            minutes_after_start = int((now - start).total_seconds() // 60)
            is_late = minutes_after_start > settings.LATE_GRACE_MINUTES

            record = AttendanceRecord(
                employee_id=employee_id,
                attendance_date=now.date(),
                check_in_time=now,
                check_in_location_id=nearest["location_id"] if nearest else None,
                check_in_latitude=latitude,
                check_in_longitude=longitude,
                check_in_distance_meters=nearest["distance_meters"] if nearest else None,
                is_late=is_late,
                late_minutes=minutes_after_start if is_late else 0,
                validation_status=validation["validation_status"],
                attendance_status="present",
                notes=notes,
            )
            self.db.add(record)
        else:
            if not record or not record.check_in_time:
                raise BusinessLogicError("Cannot check out without checking in")
            if record.check_out_time:
                raise BusinessLogicError("Already checked out today")

            end = datetime.combine(now.date(), parse_clock(settings.WORK_END_TIME))
            minutes_before_end = int((end - now).total_seconds() // 60)
            record.check_out_time = now
            record.check_out_location_id = nearest["location_id"] if nearest else None
            record.check_out_latitude = latitude
            record.check_out_longitude = longitude
            record.check_out_distance_meters = nearest["distance_meters"] if nearest else None
            record.total_hours = round((now - record.check_in_time).total_seconds() / 3600, 2)
            record.is_early_departure = minutes_before_end > 0
            record.early_departure_minutes = max(minutes_before_end, 0)
            if notes:
                record.notes = f"{record.notes}\n{notes}" if record.notes else notes

        self.db.commit()
        self.db.refresh(record)
        logger.info(f"Attendance {action} for employee {employee.employee_code} ({validation['validation_status']})")
        return record

    def get_attendance(
        self,
        employee_id: Optional[int] = None,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        page: int = 1,
        limit: int = 50,
    ) -> Tuple[List[AttendanceRecord], int]:
        query = self.db.query(AttendanceRecord)
        if employee_id:
            query = query.filter(AttendanceRecord.employee_id == employee_id)
        if date_from:
            query = query.filter(AttendanceRecord.attendance_date >= date_from)
        if date_to:
            query = query.filter(AttendanceRecord.attendance_date <= date_to)
        total = query.count()
        items = query.order_by(desc(AttendanceRecord.attendance_date), desc(AttendanceRecord.id)) \
            .offset((page - 1) * limit).limit(limit).all()
        return items, total

    def attendance_summary(self, employee_id: int, year: int, month: int) -> Dict[str, Any]:
        records = self.db.query(AttendanceRecord).filter(
            AttendanceRecord.employee_id == employee_id,
            extract("year", AttendanceRecord.attendance_date) == year,
            extract("month", AttendanceRecord.attendance_date) == month
        ).all()
        hours = [float(r.total_hours) for r in records if r.total_hours is not None]
        return {
            "employee_id": employee_id,
            "year": year,
            "month": month,
            "days_present": len(records),
            "late_days": sum(1 for r in records if r.is_late),
            "early_departures": sum(1 for r in records if r.is_early_departure),
            "total_hours": round(sum(hours), 2),
            "average_hours": round(sum(hours) / len(hours), 2) if hours else 0.0,
        }


class LeaveService:
    """Service for leave balances and applications"""

    def __init__(self, db: Session):
        self.db = db
        self.numbers = DocumentNumberService(db)

    def list_leave_types(self) -> List[LeaveType]:
        return self.db.query(LeaveType).filter(LeaveType.is_active.is_(True)).order_by(LeaveType.code).all()

    def initialize_balances(self, employee_id: int, year: int, commit: bool = True) -> List[LeaveBalance]:
        """Ensure one balance row per active leave type for the year"""
        existing = {
            b.leave_type_id: b for b in self.db.query(LeaveBalance).filter(
                LeaveBalance.employee_id == employee_id, LeaveBalance.year == year
            ).all()
        }
        for leave_type in self.list_leave_types():
            if leave_type.id not in existing:
                balance = LeaveBalance(
                    employee_id=employee_id,
                    leave_type_id=leave_type.id,
                    year=year,
                    entitled_days=leave_type.annual_entitlement,
                    used_days=Decimal("0"),
                    pending_days=Decimal("0"),
                )
                self.db.add(balance)
                existing[leave_type.id] = balance
        self.db.flush()
        if commit:
            self.db.commit()
        return list(existing.values())

    def get_balances(self, employee_id: int, year: Optional[int] = None) -> List[LeaveBalance]:
        year = year or date.today().year
        self.initialize_balances(employee_id, year)
        return self.db.query(LeaveBalance).filter(
            LeaveBalance.employee_id == employee_id, LeaveBalance.year == year
        ).order_by(LeaveBalance.leave_type_id).all()

    def _balance(self, employee_id: int, leave_type_id: int, year: int) -> LeaveBalance:
        balance = self.db.query(LeaveBalance).filter(
            LeaveBalance.employee_id == employee_id,
            LeaveBalance.leave_type_id == leave_type_id,
            LeaveBalance.year == year
        ).first()
        if balance is None:
            self.initialize_balances(employee_id, year, commit=False)
            balance = self.db.query(LeaveBalance).filter(
                LeaveBalance.employee_id == employee_id,
                LeaveBalance.leave_type_id == leave_type_id,
                LeaveBalance.year == year
            ).first()
        return balance

    def get_application(self, application_id: int) -> LeaveApplication:
        application = self.db.query(LeaveApplication).filter(LeaveApplication.id == application_id).first()
        if not application:
            raise NotFoundError(f"Leave application {application_id} not found")
        return application

    def list_applications(
        self, employee_id: Optional[int] = None, status: Optional[str] = None, page: int = 1, limit: int = 20
    ) -> Tuple[List[LeaveApplication], int]:
        query = self.db.query(LeaveApplication)
        if employee_id:
            query = query.filter(LeaveApplication.employee_id == employee_id)
        if status:
            query = query.filter(LeaveApplication.status == status)
        total = query.count()
        items = query.order_by(desc(LeaveApplication.created_at), desc(LeaveApplication.id)) \
            .offset((page - 1) * limit).limit(limit).all()
        return items, total

    def apply_leave(
        self,
        employee_id: int,
        leave_type_id: int,
        start_date: date,
        end_date: date,
        is_half_day: bool = False,
        reason: Optional[str] = None,
    ) -> LeaveApplication:
        if not self.db.query(Employee).filter(Employee.id == employee_id).first():
            raise NotFoundError(f"Employee {employee_id} not found")
        leave_type = self.db.query(LeaveType).filter(
            LeaveType.id == leave_type_id, LeaveType.is_active.is_(True)
        ).first()
        if not leave_type:
            raise NotFoundError(f"Leave type {leave_type_id} not found")

        total_days = count_leave_days(start_date, end_date, is_half_day)
        # Balances are kept per calendar year
        if start_date.year != end_date.year:
            raise ValidationError(
                "Leave cannot span calendar years; apply separately for each year",
                details={"start_date": start_date.isoformat(), "end_date": end_date.isoformat()}
            )

        overlapping = self.db.query(LeaveApplication).filter(
            LeaveApplication.employee_id == employee_id,
            LeaveApplication.status.in_(ACTIVE_LEAVE_STATUSES),
            LeaveApplication.start_date <= end_date,
            LeaveApplication.end_date >= start_date
        ).first()
        if overlapping:
            raise BusinessLogicError(
                f"Leave overlaps application {overlapping.application_number} ({overlapping.status})"
            )

        balance = self._balance(employee_id, leave_type.id, start_date.year)
        if leave_type.is_paid and Decimal(str(balance.available_days)) < total_days:
            raise BusinessLogicError(
                "Insufficient leave balance",
                details={"available_days": float(balance.available_days), "requested_days": float(total_days)}
            )

        application = LeaveApplication(
            application_number=self.numbers.next_leave_number(start_date),
            employee_id=employee_id,
            leave_type_id=leave_type.id,
            start_date=start_date,
            end_date=end_date,
            is_half_day=is_half_day,
            total_days=total_days,
            reason=reason,
            status="pending",
        )
        self.db.add(application)
        balance.pending_days = Decimal(str(balance.pending_days)) + total_days

        self.db.commit()
        self.db.refresh(application)
        logger.info(f"Leave {application.application_number} applied for employee {employee_id}: {total_days} days")
        return application

    def process_leave(
        self, application_id: int, action: str, approver: User, comments: Optional[str] = None
    ) -> LeaveApplication:
        if action not in LEAVE_ACTIONS:
            raise ValidationError("Action must be 'approve' or 'reject'")
        application = self.get_application(application_id)
        if application.status != "pending":
            raise BusinessLogicError(f"Leave application is already {application.status}")

        balance = self._balance(application.employee_id, application.leave_type_id, application.start_date.year)
        days = Decimal(str(application.total_days))
        balance.pending_days = Decimal(str(balance.pending_days)) - days
        if action == "approve":
            balance.used_days = Decimal(str(balance.used_days)) + days
            application.status = "approved"
        else:
            application.status = "rejected"

        application.approved_by = approver.id
        application.processed_at = datetime.utcnow()
        application.approver_comments = comments
        self.db.commit()
        self.db.refresh(application)
        return application

    def cancel_leave(self, application_id: int, employee_id: int) -> LeaveApplication:
        application = self.get_application(application_id)
        if application.employee_id != employee_id:
            raise InsufficientPermissionsError("Only the applicant can cancel a leave application")
        if application.status != "pending":
            raise BusinessLogicError("Only pending leave applications can be cancelled")

        balance = self._balance(application.employee_id, application.leave_type_id, application.start_date.year)
        balance.pending_days = Decimal(str(balance.pending_days)) - Decimal(str(application.total_days))
        application.status = "cancelled"
        self.db.commit()
        self.db.refresh(application)
        return application
