"""
Tests for employees, attendance and leave management
"""

import pytest
from datetime import date, datetime
from decimal import Decimal

from vtria_erp.core.exceptions import (
    AccessDeniedError, BusinessLogicError, InsufficientPermissionsError, ValidationError
)
from vtria_erp.models.hr import LeaveBalance, LeaveType
from vtria_erp.services.hr import (
    AttendanceService, DepartmentService, EmployeeService, LeaveService, count_leave_days
)
from vtria_erp.services.location_access import LocationAccessService


def leave_type(db_session, code):
    return db_session.query(LeaveType).filter(LeaveType.code == code).one()


def balance(db_session, employee, code, year=2030):
    return db_session.query(LeaveBalance).filter(
        LeaveBalance.employee_id == employee.id,
        LeaveBalance.leave_type_id == leave_type(db_session, code).id,
        LeaveBalance.year == year
    ).one()


class TestLeaveDayCount:
    """Inclusive day counting"""

    def test_single_day(self):
        assert count_leave_days(date(2030, 6, 3), date(2030, 6, 3)) == Decimal("1")

    def test_range_is_inclusive(self):
        assert count_leave_days(date(2030, 6, 3), date(2030, 6, 7)) == Decimal("5")

    def test_half_day(self):
        assert count_leave_days(date(2030, 6, 3), date(2030, 6, 3), is_half_day=True) == Decimal("0.5")

    def test_half_day_spanning_days_rejected(self):
        with pytest.raises(ValidationError):
            count_leave_days(date(2030, 6, 3), date(2030, 6, 4), is_half_day=True)

    def test_end_before_start_rejected(self):
        with pytest.raises(ValidationError):
            count_leave_days(date(2030, 6, 4), date(2030, 6, 3))


class TestEmployees:
    """Employee master"""

    def test_codes_and_balances_on_create(self, db_session, employee):
        assert employee.employee_code == "EMP/0001"
        assert employee.status == "active"
        balances = LeaveService(db_session).get_balances(employee.id)
        assert sorted(b.leave_type.code for b in balances) == ["CL", "EL", "LOP", "SL"]

    def test_duplicate_email_rejected(self, db_session, employee):
        with pytest.raises(ValidationError):
            EmployeeService(db_session).create_employee(
                {"first_name": "Other", "last_name": "Person", "email": employee.email}
            )

    def test_cannot_report_to_self(self, db_session, employee):
        with pytest.raises(ValidationError):
            EmployeeService(db_session).update_employee(employee.id, {"reporting_manager_id": employee.id})

    def test_delete_deactivates(self, db_session, employee, director):
        EmployeeService(db_session).delete_employee(employee.id, director)
        db_session.refresh(employee)
        assert employee.status == "inactive"

    def test_department_names_unique(self, db_session):
        departments = DepartmentService(db_session)
        departments.create_department({"name": "Design", "code": "DES"})
        with pytest.raises(ValidationError):
            departments.create_department({"name": "Design"})


class TestLeaveApplications:
    """Applying for, approving and cancelling leave"""

    def test_apply_reserves_pending_days(self, db_session, employee):
        application = LeaveService(db_session).apply_leave(
            employee.id, leave_type(db_session, "CL").id, date(2030, 6, 3), date(2030, 6, 5), reason="Family"
        )

        assert application.application_number == "LA/2030/0001"
        assert application.status == "pending"
        assert Decimal(str(application.total_days)) == Decimal("3")
        cl = balance(db_session, employee, "CL")
        assert Decimal(str(cl.pending_days)) == Decimal("3")
        assert Decimal(str(cl.available_days)) == Decimal("9")

    def test_insufficient_balance(self, db_session, employee):
        with pytest.raises(BusinessLogicError) as exc_info:
            LeaveService(db_session).apply_leave(
                employee.id, leave_type(db_session, "CL").id, date(2030, 6, 1), date(2030, 6, 20)
            )
        assert exc_info.value.message == "Insufficient leave balance"
        assert exc_info.value.details == {"available_days": 12.0, "requested_days": 20.0}

    def test_unpaid_leave_skips_balance_check(self, db_session, employee):
        application = LeaveService(db_session).apply_leave(
            employee.id, leave_type(db_session, "LOP").id, date(2030, 7, 1), date(2030, 7, 30)
        )
        assert application.status == "pending"

    def test_leave_across_new_year_rejected(self, db_session, employee):
        with pytest.raises(ValidationError):
            LeaveService(db_session).apply_leave(
                employee.id, leave_type(db_session, "CL").id, date(2030, 12, 30), date(2031, 1, 2)
            )
        assert LeaveService(db_session).list_applications(employee_id=employee.id) == ([], 0)

    def test_overlapping_leave_rejected(self, db_session, employee):
        service = LeaveService(db_session)
        service.apply_leave(employee.id, leave_type(db_session, "CL").id, date(2030, 6, 3), date(2030, 6, 5))
        with pytest.raises(BusinessLogicError):
            service.apply_leave(employee.id, leave_type(db_session, "SL").id, date(2030, 6, 5), date(2030, 6, 6))

    def test_approve_moves_pending_to_used(self, db_session, employee, admin):
        service = LeaveService(db_session)
        application = service.apply_leave(
            employee.id, leave_type(db_session, "EL").id, date(2030, 6, 3), date(2030, 6, 4)
        )

        approved = service.process_leave(application.id, "approve", admin, comments="Enjoy")

        el = balance(db_session, employee, "EL")
        assert approved.status == "approved"
        assert approved.approved_by == admin.id
        assert Decimal(str(el.pending_days)) == 0
        assert Decimal(str(el.used_days)) == 2
        assert Decimal(str(el.available_days)) == 13

    def test_reject_releases_pending_days(self, db_session, employee, admin):
        service = LeaveService(db_session)
        application = service.apply_leave(
            employee.id, leave_type(db_session, "SL").id, date(2030, 6, 3), date(2030, 6, 3), is_half_day=True
        )

        service.process_leave(application.id, "reject", admin)

        sl = balance(db_session, employee, "SL")
        assert Decimal(str(sl.pending_days)) == 0
        assert Decimal(str(sl.used_days)) == 0

    def test_cannot_process_twice(self, db_session, employee, admin):
        service = LeaveService(db_session)
        application = service.apply_leave(
            employee.id, leave_type(db_session, "CL").id, date(2030, 6, 3), date(2030, 6, 3)
        )
        service.process_leave(application.id, "approve", admin)
        with pytest.raises(BusinessLogicError):
            service.process_leave(application.id, "reject", admin)

    def test_cancel_by_applicant_only(self, db_session, employee):
        service = LeaveService(db_session)
        application = service.apply_leave(
            employee.id, leave_type(db_session, "CL").id, date(2030, 6, 3), date(2030, 6, 4)
        )

        with pytest.raises(InsufficientPermissionsError):
            service.cancel_leave(application.id, employee.id + 100)

        cancelled = service.cancel_leave(application.id, employee.id)
        assert cancelled.status == "cancelled"
        assert Decimal(str(balance(db_session, employee, "CL").pending_days)) == 0

    def test_cancelled_leave_frees_the_dates(self, db_session, employee):
        service = LeaveService(db_session)
        cl = leave_type(db_session, "CL").id
        application = service.apply_leave(employee.id, cl, date(2030, 6, 3), date(2030, 6, 4))
        service.cancel_leave(application.id, employee.id)

        again = service.apply_leave(employee.id, cl, date(2030, 6, 3), date(2030, 6, 4))
        assert again.status == "pending"


class TestAttendance:
    """Geofenced check-in and check-out"""

    @pytest.fixture
    def permitted(self, db_session, employee, office):
        LocationAccessService(db_session).grant_permission(
            {"employee_id": employee.id, "location_id": office.id, "permission_type": "attendance"}
        )
        return employee

    def test_late_check_in_and_early_check_out(self, db_session, permitted, office):
        service = AttendanceService(db_session)

        record = service.record_attendance(
            permitted.id, "check_in", 19.0761, 72.8777, now=datetime(2030, 6, 3, 9, 30)
        )
        assert record.is_late is True
        assert record.late_minutes == 30
        assert record.check_in_location_id == office.id
        assert record.validation_status == "valid"

        record = service.record_attendance(
            permitted.id, "check_out", 19.0761, 72.8777, now=datetime(2030, 6, 3, 17, 0)
        )
        assert float(record.total_hours) == 7.5
        assert record.is_early_departure is True
        assert record.early_departure_minutes == 60

    def test_on_time_within_grace(self, db_session, permitted):
        record = AttendanceService(db_session).record_attendance(
            permitted.id, "check_in", 19.0761, 72.8777, now=datetime(2030, 6, 3, 9, 10)
        )
        assert record.is_late is False
        assert record.late_minutes == 0

    def test_outside_geofence_denied(self, db_session, permitted):
        with pytest.raises(AccessDeniedError) as exc_info:
            AttendanceService(db_session).record_attendance(
                permitted.id, "check_in", 19.2, 72.9, now=datetime(2030, 6, 3, 9, 0)
            )
        assert exc_info.value.details["validation_status"] == "invalid"

    def test_double_check_in_rejected(self, db_session, permitted):
        service = AttendanceService(db_session)
        service.record_attendance(permitted.id, "check_in", 19.0761, 72.8777, now=datetime(2030, 6, 3, 9, 0))
        with pytest.raises(BusinessLogicError):
            service.record_attendance(permitted.id, "check_in", 19.0761, 72.8777, now=datetime(2030, 6, 3, 9, 5))

    def test_check_out_requires_check_in(self, db_session, permitted):
        with pytest.raises(BusinessLogicError):
            AttendanceService(db_session).record_attendance(
                permitted.id, "check_out", 19.0761, 72.8777, now=datetime(2030, 6, 3, 18, 0)
            )

    def test_monthly_summary(self, db_session, permitted):
        service = AttendanceService(db_session)
        service.record_attendance(permitted.id, "check_in", 19.0761, 72.8777, now=datetime(2030, 6, 3, 9, 30))
        service.record_attendance(permitted.id, "check_out", 19.0761, 72.8777, now=datetime(2030, 6, 3, 18, 30))

        summary = service.attendance_summary(permitted.id, 2030, 6)
        assert summary["days_present"] == 1
        assert summary["late_days"] == 1
        assert summary["early_departures"] == 0
        assert summary["total_hours"] == 9.0
