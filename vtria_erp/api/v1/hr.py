"""
HR API endpoints
Departments, employees, geofenced attendance and leave
"""
from datetime import date
from typing import Optional
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from vtria_erp.api.deps import get_current_active_user, get_db, get_pagination_params, require_module
from vtria_erp.core.responses import paginated_response, success_response
from vtria_erp.models.user import User
from vtria_erp.schemas.hr import (
    AttendanceRequest, AttendanceResponse, DepartmentCreate, DepartmentResponse, DepartmentUpdate,
    EmployeeCreate, EmployeeResponse, EmployeeUpdate, LeaveApplicationResponse, LeaveApply,
    LeaveBalanceResponse, LeaveCancel, LeaveProcess, LeaveTypeResponse
)
from vtria_erp.services.hr import AttendanceService, DepartmentService, EmployeeService, LeaveService

router = APIRouter()

hr_access = require_module("hr")


# Departments

@router.get("/departments")
async def list_departments(
    active_only: bool = Query(True),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user)
):
    departments = DepartmentService(db).list_departments(active_only)
    return success_response(data=[DepartmentResponse.model_validate(d) for d in departments])


@router.post("/departments", status_code=status.HTTP_201_CREATED)
async def create_department(
    body: DepartmentCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(hr_access)
):
    department = DepartmentService(db).create_department(body.model_dump())
    return success_response(data=DepartmentResponse.model_validate(department), message="Department created")


@router.put("/departments/{department_id}")
async def update_department(
    department_id: int,
    body: DepartmentUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(hr_access)
):
    department = DepartmentService(db).update_department(department_id, body.model_dump(exclude_unset=True))
    return success_response(data=DepartmentResponse.model_validate(department), message="Department updated")


# Employees

@router.get("/employees")
async def list_employees(
    department_id: Optional[int] = Query(None),
    status_filter: Optional[str] = Query(None, alias="status"),
    search: Optional[str] = Query(None),
    pagination: dict = Depends(get_pagination_params),
    db: Session = Depends(get_db),
    current_user: User = Depends(hr_access)
):
    rows, total = EmployeeService(db).list_employees(
        department_id=department_id, status=status_filter, search=search,
        page=pagination["page"], limit=pagination["limit"]
    )
    return paginated_response(
        [EmployeeResponse.model_validate(r) for r in rows], pagination["page"], pagination["limit"], total
    )


@router.post("/employees", status_code=status.HTTP_201_CREATED)
async def create_employee(
    body: EmployeeCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(hr_access)
):
    """Create an employee; the employee code is generated and leave balances opened"""
    employee = EmployeeService(db).create_employee(body.model_dump(), current_user)
    return success_response(data=EmployeeResponse.model_validate(employee), message="Employee created")


@router.get("/employees/{employee_id}")
async def get_employee(
    employee_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(hr_access)
):
    employee = EmployeeService(db).get_employee(employee_id)
    return success_response(data=EmployeeResponse.model_validate(employee))


@router.put("/employees/{employee_id}")
async def update_employee(
    employee_id: int,
    body: EmployeeUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(hr_access)
):
    employee = EmployeeService(db).update_employee(employee_id, body.model_dump(exclude_unset=True), current_user)
    return success_response(data=EmployeeResponse.model_validate(employee), message="Employee updated")


@router.delete("/employees/{employee_id}")
async def delete_employee(
    employee_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(hr_access)
):
    EmployeeService(db).delete_employee(employee_id, current_user)
    return success_response(message="Employee deactivated")


# Attendance

@router.post("/attendance/check-in", status_code=status.HTTP_201_CREATED)
async def check_in(
    body: AttendanceRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user)
):
    record = AttendanceService(db).record_attendance(
        body.employee_id, "check_in", body.latitude, body.longitude, notes=body.notes
    )
    return success_response(data=AttendanceResponse.model_validate(record), message="Checked in")


@router.post("/attendance/check-out")
async def check_out(
    body: AttendanceRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user)
):
    record = AttendanceService(db).record_attendance(
        body.employee_id, "check_out", body.latitude, body.longitude, notes=body.notes
    )
    return success_response(data=AttendanceResponse.model_validate(record), message="Checked out")


@router.get("/attendance")
async def list_attendance(
    employee_id: Optional[int] = Query(None),
    date_from: Optional[date] = Query(None),
    date_to: Optional[date] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=100),
    db: Session = Depends(get_db),
    current_user: User = Depends(hr_access)
):
    rows, total = AttendanceService(db).get_attendance(
        employee_id=employee_id, date_from=date_from, date_to=date_to, page=page, limit=limit
    )
    return paginated_response([AttendanceResponse.model_validate(r) for r in rows], page, limit, total)


@router.get("/attendance/summary/{employee_id}")
async def attendance_summary(
    employee_id: int,
    year: int = Query(..., ge=2000, le=2100),
    month: int = Query(..., ge=1, le=12),
    db: Session = Depends(get_db),
    current_user: User = Depends(hr_access)
):
    return success_response(data=AttendanceService(db).attendance_summary(employee_id, year, month))


# Leave

@router.get("/leave/types")
async def list_leave_types(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user)
):
    types = LeaveService(db).list_leave_types()
    return success_response(data=[LeaveTypeResponse.model_validate(t) for t in types])


@router.get("/leave/balances/{employee_id}")
async def leave_balances(
    employee_id: int,
    year: Optional[int] = Query(None, ge=2000, le=2100),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user)
):
    balances = LeaveService(db).get_balances(employee_id, year)
    return success_response(data=[LeaveBalanceResponse.model_validate(b) for b in balances])


@router.get("/leave/applications")
async def list_leave_applications(
    employee_id: Optional[int] = Query(None),
    status_filter: Optional[str] = Query(None, alias="status"),
    pagination: dict = Depends(get_pagination_params),
    db: Session = Depends(get_db),
    current_user: User = Depends(hr_access)
):
    rows, total = LeaveService(db).list_applications(
        employee_id=employee_id, status=status_filter, page=pagination["page"], limit=pagination["limit"]
    )
    return paginated_response(
        [LeaveApplicationResponse.model_validate(r) for r in rows], pagination["page"], pagination["limit"], total
    )


@router.post("/leave/applications", status_code=status.HTTP_201_CREATED)
async def apply_leave(
    body: LeaveApply,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user)
):
    application = LeaveService(db).apply_leave(
        body.employee_id, body.leave_type_id, body.start_date, body.end_date,
        is_half_day=body.is_half_day, reason=body.reason
    )
    return success_response(
        data=LeaveApplicationResponse.model_validate(application), message="Leave application submitted"
    )


@router.get("/leave/applications/{application_id}")
async def get_leave_application(
    application_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user)
):
    application = LeaveService(db).get_application(application_id)
    return success_response(data=LeaveApplicationResponse.model_validate(application))


@router.put("/leave/applications/{application_id}/process")
async def process_leave(
    application_id: int,
    body: LeaveProcess,
    db: Session = Depends(get_db),
    current_user: User = Depends(hr_access)
):
    application = LeaveService(db).process_leave(application_id, body.action, current_user, body.comments)
    return success_response(
        data=LeaveApplicationResponse.model_validate(application), message=f"Leave {application.status}"
    )


@router.put("/leave/applications/{application_id}/cancel")
async def cancel_leave(
    application_id: int,
    body: LeaveCancel,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user)
):
    application = LeaveService(db).cancel_leave(application_id, body.employee_id)
    return success_response(data=LeaveApplicationResponse.model_validate(application), message="Leave cancelled")
