"""
Case workflow API endpoints
Case lifecycle, sub-state steps, approvals and timelines
"""
from typing import Optional
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from vtria_erp.api.deps import get_current_active_user, get_db, get_pagination_params
from vtria_erp.core.responses import paginated_response, success_response
from vtria_erp.models.case import Case
from vtria_erp.models.user import User
from vtria_erp.schemas.case import (
    CaseCancelRequest, CaseCreate, CaseNotesRequest, CaseResponse, CaseTransitionRequest,
    CaseTransitionResponse, CaseUpdate, WorkflowDefinitionResponse
)
from vtria_erp.services.case_workflow import CaseWorkflowService

router = APIRouter()


def case_detail(case: Case) -> dict:
    data = CaseResponse.model_validate(case).model_dump()
    data["client_name"] = case.client.company_name if case.client else None
    data["assigned_to_name"] = case.assignee.full_name if case.assignee else None
    data["created_by_name"] = case.creator.full_name if case.creator else None
    data["transitions"] = [CaseTransitionResponse.model_validate(t) for t in case.transitions]
    return data


@router.get("/definitions")
async def workflow_definitions(
    state: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user)
):
    """Workflow sub-state definitions grouped by state"""
    grouped = CaseWorkflowService(db).get_workflow_definitions(state)
    return success_response(data={
        name: [WorkflowDefinitionResponse.model_validate(d) for d in steps]
        for name, steps in grouped.items()
    })


@router.get("/stats")
async def case_statistics(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user)
):
    return success_response(data=CaseWorkflowService(db).get_statistics(current_user))


@router.get("/search")
async def search_cases(
    q: str = Query(..., min_length=1),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user)
):
    cases = CaseWorkflowService(db).search_cases(q, current_user)
    return success_response(data=[CaseResponse.model_validate(c) for c in cases])


@router.get("/pending-approvals")
async def pending_approvals(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user)
):
    cases = CaseWorkflowService(db).get_pending_approvals(current_user)
    return success_response(data=[CaseResponse.model_validate(c) for c in cases])


@router.get("/state/{state}")
async def list_cases_by_state(
    state: str,
    pagination: dict = Depends(get_pagination_params),
    search: Optional[str] = Query(None),
    priority: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user)
):
    cases, total = CaseWorkflowService(db).list_cases_by_state(
        state, current_user, page=pagination["page"], limit=pagination["limit"],
        search=search, priority=priority
    )
    return paginated_response(
        [CaseResponse.model_validate(c) for c in cases], pagination["page"], pagination["limit"], total
    )


@router.get("/number/{case_number:path}")
async def get_case_by_number(
    case_number: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user)
):
    case = CaseWorkflowService(db).get_case_by_number(case_number, current_user)
    return success_response(data=case_detail(case))


@router.post("/", status_code=status.HTTP_201_CREATED)
async def create_case(
    case_data: CaseCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user)
):
    case = CaseWorkflowService(db).create_case(case_data.model_dump(), current_user)
    return success_response(data=CaseResponse.model_validate(case), message="Case created successfully")


@router.get("/{case_id}")
async def get_case(
    case_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user)
):
    case = CaseWorkflowService(db).get_case(case_id, current_user)
    return success_response(data=case_detail(case))


@router.put("/{case_id}")
async def update_case(
    case_id: int,
    case_data: CaseUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user)
):
    case = CaseWorkflowService(db).update_case(case_id, case_data.model_dump(exclude_unset=True), current_user)
    return success_response(data=CaseResponse.model_validate(case), message="Case updated successfully")


@router.post("/{case_id}/transition")
async def transition_case(
    case_id: int,
    transition: CaseTransitionRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user)
):
    case = CaseWorkflowService(db).transition_case(
        case_id, transition.to_state, current_user, notes=transition.notes, reason=transition.reason
    )
    return success_response(
        data=CaseResponse.model_validate(case),
        message=f"Case moved to {case.current_state}"
    )


@router.post("/{case_id}/advance")
async def advance_sub_state(
    case_id: int,
    body: Optional[CaseNotesRequest] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user)
):
    case = CaseWorkflowService(db).advance_sub_state(case_id, current_user, body.notes if body else None)
    return success_response(
        data=CaseResponse.model_validate(case),
        message=f"Case advanced to {case.current_sub_state}"
    )


@router.post("/{case_id}/approve")
async def approve_workflow_step(
    case_id: int,
    body: Optional[CaseNotesRequest] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user)
):
    case = CaseWorkflowService(db).approve_workflow_step(case_id, current_user, body.notes if body else None)
    return success_response(data=CaseResponse.model_validate(case), message="Workflow step approved")


@router.get("/{case_id}/timeline")
async def case_timeline(
    case_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user)
):
    return success_response(data=CaseWorkflowService(db).get_case_timeline(case_id, current_user))


@router.get("/{case_id}/workflow-status")
async def workflow_status(
    case_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user)
):
    return success_response(data=CaseWorkflowService(db).get_workflow_status(case_id, current_user))


@router.get("/{case_id}/milestones")
async def case_milestones(
    case_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user)
):
    return success_response(data=CaseWorkflowService(db).get_milestones(case_id, current_user))


@router.post("/{case_id}/cancel")
async def cancel_case(
    case_id: int,
    body: CaseCancelRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user)
):
    case = CaseWorkflowService(db).cancel_case(case_id, current_user, body.reason)
    return success_response(data=CaseResponse.model_validate(case), message="Case cancelled")


@router.delete("/{case_id}")
async def delete_case(
    case_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user)
):
    """Soft delete; directors and admins only"""
    CaseWorkflowService(db).delete_case(case_id, current_user)
    return success_response(message="Case deleted successfully")
