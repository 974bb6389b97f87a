"""
Tests for the Case Workflow Service
State transitions, sub-state steps, approval gating and closing side effects
"""

import pytest
from datetime import timedelta
from sqlalchemy.orm import Session

from vtria_erp.core.exceptions import (
    BusinessLogicError, InsufficientPermissionsError, InvalidStateTransitionError, ValidationError
)
from vtria_erp.models.case import CaseStateTransition
from vtria_erp.models.manufacturing import DeliveryNote, WorkOrder
from vtria_erp.models.sales import Estimation
from vtria_erp.services.case_workflow import (
    CASE_STATES, VALID_TRANSITIONS, CaseWorkflowService, is_valid_transition
)
from vtria_erp.services.document_numbers import current_financial_year


@pytest.fixture
def workflow(db_session: Session) -> CaseWorkflowService:
    return CaseWorkflowService(db_session)


@pytest.fixture
def new_case(workflow, sample_client, director):
    return workflow.create_case(
        {"client_id": sample_client.id, "project_name": "MCC Panel", "priority": "high"},
        director
    )


class TestTransitionTable:
    """The state transition table itself"""

    def test_closed_is_terminal(self):
        assert VALID_TRANSITIONS["closed"] == ()
        for state in CASE_STATES:
            assert not is_valid_transition("closed", state)

    def test_every_open_state_can_close(self):
        for state in CASE_STATES[:-1]:
            assert is_valid_transition(state, "closed")

    def test_states_cannot_be_skipped(self):
        assert is_valid_transition("enquiry", "estimation")
        assert not is_valid_transition("enquiry", "quotation")
        assert not is_valid_transition("estimation", "order")
        assert not is_valid_transition("delivery", "enquiry")

    def test_one_step_rollbacks_are_allowed(self):
        assert is_valid_transition("quotation", "estimation")
        assert is_valid_transition("production", "order")
        assert not is_valid_transition("production", "estimation")


class TestCaseCreation:
    """Opening new cases"""

    def test_create_case_enters_first_enquiry_step(self, new_case):
        assert new_case.current_state == "enquiry"
        assert new_case.current_sub_state == "received"
        assert new_case.status == "active"
        assert new_case.requires_approval is False
        assert new_case.case_number == f"VESPL/C/{current_financial_year()}/001"

    def test_sla_deadline_follows_step_definition(self, new_case):
        expected = new_case.state_entered_at + timedelta(hours=4)
        assert abs((new_case.expected_state_completion - expected).total_seconds()) < 1

    def test_creation_is_recorded(self, db_session, new_case):
        transitions = db_session.query(CaseStateTransition).filter(
            CaseStateTransition.case_id == new_case.id
        ).all()
        assert len(transitions) == 1
        assert transitions[0].from_state is None
        assert transitions[0].to_state == "enquiry"

    def test_create_case_requires_project_name(self, workflow, sample_client, director):
        with pytest.raises(ValidationError):
            workflow.create_case({"client_id": sample_client.id, "project_name": "  "}, director)

    def test_case_numbers_are_sequential(self, workflow, sample_client, director, new_case):
        second = workflow.create_case({"client_id": sample_client.id, "project_name": "Second"}, director)
        assert second.case_number.endswith("/002")


class TestStateTransitions:
    """Moving cases between states"""

    def test_invalid_transition_is_rejected(self, workflow, new_case, director):
        with pytest.raises(InvalidStateTransitionError) as exc_info:
            workflow.transition_case(new_case.id, "quotation", director)
        assert "Valid transitions: estimation, closed" in exc_info.value.message

    def test_unknown_state_is_rejected(self, workflow, new_case, director):
        with pytest.raises(ValidationError):
            workflow.transition_case(new_case.id, "invoiced", director)

    def test_entering_estimation_creates_draft_estimation(self, db_session, workflow, new_case, director):
        case = workflow.transition_case(new_case.id, "estimation", director)

        assert case.current_state == "estimation"
        assert case.current_sub_state == "assigned"
        estimations = db_session.query(Estimation).filter(Estimation.case_id == case.id).all()
        assert len(estimations) == 1
        assert estimations[0].status == "draft"
        assert len(estimations[0].sections) > 0

    def test_rollback_archives_documents(self, db_session, workflow, new_case, director):
        workflow.transition_case(new_case.id, "estimation", director)
        case = workflow.transition_case(new_case.id, "enquiry", director, reason="Client changed scope")

        assert case.current_state == "enquiry"
        estimation = db_session.query(Estimation).filter(Estimation.case_id == case.id).one()
        assert estimation.status == "archived"

    def test_reentering_estimation_creates_fresh_estimation(self, db_session, workflow, new_case, director):
        workflow.transition_case(new_case.id, "estimation", director)
        workflow.transition_case(new_case.id, "enquiry", director)
        workflow.transition_case(new_case.id, "estimation", director)

        statuses = sorted(e.status for e in db_session.query(Estimation).filter(Estimation.case_id == new_case.id))
        assert statuses == ["archived", "draft"]

    def test_close_sets_status_and_completes_work(self, db_session, workflow, new_case, director):
        db_session.add_all([
            WorkOrder(work_order_number="WO-T-1", case_id=new_case.id, title="Wiring", status="in_progress"),
            DeliveryNote(delivery_number="DC-T-1", case_id=new_case.id, status="dispatched"),
        ])
        db_session.commit()

        case = workflow.transition_case(new_case.id, "closed", director, notes="Job done")

        assert case.status == "closed"
        assert case.closed_at is not None
        assert case.current_sub_state == "completed"
        work_order = db_session.query(WorkOrder).filter(WorkOrder.case_id == case.id).one()
        note = db_session.query(DeliveryNote).filter(DeliveryNote.case_id == case.id).one()
        assert work_order.status == "completed"
        assert work_order.completed_at is not None
        assert note.status == "delivered"

    def test_closed_case_cannot_move(self, workflow, new_case, director):
        workflow.transition_case(new_case.id, "closed", director)
        with pytest.raises(InvalidStateTransitionError):
            workflow.transition_case(new_case.id, "enquiry", director)

    def test_cancel_requires_reason(self, workflow, new_case, director):
        with pytest.raises(ValidationError):
            workflow.cancel_case(new_case.id, director, "")

    def test_cancel_closes_case(self, workflow, new_case, director):
        case = workflow.cancel_case(new_case.id, director, "Client withdrew")
        assert case.current_state == "closed"
        assert case.status == "cancelled"
        assert case.cancellation_reason == "Client withdrew"


class TestSubStatesAndApproval:
    """Sub-state advancement and approval gating"""

    def _to_review(self, workflow, case, user):
        workflow.transition_case(case.id, "estimation", user)
        workflow.advance_sub_state(case.id, user)
        return workflow.advance_sub_state(case.id, user)

    def test_advance_moves_to_next_step(self, workflow, new_case, director):
        case = workflow.advance_sub_state(new_case.id, director, notes="Reviewing")
        assert case.current_state == "enquiry"
        assert case.current_sub_state == "under_review"

    def test_cannot_advance_past_last_step(self, workflow, new_case, director):
        workflow.advance_sub_state(new_case.id, director)
        workflow.advance_sub_state(new_case.id, director)
        with pytest.raises(BusinessLogicError):
            workflow.advance_sub_state(new_case.id, director)

    def test_review_step_requires_director_approval(self, workflow, new_case, director):
        case = self._to_review(workflow, new_case, director)
        assert case.current_sub_state == "review"
        assert case.requires_approval is True
        assert case.approval_pending_from == "director"

    def test_pending_approval_blocks_forward_moves(self, workflow, new_case, director):
        self._to_review(workflow, new_case, director)
        with pytest.raises(BusinessLogicError):
            workflow.transition_case(new_case.id, "quotation", director)
        with pytest.raises(BusinessLogicError):
            workflow.advance_sub_state(new_case.id, director)

    def test_pending_approval_does_not_block_rollback(self, workflow, new_case, director):
        self._to_review(workflow, new_case, director)
        case = workflow.transition_case(new_case.id, "enquiry", director)
        assert case.current_state == "enquiry"
        assert case.requires_approval is False

    def test_wrong_role_cannot_approve(self, workflow, new_case, director, admin):
        self._to_review(workflow, new_case, director)
        with pytest.raises(InsufficientPermissionsError):
            workflow.approve_workflow_step(new_case.id, admin)

    def test_approval_unblocks_transition(self, db_session, workflow, new_case, director):
        self._to_review(workflow, new_case, director)
        case = workflow.approve_workflow_step(new_case.id, director, notes="Costing looks right")
        assert case.requires_approval is False

        case = workflow.transition_case(new_case.id, "quotation", director)
        assert case.current_state == "quotation"
        approvals = db_session.query(CaseStateTransition).filter(
            CaseStateTransition.case_id == case.id,
            CaseStateTransition.transition_type == "approval"
        ).count()
        assert approvals == 1

    def test_approve_without_pending_approval_fails(self, workflow, new_case, director):
        with pytest.raises(BusinessLogicError):
            workflow.approve_workflow_step(new_case.id, director)

    def test_pending_approvals_listed_for_role(self, workflow, new_case, director, admin):
        self._to_review(workflow, new_case, director)
        assert [c.id for c in workflow.get_pending_approvals(director)] == [new_case.id]
        assert workflow.get_pending_approvals(admin) == []


class TestCaseQueries:
    """Workflow status, milestones and visibility"""

    def test_workflow_status(self, workflow, new_case, director):
        status = workflow.get_workflow_status(new_case.id, director)
        assert status["step_index"] == 1
        assert status["total_steps"] == 3
        assert status["next_sub_state"] == "under_review"
        assert status["valid_transitions"] == ["estimation", "closed"]
        assert status["sla_hours"] == 4

    def test_milestones(self, workflow, new_case, director):
        workflow.transition_case(new_case.id, "estimation", director)
        milestones = {m["state"]: m["status"] for m in workflow.get_milestones(new_case.id, director)}
        assert milestones["enquiry"] == "completed"
        assert milestones["estimation"] == "current"
        assert milestones["closed"] == "pending"

    def test_technician_sees_only_own_cases(self, workflow, new_case, technician):
        with pytest.raises(InsufficientPermissionsError):
            workflow.get_case(new_case.id, technician)
        items, total = workflow.list_cases_by_state("enquiry", technician)
        assert total == 0

    def test_assigned_technician_can_read_case(self, workflow, new_case, director, technician):
        workflow.update_case(new_case.id, {"assigned_to": technician.id}, director)
        assert workflow.get_case(new_case.id, technician).id == new_case.id

    def test_statistics(self, workflow, new_case, director):
        stats = workflow.get_statistics(director)
        assert stats["by_state"]["enquiry"] == 1
        assert stats["total"] == 1
        assert stats["active"] == 1


class TestCaseSearch:
    """Free-text search over case number, project and client"""

    def test_matches_client_company_name(self, workflow, new_case, director):
        results = workflow.search_cases("acme water", director)
        assert [c.id for c in results] == [new_case.id]

    def test_matches_project_and_case_number(self, workflow, new_case, director):
        assert [c.id for c in workflow.search_cases("mcc", director)] == [new_case.id]
        assert [c.id for c in workflow.search_cases(new_case.case_number, director)] == [new_case.id]

    def test_no_match(self, workflow, new_case, director):
        assert workflow.search_cases("transformer", director) == []

    def test_blank_term_rejected(self, workflow, director):
        with pytest.raises(ValidationError):
            workflow.search_cases("   ", director)

    def test_results_capped_at_fifty(self, workflow, sample_client, director):
        for n in range(51):
            workflow.create_case({"client_id": sample_client.id, "project_name": f"Panel {n}"}, director)

        assert len(workflow.search_cases("Acme", director)) == 50

    def test_technician_only_finds_own_cases(self, workflow, new_case, director, technician):
        assert workflow.search_cases("acme", technician) == []

        workflow.update_case(new_case.id, {"assigned_to": technician.id}, director)
        assert [c.id for c in workflow.search_cases("acme", technician)] == [new_case.id]
