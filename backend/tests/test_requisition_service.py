"""
Requisition service tests.
"""

import pytest

from certflow.models import Requisition
from certflow.services import requisition_service
from certflow.services.workflow_service import ILLEGAL_TRANSITION, PERMISSION_DENIED
from certflow.validation import ValidationError


@pytest.fixture
def draft(requester):
    return requisition_service.create_requisition({
        "title": "Test devices",
        "justification": "Android coverage",
        "department": "QA",
        "currency": "usd",
        "items": [
            {"name": "Pixel 8", "quantity": 2, "estimated_unit_cost_cents": 45_000},
            {"name": "USB hub", "quantity": 1, "estimated_unit_cost_cents": 2_500},
        ],
    }, requester)


class TestCreate:

    def test_draft_with_total(self, db_session, draft):
        assert draft.status == "draft"
        assert draft.currency == "USD"
        assert draft.estimated_total_cents == 2 * 45_000 + 2_500
        assert len(draft.items) == 2

    @pytest.mark.parametrize(
        "items",
        [
            None,
            [],
            [{"name": "", "quantity": 1}],
            [{"name": "Cable", "quantity": 0}],
            [{"name": "Cable", "quantity": 1, "estimated_unit_cost_cents": -5}],
        ],
    )
    def test_invalid_items(self, db_session, requester, items):
        with pytest.raises(ValidationError):
            requisition_service.create_requisition({"title": "Bad", "items": items}, requester)

    def test_unsupported_currency(self, db_session, requester):
        with pytest.raises(ValidationError):
            requisition_service.create_requisition({
                "title": "Bad",
                "currency": "XYZ",
                "items": [{"name": "Cable", "quantity": 1}],
            }, requester)


class TestLifecycle:

    def test_full_approval_path(self, db_session, requester, manager, hr_admin, draft):
        _, result = requisition_service.transition_requisition(draft.id, "pending", requester)
        assert result.allowed

        _, result = requisition_service.transition_requisition(draft.id, "approved", manager)
        assert result.allowed

        _, result = requisition_service.transition_requisition(draft.id, "partially_fulfilled", hr_admin)
        assert result.allowed

        req, result = requisition_service.transition_requisition(draft.id, "fulfilled", hr_admin)
        assert result.allowed
        assert req.status == "fulfilled"

        statuses = [h["status"] for h in requisition_service.requisition_history(draft.id)]
        assert statuses == ["draft", "pending", "approved", "partially_fulfilled", "fulfilled"]

    def test_only_requester_submits(self, db_session, manager, draft):
        _, result = requisition_service.transition_requisition(draft.id, "pending", manager)
        assert result.denial == PERMISSION_DENIED

    def test_requester_cannot_approve(self, db_session, requester, draft):
        requisition_service.transition_requisition(draft.id, "pending", requester)
        _, result = requisition_service.transition_requisition(draft.id, "approved", requester)
        assert result.denial == PERMISSION_DENIED
        assert db_session.get(Requisition, draft.id).status == "pending"

    def test_reject_and_resubmit(self, db_session, requester, manager, draft):
        requisition_service.transition_requisition(draft.id, "pending", requester)

        with pytest.raises(ValidationError):
            requisition_service.transition_requisition(draft.id, "rejected", manager)

        req, _ = requisition_service.transition_requisition(
            draft.id, "rejected", manager, reason="Over budget",
        )
        assert req.rejection_reason == "Over budget"

        req, result = requisition_service.transition_requisition(draft.id, "pending", requester)
        assert result.allowed
        assert req.rejection_reason is None

    def test_requester_cancels(self, db_session, requester, draft):
        req, result = requisition_service.transition_requisition(draft.id, "cancelled", requester)
        assert result.allowed
        assert req.status == "cancelled"

    def test_cannot_cancel_after_approval(self, db_session, requester, manager, draft):
        requisition_service.transition_requisition(draft.id, "pending", requester)
        requisition_service.transition_requisition(draft.id, "approved", manager)

        _, result = requisition_service.transition_requisition(draft.id, "cancelled", requester)
        assert result.denial == ILLEGAL_TRANSITION


class TestVisibility:

    def test_own_vs_all(self, db_session, requester, other_requester, manager, draft):
        assert requisition_service.list_requisitions(other_requester, {"requisitions:read_own"}) == []
        assert [r.id for r in requisition_service.list_requisitions(manager, {"requisitions:read_all"})] == [draft.id]
        assert requisition_service.can_view(draft, requester, {"requisitions:read_own"})
