"""
Status transition table tests.
"""

import pytest

from certflow.services import lifecycle_service
from certflow.services.lifecycle_service import (
    TRANSITIONS,
    allowed_next_statuses,
    is_terminal,
    is_valid_transition,
    status_label,
    validate_status,
)
from certflow.validation import ValidationError


class TestRequestTable:

    @pytest.mark.parametrize(
        "current,new",
        [
            ("pending", "assigned"),
            ("pending", "approved"),
            ("pending", "rejected"),
            ("assigned", "in_review"),
            ("in_review", "needs_revision"),
            ("needs_revision", "pending"),
            ("rejected", "pending"),
        ],
    )
    def test_legal_edges(self, current, new):
        assert is_valid_transition("request", current, new) is True

    @pytest.mark.parametrize(
        "current,new",
        [
            ("approved", "pending"),
            ("approved", "rejected"),
            ("rejected", "approved"),
            ("pending", "in_review"),
        ],
    )
    def test_illegal_edges(self, current, new):
        assert is_valid_transition("request", current, new) is False

    def test_approved_is_terminal(self):
        assert is_terminal("request", "approved")
        assert allowed_next_statuses("request", "approved") == ()


class TestRequisitionAndInvoiceTables:

    def test_requisition_draft_goes_to_pending(self):
        assert is_valid_transition("requisition", "draft", "pending")

    def test_requisition_cannot_skip_approval(self):
        assert not is_valid_transition("requisition", "pending", "fulfilled")

    def test_fulfilled_and_cancelled_are_terminal(self):
        assert is_terminal("requisition", "fulfilled")
        assert is_terminal("requisition", "cancelled")

    def test_invoice_paid_is_terminal(self):
        assert is_terminal("invoice", "paid")

    def test_partially_paid_invoice_cannot_be_cancelled(self):
        assert not is_valid_transition("invoice", "partially_paid", "cancelled")


class TestRules:

    @pytest.mark.parametrize("kind", list(TRANSITIONS))
    def test_same_status_is_never_legal(self, kind):
        for status in TRANSITIONS[kind]:
            assert is_valid_transition(kind, status, status) is False

    @pytest.mark.parametrize(
        "kind,current,new",
        [
            (kind, current, new)
            for kind, table in TRANSITIONS.items()
            for current in table
            for new in table
        ],
    )
    def test_validity_matches_table_for_every_pair(self, kind, current, new):
        expected = new != current and new in TRANSITIONS[kind][current]
        assert is_valid_transition(kind, current, new) is expected

    def test_every_target_is_a_known_status(self):
        for kind, table in TRANSITIONS.items():
            for targets in table.values():
                for target in targets:
                    assert target in table, f"{kind}: {target}"

    def test_initial_statuses_exist(self):
        for kind, status in lifecycle_service.INITIAL_STATUS.items():
            validate_status(kind, status)

    def test_unknown_status_is_input_error(self):
        with pytest.raises(ValidationError):
            is_valid_transition("request", "pending", "archived")

    def test_unknown_kind_is_input_error(self):
        with pytest.raises(ValidationError):
            validate_status("expense", "pending")

    def test_status_labels(self):
        assert status_label("in_review") == "In Review"
        assert status_label("partially_paid") == "Partially Paid"
