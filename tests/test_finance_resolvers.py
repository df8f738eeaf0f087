# tests/test_finance_resolvers.py
from __future__ import annotations

import uuid

import pytest

from expense_desk.errors import ExpenseError
from expense_desk.models.expense import ExpenseStatus
from expense_desk.services.finance_expenses import (
    can_correct_in_process_view,
    parse_finance_filters,
    parse_finance_update_payload,
    resolve_finance_status_transition,
    resolve_finance_validation_transition,
)

DRAFT, SUBMITTED, RECEIVED = ExpenseStatus.DRAFT, ExpenseStatus.SUBMITTED, ExpenseStatus.RECEIVED


def test_draft_is_never_editable_by_finance():
    for requested in (None, RECEIVED, SUBMITTED):
        with pytest.raises(ExpenseError) as exc:
            resolve_finance_status_transition(DRAFT, requested)
        assert exc.value.code == "finance_edit_not_allowed"
        assert exc.value.status_code == 409


@pytest.mark.parametrize("current", [SUBMITTED, RECEIVED])
def test_field_only_correction_keeps_status(current):
    result = resolve_finance_status_transition(current, None)
    assert result.status == current
    assert result.stamp_received_at is False


def test_submitted_to_received_stamps():
    result = resolve_finance_status_transition(SUBMITTED, RECEIVED)
    assert result.status == RECEIVED
    assert result.stamp_received_at is True


def test_received_to_received_keeps_existing_stamp():
    result = resolve_finance_status_transition(RECEIVED, RECEIVED)
    assert result.status == RECEIVED
    assert result.stamp_received_at is False


@pytest.mark.parametrize("current,requested", [(SUBMITTED, SUBMITTED), (RECEIVED, SUBMITTED), (SUBMITTED, DRAFT)])
def test_other_requests_are_invalid_transitions(current, requested):
    with pytest.raises(ExpenseError) as exc:
        resolve_finance_status_transition(current, requested)
    assert exc.value.code == "invalid_status_transition"


def test_validation_resolver():
    with pytest.raises(ExpenseError) as exc:
        resolve_finance_validation_transition(DRAFT)
    assert exc.value.code == "invalid_status_transition"
    assert exc.value.status_code == 409

    assert resolve_finance_validation_transition(SUBMITTED).stamp_received_at is True
    assert resolve_finance_validation_transition(RECEIVED).stamp_received_at is False


def test_resolvers_accept_plain_strings():
    assert resolve_finance_status_transition("submitted", "received").status == RECEIVED


def test_process_view_correction_is_submitted_only():
    assert can_correct_in_process_view(SUBMITTED)
    assert not can_correct_in_process_view(RECEIVED)
    assert not can_correct_in_process_view(DRAFT)


# ---- filters / payload -----------------------------------------------------------

def test_filters_default_to_submitted():
    filters = parse_finance_filters()
    assert filters.status == "submitted"
    assert filters.department_id is None and filters.project_id is None


def test_filters_normalize_and_parse_ids():
    dep = uuid.uuid4()
    filters = parse_finance_filters(" ALL ", str(dep), "")
    assert filters.status == "all"
    assert filters.department_id == dep
    assert filters.project_id is None


def test_filters_reject_unknown_status_and_bad_ids():
    with pytest.raises(ExpenseError) as exc:
        parse_finance_filters("approved")
    assert exc.value.code == "invalid_status_filter"

    with pytest.raises(ExpenseError) as exc:
        parse_finance_filters("all", "not-a-uuid")
    assert exc.value.code == "invalid_filter_identifier"
    assert exc.value.status_code == 400


def test_update_payload_splits_fields_and_status():
    fields, requested = parse_finance_update_payload({"amount": "10", "comment": None, "status": "Received"})
    assert fields == {"amount": "10", "comment": None}
    assert requested == RECEIVED

    fields, requested = parse_finance_update_payload({"category": "Travel"})
    assert requested is None


def test_update_payload_only_allows_received_status():
    with pytest.raises(ExpenseError) as exc:
        parse_finance_update_payload({"status": "draft"})
    assert exc.value.code == "invalid_status_transition"
    assert exc.value.status_code == 400
