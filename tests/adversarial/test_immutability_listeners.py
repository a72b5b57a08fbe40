"""
Attempts to rewrite history through the ORM.

Status log and activity entries are append-only; a received or cancelled
request is frozen.  Every attempt must fail at flush, before SQL is sent.
"""

import pytest
from sqlalchemy import select

from replenishment_kernel.db.immutability import (
    register_immutability_listeners,
    unregister_immutability_listeners,
)
from replenishment_kernel.exceptions import ImmutabilityViolationError
from replenishment_kernel.models.activity import ActivityLogEntry
from replenishment_kernel.models.request import ReplenishmentRequest, StatusLogEntry
from tests.conftest import CLIENT_ID


def _first_log_entry(session, request_id):
    return session.execute(
        select(StatusLogEntry).where(StatusLogEntry.request_id == request_id)
    ).scalars().first()


class TestStatusLog:
    def test_update_blocked(self, session, make_request, captured_logs):
        info = make_request()
        entry = _first_log_entry(session, info.id)
        entry.notes = "rewritten"
        with pytest.raises(ImmutabilityViolationError) as exc_info:
            session.flush()
        assert exc_info.value.entity_type == "StatusLogEntry"
        assert any(r["message"] == "immutability_violation_blocked" for r in captured_logs())

    def test_to_status_rewrite_blocked(self, session, make_request):
        info = make_request()
        entry = _first_log_entry(session, info.id)
        entry.to_status = "received"
        with pytest.raises(ImmutabilityViolationError):
            session.flush()

    def test_delete_blocked(self, session, make_request):
        info = make_request()
        session.delete(_first_log_entry(session, info.id))
        with pytest.raises(ImmutabilityViolationError):
            session.flush()


class TestActivityLog:
    def test_update_blocked(self, session, make_request):
        make_request()
        entry = session.execute(select(ActivityLogEntry)).scalars().first()
        entry.action = "replenishment.received"
        with pytest.raises(ImmutabilityViolationError):
            session.flush()

    def test_delete_blocked(self, session, make_request):
        make_request()
        session.delete(session.execute(select(ActivityLogEntry)).scalars().first())
        with pytest.raises(ImmutabilityViolationError):
            session.flush()


class TestTerminalRequest:
    @pytest.mark.parametrize("path", [["cancelled"], ["processing", "in_transit", "received"]])
    def test_terminal_request_frozen(self, session, transition_service, make_request, path):
        info = make_request()
        for status in path:
            transition_service.advance_status(CLIENT_ID, info.id, status)

        request = session.get(ReplenishmentRequest, info.id, populate_existing=True)
        request.notes = "edited after the fact"
        with pytest.raises(ImmutabilityViolationError) as exc_info:
            session.flush()
        assert path[-1] in str(exc_info.value)

    def test_status_cannot_be_reopened(self, session, transition_service, make_request):
        info = make_request()
        transition_service.advance_status(CLIENT_ID, info.id, "cancelled")
        request = session.get(ReplenishmentRequest, info.id, populate_existing=True)
        request.status = "requested"
        with pytest.raises(ImmutabilityViolationError):
            session.flush()

    def test_active_request_still_editable(self, session, make_request):
        info = make_request()
        request = session.get(ReplenishmentRequest, info.id)
        request.notes = "call before delivery"
        session.flush()
        assert request.notes == "call before delivery"


class TestListenerRegistration:
    def test_unregister_then_register(self, session, make_request):
        info = make_request()
        unregister_immutability_listeners()
        try:
            entry = _first_log_entry(session, info.id)
            entry.notes = "repair"
            session.flush()
        finally:
            register_immutability_listeners()

        entry.notes = "again"
        with pytest.raises(ImmutabilityViolationError):
            session.flush()
