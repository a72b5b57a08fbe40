"""
Request status machine: the complete transition table.

Every (current, requested) pair of the five statuses is checked: the four
allowed edges pass with their side effects, the other 21 pairs (including
self-transitions and anything out of a terminal status) are denied.
"""

import pytest
from hypothesis import given
from hypothesis import strategies as st

from replenishment_kernel.domain.status import (
    ALLOWED_TRANSITIONS,
    TERMINAL_STATUSES,
    RequestStatus,
    SideEffect,
    allowed_next,
    decide_transition,
    validate_transition,
)
from replenishment_kernel.exceptions import InvalidTransitionError

S = RequestStatus

ALLOWED = {
    (S.REQUESTED, S.PROCESSING),
    (S.REQUESTED, S.CANCELLED),
    (S.PROCESSING, S.IN_TRANSIT),
    (S.PROCESSING, S.CANCELLED),
    (S.IN_TRANSIT, S.RECEIVED),
}

ALL_PAIRS = [(cur, nxt) for cur in RequestStatus for nxt in RequestStatus]


class TestTransitionTable:
    @pytest.mark.parametrize("current,requested", ALL_PAIRS, ids=lambda s: s.value)
    def test_every_pair(self, current, requested):
        decision = decide_transition(current, requested)
        assert decision.allowed == ((current, requested) in ALLOWED)

        if decision.allowed:
            assert validate_transition(current, requested) == decision
        else:
            with pytest.raises(InvalidTransitionError) as exc_info:
                validate_transition(current, requested)
            assert exc_info.value.current_status == current.value
            assert exc_info.value.requested_status == requested.value

    def test_table_covers_25_pairs(self):
        assert len(ALL_PAIRS) == 25
        assert sum(decide_transition(c, n).allowed for c, n in ALL_PAIRS) == 5

    def test_table_matches_allowed_map(self):
        derived = {(c, n) for c, nexts in ALLOWED_TRANSITIONS.items() for n in nexts}
        assert derived == ALLOWED

    @pytest.mark.parametrize("status", list(RequestStatus), ids=lambda s: s.value)
    def test_self_transition_rejected(self, status):
        decision = decide_transition(status, status)
        assert not decision.allowed

    @pytest.mark.parametrize("terminal", sorted(TERMINAL_STATUSES), ids=lambda s: s.value)
    def test_terminal_has_no_exits(self, terminal):
        assert allowed_next(terminal) == frozenset()
        for nxt in RequestStatus:
            assert not decide_transition(terminal, nxt).allowed


class TestSideEffects:
    def test_in_transit_decrements_dc_stock(self):
        decision = validate_transition(S.PROCESSING, S.IN_TRANSIT)
        assert decision.side_effects == (SideEffect.DECREMENT_DC_STOCK,)

    def test_received_stamps_reconciles_and_credits(self):
        decision = validate_transition(S.IN_TRANSIT, S.RECEIVED)
        assert set(decision.side_effects) == {
            SideEffect.STAMP_RECEIVED_AT,
            SideEffect.RECONCILE_FULFILLMENT,
            SideEffect.CREDIT_SHOP_STOCK,
        }

    @pytest.mark.parametrize(
        "current,requested",
        [(S.REQUESTED, S.PROCESSING), (S.REQUESTED, S.CANCELLED), (S.PROCESSING, S.CANCELLED)],
    )
    def test_no_inventory_effect(self, current, requested):
        assert validate_transition(current, requested).side_effects == ()


class TestRawValues:
    def test_strings_accepted(self):
        assert validate_transition("requested", "processing").allowed

    def test_parse_normalizes_case_and_whitespace(self):
        assert RequestStatus.parse(" In_Transit ") is S.IN_TRANSIT

    def test_unknown_target_rejected(self):
        with pytest.raises(InvalidTransitionError) as exc_info:
            validate_transition("requested", "shipped")
        assert exc_info.value.reason == "unknown target status"

    def test_unknown_current_rejected(self):
        assert not decide_transition("lost", "processing").allowed

    def test_parse_unknown_raises_value_error(self):
        with pytest.raises(ValueError):
            RequestStatus.parse("archived")


class TestProperties:
    @given(st.sampled_from(list(RequestStatus)), st.sampled_from(list(RequestStatus)))
    def test_decide_never_raises_and_agrees_with_validate(self, current, requested):
        decision = decide_transition(current, requested)
        if decision.allowed:
            validate_transition(current, requested)
        else:
            with pytest.raises(InvalidTransitionError):
                validate_transition(current, requested)

    @given(st.lists(st.sampled_from(list(RequestStatus)), max_size=12))
    def test_walks_only_ever_end_terminal_or_active(self, path):
        """Applying any sequence of requests, accepting only allowed ones."""
        status = S.REQUESTED
        seen = [status]
        for nxt in path:
            if decide_transition(status, nxt).allowed:
                status = nxt
                seen.append(status)
        # Once terminal, nothing else was ever accepted
        for i, s in enumerate(seen):
            if s.is_terminal:
                assert i == len(seen) - 1
        # cancelled never follows in_transit
        if S.CANCELLED in seen:
            assert S.IN_TRANSIT not in seen

    @given(st.text(min_size=1, max_size=20))
    def test_arbitrary_strings_never_crash(self, raw):
        decision = decide_transition(S.REQUESTED, raw)
        if decision.allowed:
            assert RequestStatus.parse(raw) in ALLOWED_TRANSITIONS[S.REQUESTED]
