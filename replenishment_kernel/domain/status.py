"""
Replenishment request status machine (``replenishment_kernel.domain.status``).

Responsibility
--------------
Defines the closed set of request statuses, the allowed transition table,
and the side effects each transition triggers.  Pure and stateless: the
validator never touches storage.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.

Invariants enforced
-------------------
* Happy path: requested -> processing -> in_transit -> received.
* cancelled is reachable from requested and processing only.
* received and cancelled are terminal (no outgoing transitions).
* Self-transitions are rejected; retries must be detected by the caller.
* Unknown status strings are rejected here, at the boundary.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from replenishment_kernel.exceptions import InvalidTransitionError


class RequestStatus(str, Enum):
    """Lifecycle status of a replenishment request."""

    REQUESTED = "requested"
    PROCESSING = "processing"
    IN_TRANSIT = "in_transit"
    RECEIVED = "received"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES

    @property
    def is_active(self) -> bool:
        return self not in TERMINAL_STATUSES

    @classmethod
    def parse(cls, value: RequestStatus | str) -> RequestStatus:
        """Coerce a raw value into a RequestStatus.

        Raises:
            ValueError: if ``value`` is not a known status.
        """
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise ValueError(f"Unknown request status: {value!r}") from None


class SideEffect(str, Enum):
    """Side effects applied by the transition service for a target status."""

    DECREMENT_DC_STOCK = "decrement_dc_stock"
    STAMP_RECEIVED_AT = "stamp_received_at"
    RECONCILE_FULFILLMENT = "reconcile_fulfillment"
    CREDIT_SHOP_STOCK = "credit_shop_stock"


TERMINAL_STATUSES: frozenset[RequestStatus] = frozenset(
    {RequestStatus.RECEIVED, RequestStatus.CANCELLED}
)

ACTIVE_STATUSES: frozenset[RequestStatus] = frozenset(RequestStatus) - TERMINAL_STATUSES

ALLOWED_TRANSITIONS: dict[RequestStatus, frozenset[RequestStatus]] = {
    RequestStatus.REQUESTED: frozenset({RequestStatus.PROCESSING, RequestStatus.CANCELLED}),
    RequestStatus.PROCESSING: frozenset({RequestStatus.IN_TRANSIT, RequestStatus.CANCELLED}),
    RequestStatus.IN_TRANSIT: frozenset({RequestStatus.RECEIVED}),
    RequestStatus.RECEIVED: frozenset(),
    RequestStatus.CANCELLED: frozenset(),
}

SIDE_EFFECTS: dict[RequestStatus, tuple[SideEffect, ...]] = {
    RequestStatus.PROCESSING: (),
    RequestStatus.IN_TRANSIT: (SideEffect.DECREMENT_DC_STOCK,),
    RequestStatus.RECEIVED: (
        SideEffect.STAMP_RECEIVED_AT,
        SideEffect.RECONCILE_FULFILLMENT,
        SideEffect.CREDIT_SHOP_STOCK,
    ),
    # Cancellation is only reachable before anything left the DC
    RequestStatus.CANCELLED: (),
}


@dataclass(frozen=True)
class TransitionDecision:
    """Outcome of checking one (current, next) pair."""

    current: str
    requested: str
    allowed: bool
    reason: str | None = None
    side_effects: tuple[SideEffect, ...] = ()

    def raise_if_denied(self) -> None:
        if not self.allowed:
            raise InvalidTransitionError(self.current, self.requested, self.reason)


def decide_transition(
    current: RequestStatus | str,
    requested: RequestStatus | str,
) -> TransitionDecision:
    """Check a transition against the table without raising."""
    try:
        cur = RequestStatus.parse(current)
    except ValueError:
        return TransitionDecision(str(current), str(requested), False, "unknown current status")
    try:
        nxt = RequestStatus.parse(requested)
    except ValueError:
        return TransitionDecision(cur.value, str(requested), False, "unknown target status")

    if cur == nxt:
        return TransitionDecision(cur.value, nxt.value, False, "self-transition")
    if cur.is_terminal:
        return TransitionDecision(cur.value, nxt.value, False, f"'{cur.value}' is terminal")
    if nxt not in ALLOWED_TRANSITIONS[cur]:
        return TransitionDecision(cur.value, nxt.value, False, "transition not allowed")

    return TransitionDecision(cur.value, nxt.value, True, None, SIDE_EFFECTS[nxt])


def validate_transition(
    current: RequestStatus | str,
    requested: RequestStatus | str,
) -> TransitionDecision:
    """Allow or deny a transition.

    Returns:
        The allowing TransitionDecision, carrying its side effects.

    Raises:
        InvalidTransitionError: if the transition is denied.
    """
    decision = decide_transition(current, requested)
    decision.raise_if_denied()
    return decision


def allowed_next(current: RequestStatus | str) -> frozenset[RequestStatus]:
    """Statuses reachable in one step from ``current``."""
    return ALLOWED_TRANSITIONS[RequestStatus.parse(current)]
