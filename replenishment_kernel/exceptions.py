"""
Typed Exception Hierarchy for the Replenishment Kernel.

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

All exceptions inherit from ReplenishmentError:

    ReplenishmentError (base)
    |
    +-- InvalidRequestError
    |
    +-- NotFoundError
    |   +-- RequestNotFoundError
    |   +-- ItemNotFoundError
    |   +-- InventoryRecordNotFoundError
    |
    +-- InvalidTransitionError
    |
    +-- InvalidFulfillmentError
    |
    +-- ConcurrencyConflictError
    |
    +-- StorageFailureError
    |
    +-- ImmutabilityViolationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Code                   | Category    | When Raised
-----------------------|-------------|---------------------------------------------
INVALID_REQUEST        | invalid     | Malformed creation input (no items, qty <= 0)
REQUEST_NOT_FOUND      | invalid     | Unknown request id, or owned by another client
ITEM_NOT_FOUND         | invalid     | Item id not part of the request
INVENTORY_NOT_FOUND    | invalid     | No (dc, product, size) record
INVALID_TRANSITION     | invalid     | Not in the transition table, self-transition,
                       |             | transition out of a terminal status
INVALID_FULFILLMENT    | invalid     | Fulfilled > requested, negative, or terminal request
CONCURRENCY_CONFLICT   | retry       | Lost a compare-and-swap race on a request row
STORAGE_FAILURE        | unavailable | Underlying database unavailable or timed out
IMMUTABILITY_VIOLATION | invalid     | Write to a status log entry or a closed request

===============================================================================
HANDLING PATTERNS
===============================================================================

The ``category`` attribute tells an outer layer which message to show
without inspecting internals:

    try:
        service.advance_status(client_id, request_id, "in_transit")
    except ReplenishmentError as e:
        if e.category == ErrorCategory.INVALID:
            return 400, {"error": e.code, "message": str(e)}
        if e.category == ErrorCategory.RETRY:
            return 409, {"error": e.code}
        return 503, {"error": e.code}

ConcurrencyConflictError is retried automatically (bounded) by
ReplenishmentService; callers normally only observe it when the retry
budget is exhausted.
"""

from enum import Enum


class ErrorCategory(str, Enum):
    """What the caller can do about an error."""

    INVALID = "invalid"  # the input or the action was invalid
    RETRY = "retry"  # transient, try again against fresh state
    UNAVAILABLE = "unavailable"  # the system is unavailable


class ReplenishmentError(Exception):
    """
    Base exception for all replenishment kernel errors.

    All subclasses carry a ``code`` class attribute for machine-readable
    identification and a ``category`` for caller-side handling.
    """

    code: str = "REPLENISHMENT_ERROR"
    category: ErrorCategory = ErrorCategory.INVALID

    def to_dict(self) -> dict:
        """Structured representation for API layers and logs."""
        data = {
            k: (str(v) if not isinstance(v, (int, str, type(None))) else v)
            for k, v in vars(self).items()
            if not k.startswith("_")
        }
        data["code"] = self.code
        data["category"] = self.category.value
        data["message"] = str(self)
        return data


class InvalidRequestError(ReplenishmentError):
    """Creation input is malformed."""

    code: str = "INVALID_REQUEST"

    def __init__(self, reason: str, field: str | None = None):
        self.reason = reason
        self.field = field
        if field:
            super().__init__(f"Invalid replenishment request ({field}): {reason}")
        else:
            super().__init__(f"Invalid replenishment request: {reason}")


# Not-found exceptions


class NotFoundError(ReplenishmentError):
    """Base exception for unknown entities."""

    code: str = "NOT_FOUND"


class RequestNotFoundError(NotFoundError):
    """Request does not exist within the caller's client scope."""

    code: str = "REQUEST_NOT_FOUND"

    def __init__(self, request_id: str):
        self.request_id = str(request_id)
        super().__init__(f"Replenishment request not found: {request_id}")


class ItemNotFoundError(NotFoundError):
    """Item id is not part of the given request."""

    code: str = "ITEM_NOT_FOUND"

    def __init__(self, request_id: str, item_id: str):
        self.request_id = str(request_id)
        self.item_id = str(item_id)
        super().__init__(f"Item {item_id} not found on request {request_id}")


class InventoryRecordNotFoundError(NotFoundError):
    """No inventory record exists for the (dc, product, size) key."""

    code: str = "INVENTORY_NOT_FOUND"

    def __init__(self, dc_id: str, product_id: str, size: str):
        self.dc_id = dc_id
        self.product_id = product_id
        self.size = size
        super().__init__(
            f"No inventory record for dc={dc_id} product={product_id} size={size}"
        )


# State machine


class InvalidTransitionError(ReplenishmentError):
    """
    Requested status change is not allowed from the current status.

    Raised for transitions absent from the table, self-transitions,
    transitions out of terminal statuses and unknown status values.
    """

    code: str = "INVALID_TRANSITION"

    def __init__(self, current_status: str, requested_status: str, reason: str | None = None):
        self.current_status = current_status
        self.requested_status = requested_status
        self.reason = reason or "transition not allowed"
        super().__init__(
            f"Cannot transition from '{current_status}' to '{requested_status}': {self.reason}"
        )


class InvalidFulfillmentError(ReplenishmentError):
    """Fulfilled quantity violates 0 <= fulfilled <= requested, or the request is closed."""

    code: str = "INVALID_FULFILLMENT"

    def __init__(
        self,
        request_id: str,
        reason: str,
        item_id: str | None = None,
        quantity: object = None,
        quantity_requested: int | None = None,
    ):
        self.request_id = str(request_id)
        self.item_id = str(item_id) if item_id is not None else None
        self.quantity = quantity
        self.quantity_requested = quantity_requested
        self.reason = reason
        where = f" item {item_id}" if item_id is not None else ""
        super().__init__(f"Invalid fulfillment for request {request_id}{where}: {reason}")


# Transient / infrastructure


class ConcurrencyConflictError(ReplenishmentError):
    """Another writer changed the request between read and compare-and-swap."""

    code: str = "CONCURRENCY_CONFLICT"
    category: ErrorCategory = ErrorCategory.RETRY

    def __init__(self, request_id: str, expected_status: str):
        self.request_id = str(request_id)
        self.expected_status = expected_status
        super().__init__(
            f"Request {request_id} is no longer in status '{expected_status}'"
        )


class StorageFailureError(ReplenishmentError):
    """Persistence is unavailable. The transaction was rolled back."""

    code: str = "STORAGE_FAILURE"
    category: ErrorCategory = ErrorCategory.UNAVAILABLE

    def __init__(self, operation: str, detail: str):
        self.operation = operation
        self.detail = detail
        super().__init__(f"Storage failure during {operation}: {detail}")


class ImmutabilityViolationError(ReplenishmentError):
    """An append-only or terminal record was about to be modified or deleted."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = str(entity_id)
        self.reason = reason
        super().__init__(f"{entity_type} {entity_id} is immutable: {reason}")
