"""
Order engine error taxonomy

Every failure surfaced by the engine carries a stable ``kind`` and a
human-readable message. ``retryable`` marks the transient kinds that the
components retry internally before surfacing.
"""
from typing import Any, Dict, Optional


class OrderEngineError(Exception):
    """Base exception for order engine errors"""

    kind = "engine_error"
    retryable = False

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.kind, "detail": self.message}


class ValidationFailure(OrderEngineError):
    """Malformed, missing or out-of-range input, rejected before any write"""

    kind = "validation_failure"

    def __init__(self, field: str, message: str):
        super().__init__(f"{field}: {message}")
        self.field = field

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["field"] = self.field
        return data


class PriorityOutOfRange(ValidationFailure):
    """Requested priority level outside the fixed range"""

    kind = "out_of_range"


class InvalidTransition(OrderEngineError):
    """Illegal status edge"""

    kind = "invalid_transition"

    def __init__(self, source: str, target: str):
        super().__init__(f"Invalid status transition: {source} -> {target}")
        self.source = source
        self.target = target

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["source"] = self.source
        data["target"] = self.target
        return data


class OrderNotFound(OrderEngineError):
    """Operation targets a non-existent order"""

    kind = "not_found"

    def __init__(self, order_id: str):
        super().__init__(f"Order with id={order_id} not found")
        self.order_id = order_id


class ConcurrencyConflict(OrderEngineError):
    """A concurrent mutation changed the order first"""

    kind = "conflict"
    retryable = True

    def __init__(self, order_id: str, expected_version: Optional[int] = None):
        message = f"Order {order_id} was modified concurrently"
        if expected_version is not None:
            message += f" (expected version {expected_version})"
        super().__init__(message)
        self.order_id = order_id
        self.expected_version = expected_version


class PersistenceFailure(OrderEngineError):
    """The repository failed or timed out"""

    kind = "persistence_failure"
    retryable = True
