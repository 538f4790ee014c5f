"""
Error taxonomy for the quoting engine.

Non-fatal errors (cycle, depth, missing reference) are never raised by the
traversal code. They are instantiated, logged and collected on the result
object so the caller gets whatever partial result could be computed.
Fatal errors (invalid rate, unknown root record, rejected edge) are raised.
"""
from typing import Any, Dict


class QuoteEngineError(Exception):
    """Base class. ``context`` carries ids and paths for logs and payloads."""

    code: str = "ENGINE_ERROR"
    fatal: bool = False

    def __init__(self, message: str, **context: Any) -> None:
        super().__init__(message)
        self.message = message
        self.context: Dict[str, Any] = context

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "fatal": self.fatal,
            "context": {k: (list(v) if isinstance(v, tuple) else v) for k, v in self.context.items()},
        }


class StructuralError(QuoteEngineError):
    """A cycle in data that should have been acyclic."""
    code = "CYCLE_DETECTED"


class DepthExceededError(QuoteEngineError):
    code = "DEPTH_EXCEEDED"


class MissingReferenceError(QuoteEngineError):
    """An edge or line item points at a record that no longer resolves."""
    code = "MISSING_REFERENCE"


class InvalidRateError(QuoteEngineError, ValueError):
    """Margin or tax percentage that would divide by zero or invert the price."""
    code = "INVALID_RATE"
    fatal = True


class RecordNotFoundError(QuoteEngineError, LookupError):
    code = "NOT_FOUND"
    fatal = True


class EdgeValidationError(QuoteEngineError, ValueError):
    """Proposed dependency edge rejected before persistence."""
    code = "INVALID_EDGE"
    fatal = True
