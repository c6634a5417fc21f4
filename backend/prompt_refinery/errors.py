"""
Error taxonomy shared by every pipeline layer.

Each error belongs to exactly one ErrorKind. The request boundary maps
errors to responses by looking up the kind, so adding a layer means
adding a kind and a status code, not a new isinstance branch.

Business rejections (irrelevant or ambiguous input) are NOT errors; they
are returned as data on the pipeline result.
"""
from enum import Enum
from typing import Any, Dict, Optional


class ErrorKind(str, Enum):
    """Closed set of failing layers."""
    PERCEPTION = "perception"
    NORMALIZATION = "normalization"
    REFINEMENT = "refinement"
    VALIDATION = "validation"
    ROUTING = "routing"


STATUS_CODES: Dict[ErrorKind, int] = {
    ErrorKind.PERCEPTION: 500,
    ErrorKind.NORMALIZATION: 500,
    ErrorKind.REFINEMENT: 500,
    ErrorKind.VALIDATION: 400,
    ErrorKind.ROUTING: 400,
}

RATE_LIMITED_STATUS_CODE = 429


class PipelineError(Exception):
    """
    Base error carrying a layer tag and structured diagnostic details.

    Subclasses only pin down ``kind``; all rendering lives here.
    """
    kind: ErrorKind = ErrorKind.ROUTING

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details: Dict[str, Any] = dict(details or {})

    @property
    def layer(self) -> str:
        return self.kind.value

    @property
    def status_code(self) -> int:
        return STATUS_CODES[self.kind]

    def to_response(self, include_details: bool = True) -> Dict[str, Any]:
        """Render the structured error body returned at the request boundary."""
        return {
            'success': False,
            'error': {
                'message': self.message,
                'layer': self.layer,
                'details': self.details if include_details else None
            }
        }

    def __repr__(self) -> str:
        return f"{type(self).__name__}(layer={self.layer!r}, message={self.message!r})"


class PerceptionError(PipelineError):
    """One modality's extraction failed. Non-fatal while other inputs succeed."""
    kind = ErrorKind.PERCEPTION

    def __init__(self, message: str, sublayer: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, {'sublayer': sublayer, **(details or {})})
        self.sublayer = sublayer


class NormalizationError(PipelineError):
    """No perception units were available to merge."""
    kind = ErrorKind.NORMALIZATION


class RefinementError(PipelineError):
    """
    An LLM stage call or its JSON recovery failed.

    ``rate_limited`` is set when the provider refused the call for quota
    reasons, so callers can apply a backoff policy. Nothing here retries.
    """
    kind = ErrorKind.REFINEMENT

    def __init__(
        self,
        message: str,
        stage: Optional[str] = None,
        rate_limited: bool = False,
        details: Optional[Dict[str, Any]] = None
    ):
        merged = {'stage': stage, **(details or {})}
        if rate_limited:
            merged['api_error'] = 'rate_limit'
        super().__init__(message, merged)
        self.stage = stage
        self.rate_limited = rate_limited

    @property
    def status_code(self) -> int:
        if self.rate_limited:
            return RATE_LIMITED_STATUS_CODE
        return STATUS_CODES[self.kind]


class ValidationError(PipelineError):
    """Malformed or out-of-bounds input at the request boundary."""
    kind = ErrorKind.VALIDATION


class RoutingError(PipelineError):
    """Every perception attempt for a request failed."""
    kind = ErrorKind.ROUTING
