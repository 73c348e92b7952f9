"""
Error Handling System for the Scheduling Engine

This module provides the engine's exception hierarchy including:
1. A base error carrying a code, severity, details and cause
2. The taxonomy raised by the repetition package (not found, duplicate
   session, insufficient data, advisory failures)
3. Structured error information for logging and API responses
"""

import json
import logging
import traceback
from enum import Enum
from typing import Any, Dict, List, Optional
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator

# Configure logging
logger = logging.getLogger(__name__)


class ErrorSeverity(Enum):
    """Severity levels for errors"""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class ErrorCode(Enum):
    """Standard error codes for the engine"""
    UNKNOWN_ERROR = "unknown_error"
    VALIDATION_ERROR = "validation_error"
    NOT_FOUND_ERROR = "not_found_error"

    # Review recording
    DUPLICATE_ITEM = "duplicate_item"
    DUPLICATE_SESSION = "duplicate_session"

    # Analysis
    INSUFFICIENT_DATA = "insufficient_data"

    # Scheduling policies
    POLICY_ERROR = "policy_error"

    # Advisory service
    ADVISORY_ERROR = "advisory_error"
    ADVISORY_TIMEOUT = "advisory_timeout"


class ErrorInfo(BaseModel):
    """Structured information about an error"""
    model_config = ConfigDict(use_enum_values=True)

    code: ErrorCode
    message: str
    timestamp: datetime = Field(default_factory=datetime.now)
    severity: ErrorSeverity = ErrorSeverity.ERROR
    details: Optional[Dict[str, Any]] = None
    exception_type: Optional[str] = None
    exception_message: Optional[str] = None
    stack_trace: Optional[List[str]] = None
    context: Optional[Dict[str, Any]] = None

    @field_validator('stack_trace', mode='before')
    @classmethod
    def validate_stack_trace(cls, v):
        """Format stack trace if it's a string"""
        if isinstance(v, str):
            return v.splitlines()
        return v


class SrsError(Exception):
    """Base exception class for all engine errors"""

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.UNKNOWN_ERROR,
        severity: ErrorSeverity = ErrorSeverity.ERROR,
        details: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None,
        context: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.severity = severity
        self.details = details or {}
        self.cause = cause
        self.context = context or {}
        self.timestamp = datetime.now()

    def to_error_info(self, include_stack_trace: bool = False) -> ErrorInfo:
        """Convert the exception to an ErrorInfo object"""
        stack_trace = None
        if include_stack_trace:
            stack_trace = traceback.format_exc().splitlines()

        details = dict(self.details)
        if self.cause is not None:
            details["cause"] = {
                "type": type(self.cause).__name__,
                "message": str(self.cause)
            }

        return ErrorInfo(
            code=self.code,
            message=self.message,
            timestamp=self.timestamp,
            severity=self.severity,
            details=details,
            exception_type=type(self).__name__,
            exception_message=str(self),
            stack_trace=stack_trace,
            context=self.context
        )

    def to_dict(self, include_stack_trace: bool = False) -> Dict[str, Any]:
        """Convert the exception to a dictionary"""
        return self.to_error_info(include_stack_trace).model_dump(mode="json")

    def to_json(self, include_stack_trace: bool = False) -> str:
        """Convert the exception to a JSON string"""
        return json.dumps(self.to_dict(include_stack_trace))

    def __str__(self) -> str:
        base_str = f"{self.code.value}: {self.message}"
        if self.details:
            base_str += f" (details: {self.details})"
        if self.cause:
            base_str += f" caused by {type(self.cause).__name__}: {str(self.cause)}"
        return base_str


class DataValidationError(SrsError):
    """Error raised when input fails boundary validation"""

    def __init__(
        self,
        data_type: str,
        validation_errors: Optional[List[Dict[str, Any]]] = None,
        message: Optional[str] = None,
        cause: Optional[Exception] = None
    ):
        super().__init__(
            message=message or f"Invalid {data_type}",
            code=ErrorCode.VALIDATION_ERROR,
            severity=ErrorSeverity.WARNING,
            details={"data_type": data_type, "errors": validation_errors or []},
            cause=cause
        )
        self.data_type = data_type
        self.validation_errors = validation_errors or []


class NotFoundError(SrsError):
    """Error raised when no memory state exists for a learner/item pair"""

    def __init__(self, learner_id: str, item_id: Optional[str] = None):
        if item_id is None:
            message = f"No learning items found for learner {learner_id}"
        else:
            message = f"Memory state not found for learner {learner_id} and item {item_id}"
        super().__init__(
            message=message,
            code=ErrorCode.NOT_FOUND_ERROR,
            severity=ErrorSeverity.WARNING,
            details={"learner_id": learner_id, "item_id": item_id}
        )
        self.learner_id = learner_id
        self.item_id = item_id


class DuplicateItemError(SrsError):
    """Error raised when an item is added twice for the same learner"""

    def __init__(self, learner_id: str, item_id: str):
        super().__init__(
            message=f"Item {item_id} is already tracked for learner {learner_id}",
            code=ErrorCode.DUPLICATE_ITEM,
            severity=ErrorSeverity.WARNING,
            details={"learner_id": learner_id, "item_id": item_id}
        )
        self.learner_id = learner_id
        self.item_id = item_id


class DuplicateSessionError(SrsError):
    """Error raised when a review session id is submitted twice"""

    def __init__(self, learner_id: str, item_id: str, session_id: str):
        super().__init__(
            message=f"Review session {session_id} was already recorded",
            code=ErrorCode.DUPLICATE_SESSION,
            severity=ErrorSeverity.WARNING,
            details={"learner_id": learner_id, "item_id": item_id, "session_id": session_id}
        )
        self.session_id = session_id


class InsufficientDataError(SrsError):
    """Error raised when a forgetting curve cannot be fitted from history"""

    def __init__(self, learner_id: str, item_id: str, sessions: int, required: int = 2):
        super().__init__(
            message="Insufficient data for forgetting curve analysis",
            code=ErrorCode.INSUFFICIENT_DATA,
            severity=ErrorSeverity.INFO,
            details={
                "learner_id": learner_id,
                "item_id": item_id,
                "sessions": sessions,
                "required": required
            }
        )
        self.sessions = sessions
        self.required = required


class PolicyError(SrsError):
    """Error raised for invalid scheduling policy operations"""

    def __init__(self, message: str, learner_id: Optional[str] = None):
        super().__init__(
            message=message,
            code=ErrorCode.POLICY_ERROR,
            details={"learner_id": learner_id}
        )


class AdvisoryError(SrsError):
    """
    Error raised by the advisory service wrapper.

    Never surfaced to callers of the engine: the guarded advisor converts
    it into deterministic fallback output.
    """

    def __init__(
        self,
        message: str,
        operation: str,
        cause: Optional[Exception] = None,
        code: ErrorCode = ErrorCode.ADVISORY_ERROR
    ):
        super().__init__(
            message=message,
            code=code,
            severity=ErrorSeverity.WARNING,
            details={"operation": operation},
            cause=cause
        )
        self.operation = operation


class AdvisoryTimeoutError(AdvisoryError):
    """Advisory call exceeded its time budget"""

    def __init__(self, operation: str, timeout_seconds: float):
        super().__init__(
            message=f"Advisory call {operation} timed out after {timeout_seconds:.2f} seconds",
            operation=operation,
            code=ErrorCode.ADVISORY_TIMEOUT
        )
        self.timeout_seconds = timeout_seconds


_SEVERITY_LEVELS = {
    ErrorSeverity.DEBUG: logging.DEBUG,
    ErrorSeverity.INFO: logging.INFO,
    ErrorSeverity.WARNING: logging.WARNING,
    ErrorSeverity.ERROR: logging.ERROR,
    ErrorSeverity.CRITICAL: logging.CRITICAL,
}


def log_error(
    error: Exception,
    log: Optional[logging.Logger] = None,
    context: Optional[Dict[str, Any]] = None
) -> None:
    """
    Log an error with structured information.

    Engine errors are logged at their own severity; anything else is logged
    as an error with its traceback.

    Args:
        error: The exception to log
        log: Logger to use (defaults to this module's logger)
        context: Additional context merged into the log record
    """
    log = log or logger
    if isinstance(error, SrsError):
        info = error.to_dict()
        if context:
            info["context"] = {**(info.get("context") or {}), **context}
        log.log(
            _SEVERITY_LEVELS[error.severity],
            f"{error.code.value}: {error.message}",
            extra={"data": info}
        )
    else:
        log.error(
            f"Unhandled {type(error).__name__}: {error}",
            exc_info=error,
            extra={"data": {"context": context or {}}}
        )
