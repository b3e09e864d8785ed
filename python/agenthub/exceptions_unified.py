"""
Unified error system for the agent hub.

Every error raised by the orchestration core derives from
``AgentHubException`` and carries an ``ErrorContext`` (error id, category,
severity, recoverability, details) so callers can log or serialise failures
uniformly.

Hierarchy:
- ValidationError
    - ConfigurationError
    - PlanInvalidError
- ReasoningError
    - ReasoningServiceError
    - PlanParseError
    - FollowUpParseError
- RoutingError
    - NoAgentAvailableError
    - RequestTimeoutError
- WorkerError
    - UnsupportedActionError
    - ExecutionFailureError
    - BacklogFullError
    - WorkerStoppedError
    - RequestCancelledError
    - WorkerRegistrationError
- CRMStoreError
- HubNotRunningError
"""

import logging
import traceback
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)


# ============================================================================
# Enums
# ============================================================================

class ErrorSeverity(Enum):
    """Error severity levels."""
    CRITICAL = "critical"      # System failure, immediate attention required
    ERROR = "error"            # Operation failure
    WARNING = "warning"        # Degraded operation
    INFO = "info"              # Informational, no action needed


class ErrorCategory(Enum):
    """Error categories for classification and routing."""
    VALIDATION = "validation"
    CONFIGURATION = "configuration"
    ROUTING = "routing"
    WORKER = "worker"
    TIMEOUT = "timeout"
    RESOURCE = "resource"
    REASONING = "reasoning"
    PERSISTENCE = "persistence"
    NETWORK = "network"
    INTERNAL = "internal"


# ============================================================================
# Error Context
# ============================================================================

@dataclass
class ErrorContext:
    """Rich error context with metadata."""
    error_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    severity: ErrorSeverity = ErrorSeverity.ERROR
    category: ErrorCategory = ErrorCategory.INTERNAL
    message: str = ""
    details: Dict[str, Any] = field(default_factory=dict)
    stack_trace: Optional[str] = None
    is_recoverable: bool = True
    recovery_suggestions: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary (excludes stack trace)."""
        return {
            "error_id": self.error_id,
            "timestamp": self.timestamp.isoformat(),
            "severity": self.severity.value,
            "category": self.category.value,
            "message": self.message,
            "details": self.details,
            "is_recoverable": self.is_recoverable,
            "recovery_suggestions": self.recovery_suggestions,
        }


# ============================================================================
# Base Exception
# ============================================================================

class AgentHubException(Exception):
    """Base exception for all agent hub errors with rich context."""

    error_type = "AgentHubError"

    def __init__(
        self,
        message: str,
        category: ErrorCategory = ErrorCategory.INTERNAL,
        severity: ErrorSeverity = ErrorSeverity.ERROR,
        details: Optional[Dict[str, Any]] = None,
        is_recoverable: bool = True,
        recovery_suggestions: Optional[List[str]] = None,
    ):
        self.message = message
        self.category = category
        self.severity = severity
        self.details = details or {}
        self.is_recoverable = is_recoverable
        self.recovery_suggestions = recovery_suggestions or []
        self.context = ErrorContext(
            severity=severity,
            category=category,
            message=message,
            details=self.details,
            stack_trace=traceback.format_exc(),
            is_recoverable=is_recoverable,
            recovery_suggestions=self.recovery_suggestions,
        )
        super().__init__(self.message)

    def __str__(self) -> str:
        return self.message

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary, tagged with the error type."""
        data = self.context.to_dict()
        data["error_type"] = self.error_type
        return data


# ============================================================================
# Validation Errors
# ============================================================================

class ValidationError(AgentHubException):
    """Input or plan validation failed."""
    error_type = "ValidationError"

    def __init__(self, message: str, **kwargs):
        kwargs.setdefault("category", ErrorCategory.VALIDATION)
        kwargs.setdefault("severity", ErrorSeverity.WARNING)
        super().__init__(message, **kwargs)


class ConfigurationError(ValidationError):
    """Configuration value is missing or invalid."""
    error_type = "ConfigurationError"

    def __init__(self, message: str, **kwargs):
        kwargs.setdefault("category", ErrorCategory.CONFIGURATION)
        kwargs.setdefault("is_recoverable", False)
        super().__init__(message, **kwargs)


class PlanInvalidError(ValidationError):
    """A workflow plan has cycles or references steps that do not exist."""
    error_type = "PlanInvalid"

    def __init__(
        self,
        message: str,
        cycle: Optional[List[str]] = None,
        unknown_dependencies: Optional[Dict[str, List[str]]] = None,
        **kwargs,
    ):
        self.cycle = cycle or []
        self.unknown_dependencies = unknown_dependencies or {}
        details = kwargs.pop("details", {}) or {}
        details.setdefault("cycle", self.cycle)
        details.setdefault("unknown_dependencies", self.unknown_dependencies)
        super().__init__(message, details=details, **kwargs)


# ============================================================================
# Reasoning Errors
# ============================================================================

class ReasoningError(AgentHubException):
    """Base error for the reasoning collaborator boundary."""
    error_type = "ReasoningError"

    def __init__(self, message: str, **kwargs):
        kwargs.setdefault("category", ErrorCategory.REASONING)
        super().__init__(message, **kwargs)


class ReasoningServiceError(ReasoningError):
    """The reasoning service could not be reached or returned an error."""
    error_type = "ReasoningServiceError"


class PlanParseError(ReasoningError):
    """The reasoning service returned a plan that could not be parsed."""
    error_type = "PlanParseFailure"

    def __init__(self, message: str, **kwargs):
        kwargs.setdefault("severity", ErrorSeverity.WARNING)
        super().__init__(message, **kwargs)


class FollowUpParseError(ReasoningError):
    """The reasoning service returned a follow-up analysis that could not be parsed."""
    error_type = "FollowUpParseFailure"

    def __init__(self, message: str, **kwargs):
        kwargs.setdefault("severity", ErrorSeverity.WARNING)
        super().__init__(message, **kwargs)


# ============================================================================
# Routing Errors
# ============================================================================

class RoutingError(AgentHubException):
    """Base routing error."""
    error_type = "RoutingError"

    def __init__(self, message: str, **kwargs):
        kwargs.setdefault("category", ErrorCategory.ROUTING)
        super().__init__(message, **kwargs)


class NoAgentAvailableError(RoutingError):
    """Discovery returned no active worker for the requested capability."""
    error_type = "NoAgentAvailable"

    def __init__(self, capability: str, **kwargs):
        self.capability = capability
        kwargs.setdefault("details", {"capability": capability})
        kwargs.setdefault(
            "recovery_suggestions",
            ["Register a worker advertising this capability", "Check worker health"],
        )
        super().__init__(f"No agents available for capability: {capability}", **kwargs)


class RequestTimeoutError(RoutingError):
    """The router's timer fired before the worker answered."""
    error_type = "RequestTimeout"

    def __init__(self, worker_id: str, timeout_ms: float, **kwargs):
        self.worker_id = worker_id
        self.timeout_ms = timeout_ms
        kwargs.setdefault("category", ErrorCategory.TIMEOUT)
        kwargs.setdefault("details", {"worker_id": worker_id, "timeout_ms": timeout_ms})
        kwargs.setdefault("recovery_suggestions", ["Try again", "Increase timeout value"])
        super().__init__(
            f"Request timeout after {timeout_ms:.0f}ms on worker {worker_id}", **kwargs
        )


# ============================================================================
# Worker Errors
# ============================================================================

class WorkerError(AgentHubException):
    """Base worker error."""
    error_type = "WorkerError"

    def __init__(self, message: str, **kwargs):
        kwargs.setdefault("category", ErrorCategory.WORKER)
        super().__init__(message, **kwargs)


class UnsupportedActionError(WorkerError):
    """The worker neither handles the action nor declares its required capability."""
    error_type = "UnsupportedAction"

    def __init__(self, action: str, worker_id: str, **kwargs):
        self.action = action
        self.worker_id = worker_id
        kwargs.setdefault("category", ErrorCategory.VALIDATION)
        kwargs.setdefault("is_recoverable", False)
        kwargs.setdefault("details", {"action": action, "worker_id": worker_id})
        super().__init__(
            f"Action '{action}' not supported by agent {worker_id}", **kwargs
        )


class ExecutionFailureError(WorkerError):
    """A worker's action body raised."""
    error_type = "ExecutionFailure"


class BacklogFullError(WorkerError):
    """The worker backlog reached its maximum depth."""
    error_type = "BacklogFull"

    def __init__(self, message: str, **kwargs):
        kwargs.setdefault("category", ErrorCategory.RESOURCE)
        super().__init__(message, **kwargs)


class WorkerStoppedError(WorkerError):
    """The worker is stopping or stopped and does not accept work."""
    error_type = "WorkerStopped"


class RequestCancelledError(WorkerError):
    """The caller cancelled the request before it finished."""
    error_type = "RequestCancelled"

    def __init__(self, message: str, **kwargs):
        kwargs.setdefault("category", ErrorCategory.TIMEOUT)
        super().__init__(message, **kwargs)


class WorkerRegistrationError(WorkerError):
    """A worker id is already registered."""
    error_type = "WorkerRegistrationError"

    def __init__(self, message: str, **kwargs):
        kwargs.setdefault("category", ErrorCategory.VALIDATION)
        kwargs.setdefault("is_recoverable", False)
        super().__init__(message, **kwargs)


# ============================================================================
# Persistence Errors
# ============================================================================

class CRMStoreError(AgentHubException):
    """The CRM persistence collaborator failed."""
    error_type = "CRMStoreError"

    def __init__(self, message: str, status: Optional[int] = None, **kwargs):
        self.status = status
        kwargs.setdefault("category", ErrorCategory.PERSISTENCE)
        super().__init__(message, **kwargs)


# ============================================================================
# Lifecycle Errors
# ============================================================================

class HubNotRunningError(AgentHubException):
    """The agent hub has not been started."""
    error_type = "HubNotRunning"

    def __init__(self, message: str = "Agent hub not started", **kwargs):
        kwargs.setdefault("category", ErrorCategory.CONFIGURATION)
        super().__init__(message, **kwargs)


# ============================================================================
# Utility Functions
# ============================================================================

def error_type_of(error: BaseException) -> str:
    """Return the taxonomy name used in result envelopes for *error*."""
    if isinstance(error, AgentHubException):
        return error.error_type
    if isinstance(error, TimeoutError):
        return RequestTimeoutError.error_type
    return ExecutionFailureError.error_type

