"""
Custom exceptions for the energy ETL engine with structured error context.

Every exception carries a context dictionary so that job status, quarantine
entries and logs can report what failed without access to a stack trace.

Exception Hierarchy:
    ETLException (base)
    ├── ConfigurationError          bad job request, unknown source, bad rule
    ├── JobNotFoundError            unknown job id
    ├── ExtractionError
    │   └── SourceFailure           retries exhausted / permanent source error
    ├── TransformationError
    │   ├── ValidationError
    │   └── DataFormatError
    ├── LoadError
    │   └── DatabaseError
    └── TransientError / NonRetryableError (retry classification)
"""

from typing import Optional, Dict, Any
from datetime import datetime


class ETLException(Exception):
    """
    Base exception for all ETL-related errors.

    Attributes:
        message: Human-readable error message
        context: Additional context information (source, job, record, etc.)
        original_exception: The original exception that was caught (if any)
    """

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        original_exception: Optional[Exception] = None
    ):
        self.message = message
        self.context = context or {}
        self.original_exception = original_exception
        self.timestamp = datetime.utcnow()

        self.context["error_timestamp"] = self.timestamp.isoformat()

        super().__init__(message)
        if original_exception:
            self.__cause__ = original_exception

    def __str__(self) -> str:
        """Format error message with context."""
        base_msg = f"{self.__class__.__name__}: {self.message}"

        context = {k: v for k, v in self.context.items() if k != "error_timestamp"}
        if context:
            context_str = ", ".join(f"{k}={v}" for k, v in context.items())
            base_msg += f" | Context: {context_str}"

        if self.original_exception:
            base_msg += f" | Caused by: {type(self.original_exception).__name__}: {str(self.original_exception)}"

        return base_msg

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging/storage."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
            "original_error": str(self.original_exception) if self.original_exception else None
        }


# ============================================================================
# Configuration / lookup errors
# ============================================================================

class ConfigurationError(ETLException):
    """
    Raised for invalid job requests, unknown sources and malformed rules.

    Never retried. Surfaced to API callers as HTTP 400.
    """
    pass


class JobNotFoundError(ETLException):
    """Raised when a job id has no persisted (or no active) status."""
    pass


# ============================================================================
# Retry classification
# ============================================================================

class TransientError(ETLException):
    """
    Errors that should trigger the retry policy.

    Use this for transient errors like:
    - Network timeouts and connection resets
    - Rate limiting (HTTP 429)
    - Server errors (HTTP 5xx)
    - Temporary database connection issues
    """
    pass


class NonRetryableError(ETLException):
    """
    Errors that must NOT be retried because the input is deterministic or
    the failure is permanent (401/403, 404, malformed payloads).
    """
    pass


# ============================================================================
# Extraction Errors
# ============================================================================

class ExtractionError(ETLException):
    """Base exception for data extraction failures."""
    pass


class SourceFailure(ExtractionError):
    """
    Raised when a source cannot be extracted: retries exhausted on a
    transient error, or a permanent error on the first attempt.

    Context should include:
        - source_id: The configured source id
        - attempts: Number of attempts made
        - required: Whether the source is required for the job
    """
    pass


class NetworkError(TransientError, ExtractionError):
    """Network-related errors (timeouts, resets, 5xx) that should be retried."""
    pass


class RateLimitError(TransientError, ExtractionError):
    """Rate limiting errors (HTTP 429) that should be retried with backoff."""

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        original_exception: Optional[Exception] = None,
        retry_after: Optional[int] = None
    ):
        super().__init__(message, context, original_exception)
        self.retry_after = retry_after
        if retry_after:
            self.context["retry_after"] = retry_after


class AuthenticationError(NonRetryableError, ExtractionError):
    """Authentication failures (HTTP 401, 403) that should not be retried."""
    pass


class ResourceNotFoundError(NonRetryableError, ExtractionError):
    """Resource not found errors (HTTP 404) that should not be retried."""
    pass


# ============================================================================
# Transformation Errors
# ============================================================================

class TransformationError(NonRetryableError):
    """
    Per-record transform failure: a transform function raised, a required
    target field could not be resolved, or a post-processing step returned
    a malformed batch. Governed by `on_transform_error`.
    """
    pass


class ValidationError(NonRetryableError):
    """
    Raised only under `on_validation_error: fail` when a record is invalid.

    Context should include:
        - record_id: ID of the invalid record
        - errors: List of validation issues
    """
    pass


class DataFormatError(TransformationError):
    """Payload could not be parsed into records (bad JSON, bad CSV)."""
    pass


# ============================================================================
# Load Errors
# ============================================================================

class LoadError(ETLException):
    """Base exception for sink failures."""
    pass


class DatabaseError(LoadError):
    """
    Exception raised when database operations fail.

    Context should include:
        - operation: Type of database operation (UPSERT, INSERT)
        - table_name: Name of the table
    """
    pass


class DatabaseConnectionError(TransientError, DatabaseError):
    """Database connection errors that should be retried."""
    pass
