"""
Custom exceptions for the media sync engine with structured error context.

This module provides the exception hierarchy used by the reconciliation
engine. Each exception carries context information for debugging and
for the job run error record.

Exception Hierarchy:
    SyncException (base)
    ├── ClientConfigurationError
    ├── ProviderCapabilityError
    ├── UnsupportedMediaKindError
    ├── InvalidQueryOptionsError
    ├── FetchError
    ├── SyncCancelledError
    ├── SyncAlreadyRunningError
    ├── JobRunStateError
    └── ItemProcessingError
        ├── UnattributableItemError
        ├── ResolutionError
        ├── MergeError
        └── PersistenceError

Job-level errors fail the whole job run. Item-level errors
(ItemProcessingError and subclasses) are caught by the batch processor,
logged, and the item is skipped.
"""

from typing import Optional, Dict, Any
from datetime import datetime, timezone


class SyncException(Exception):
    """
    Base exception for all sync-related errors.

    Attributes:
        message: Human-readable error message
        context: Additional context information (client, kind, item ids, etc.)
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
        self.timestamp = datetime.now(timezone.utc)

        # Add timestamp to context
        self.context["error_timestamp"] = self.timestamp.isoformat()

        # Chain original exception if provided
        super().__init__(message)
        if original_exception:
            self.__cause__ = original_exception

    def __str__(self) -> str:
        """Format error message with context."""
        base_msg = f"{self.__class__.__name__}: {self.message}"

        if self.context:
            context_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
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
# Job-level Errors
# ============================================================================

class ClientConfigurationError(SyncException):
    """
    Raised when an external client cannot be resolved or built.

    Context should include:
        - client_id: The client that was requested
        - client_type: The resolved client type (if known)
    """
    pass


class ProviderCapabilityError(SyncException):
    """
    Raised when a client has no provider for the requested media kind.

    Only the current run fails; other kinds may still sync from the client.
    """
    pass


class UnsupportedMediaKindError(SyncException):
    """Raised when a media kind name is not in the dispatch table."""
    pass


class InvalidQueryOptionsError(SyncException):
    """
    Raised when stored schedule filters do not form valid query options.

    Context should include:
        - filters: The stored filters
    """
    pass


class FetchError(SyncException):
    """
    Raised when the provider fetch call fails.

    Context should include:
        - client_id: Client being synced
        - media_kind: Kind being fetched
    """
    pass


class SyncCancelledError(SyncException):
    """Raised when a run is cancelled or exceeds its deadline."""
    pass


class SyncAlreadyRunningError(SyncException):
    """Raised when a run for the same (user, client, kind) is in progress."""
    pass


class JobRunStateError(SyncException):
    """Raised on an illegal job run transition (e.g. finalizing twice)."""
    pass


# ============================================================================
# Item-level Errors
# ============================================================================

class ItemProcessingError(SyncException):
    """Base exception for failures scoped to a single inbound item."""
    pass


class UnattributableItemError(ItemProcessingError):
    """
    Raised when an inbound item carries no identifier for the syncing client.

    Such items cannot be safely attributed and are never created.
    """
    pass


class ResolutionError(ItemProcessingError):
    """Raised when the identity lookup for an item fails."""
    pass


class MergeError(ItemProcessingError):
    """
    Raised when an inbound item cannot be merged into its canonical record.

    Context should include:
        - item_id: Surrogate ID of the canonical record
        - existing_kind / inbound_kind: Kinds of both records
    """
    pass


class PersistenceError(ItemProcessingError):
    """
    Raised when a repository write or read fails.

    Context should include:
        - operation: INSERT, UPDATE or SELECT
        - table_name: Name of the table
    """
    pass
