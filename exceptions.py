"""
Custom Exception Hierarchy - Domain-specific error types

Provides clear, typed exceptions for different failure modes across the system.
All custom exceptions inherit from LectioError for easy catching.

Design Philosophy:
- Exceptions are data: Include context for debugging
- Fail explicitly: Better to raise specific exception than generic
- Catch specifically: Handler can distinguish error types
- Service errors carry an HTTP-style status code; the core never imports HTTP
"""

from typing import Optional, Dict, Any


class LectioError(Exception):
    """Base exception for all lectio errors

    All custom exceptions inherit from this, enabling:
    - Catch all lectio errors with single except clause
    - Distinguish our errors from library errors
    - Check if error is retryable via is_retryable property
    """

    # Default: errors are not retryable (permanent failure)
    _retryable: bool = False

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        self.message = message
        self.context = context or {}
        super().__init__(message)

    @property
    def is_retryable(self) -> bool:
        """Check if this error represents a transient failure that should be retried.

        Returns:
            True for transient failures (connection drops, timeouts)
            False for permanent failures (validation, missing data, wrong state)
        """
        return self._retryable

    def __str__(self):
        base_msg = super().__str__()
        if self.context:
            context_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            return f"{base_msg} (context: {context_str})"
        return base_msg


# ========== Database Errors ==========


class DatabaseError(LectioError):
    """Database operation failures

    Examples:
    - Query errors
    - Transaction rollbacks
    - Data integrity violations
    """
    pass


class DatabaseConnectionError(DatabaseError):
    """Failed to establish or maintain database connection"""
    _retryable = True


class DataIntegrityError(DatabaseError):
    """Data integrity constraint violation

    Examples:
    - Foreign key violations
    - Unique constraint violations
    - Check constraint failures
    """

    def __init__(self, message: str, table: Optional[str] = None, constraint: Optional[str] = None):
        self.table = table
        self.constraint = constraint
        context = {}
        if table:
            context['table'] = table
        if constraint:
            context['constraint'] = constraint
        super().__init__(message, context)


# ========== Service Errors ==========


class ServiceError(LectioError):
    """Domain failure with an HTTP-style status code

    Raised by the voting core. The boundary layer maps status_code
    straight onto the response; nothing in the core retries these.
    """

    status_code: int = 400

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        if status_code is not None:
            self.status_code = status_code
        super().__init__(message, context)


class NotFoundError(ServiceError):
    """Group, week, proposal, reading item or comment is missing

    Also used when the caller may not learn whether the entity exists.
    """

    status_code = 404

    def __init__(self, message: str, entity: Optional[str] = None, entity_id: Optional[str] = None):
        self.entity = entity
        self.entity_id = entity_id
        context = {}
        if entity:
            context['entity'] = entity
        if entity_id:
            context['entity_id'] = entity_id
        super().__init__(message, context=context)


class ForbiddenError(ServiceError):
    """Caller is not a member, or their role is too low"""

    status_code = 403


class InvalidStateError(ServiceError):
    """Operation does not fit the current week state

    Examples:
    - Voting is closed
    - A new round started while the current one is still open
    - Proposal is not eligible for this week
    """

    status_code = 400


class InvalidInputError(ServiceError):
    """Malformed caller input

    Examples:
    - Reference that does not parse
    - Empty or over-long text
    - Unknown enum value
    """

    status_code = 422

    def __init__(self, message: str, field: Optional[str] = None, value: Optional[Any] = None):
        self.field = field
        self.value = value

        context = {}
        if field:
            context['field'] = field
        if value is not None:
            context['value'] = str(value)

        super().__init__(message, context=context)

