"""
Custom exception classes for the form validation and submission engine.

This module provides the error taxonomy used when a submission attempt fails
and the programmer-error exceptions raised on illegal use of the engine.
"""

import logging
from typing import Optional, Dict, Any, List

logger = logging.getLogger(__name__)


class FormEngineError(Exception):
    """
    Base exception for form engine errors.

    Attributes:
        message: Error message
        context: Additional context information
        recovery_suggestions: List of suggested recovery actions
    """

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None,
                 recovery_suggestions: Optional[List[str]] = None):
        self.message = message
        self.context = context or {}
        self.recovery_suggestions = recovery_suggestions or []
        super().__init__(self.message)

    def __str__(self) -> str:
        return self.message

    def get_full_details(self) -> Dict[str, Any]:
        """Get complete error details including context and suggestions."""
        return {
            'error_type': self.__class__.__name__,
            'message': self.message,
            'context': self.context,
            'recovery_suggestions': self.recovery_suggestions
        }


class ClientValidationError(FormEngineError):
    """
    Raised when schema or custom rules failed before any network call.

    The transport is never reached for this kind of failure.
    """

    def __init__(self, field_messages: Dict[str, str], message: Optional[str] = None):
        self.field_messages = dict(field_messages)

        if message is None:
            message = f"Client validation failed for {len(self.field_messages)} field(s)"

        context = {
            'fields': list(self.field_messages.keys()),
        }

        recovery_suggestions = [
            "Correct the highlighted fields and submit again",
        ]

        super().__init__(message, context, recovery_suggestions)


class ServerValidationError(FormEngineError):
    """
    Raised when the remote system rejected specific fields.
    """

    def __init__(self, field_errors: Dict[str, str], message: Optional[str] = None):
        self.field_errors = dict(field_errors)

        if message is None:
            message = f"Server rejected {len(self.field_errors)} field(s)"

        context = {
            'fields': list(self.field_errors.keys()),
        }

        recovery_suggestions = [
            "Correct the rejected fields and retry the submission",
        ]

        super().__init__(message, context, recovery_suggestions)


class TransportError(FormEngineError):
    """
    Raised for failures without field-level detail.

    This includes size limits, outages, and malformed responses.
    """

    def __init__(self, message: str, status_code: Optional[int] = None,
                 original_error: Optional[Exception] = None):
        self.status_code = status_code
        self.original_error = original_error

        context: Dict[str, Any] = {'status_code': status_code}
        if original_error is not None:
            context['original_error_type'] = type(original_error).__name__
            context['original_error_message'] = str(original_error)

        recovery_suggestions = [
            "Check the network connection",
            "Reduce the size or number of attachments",
            "Retry the submission later",
        ]

        super().__init__(message, context, recovery_suggestions)


class InvalidTransitionError(FormEngineError):
    """
    Raised when a submission state transition is not allowed from the current state.
    """

    def __init__(self, transition: str, current_state: str, message: Optional[str] = None):
        self.transition = transition
        self.current_state = current_state

        if message is None:
            message = f"Transition '{transition}' is not allowed from state '{current_state}'"

        super().__init__(message, {'transition': transition, 'current_state': current_state})


class RegistrationError(FormEngineError):
    """
    Raised when a field order or form definition is malformed.

    Duplicate field ids, unknown section anchors, and missing definition keys
    end up here.
    """

    def __init__(self, message: str, fields: Optional[List[str]] = None):
        self.fields = list(fields or [])

        recovery_suggestions = [
            "Check the field order of the form definition for duplicates",
            "Verify that section anchors refer to registered fields",
        ]

        super().__init__(message, {'fields': self.fields}, recovery_suggestions)


class AttachmentError(FormEngineError):
    """
    Raised on misuse of attachment resources, e.g. releasing a handle twice.
    """

    def __init__(self, message: str, attachment_name: Optional[str] = None):
        self.attachment_name = attachment_name
        super().__init__(message, {'attachment_name': attachment_name})


def log_error_with_context(error: FormEngineError, operation: str) -> None:
    """
    Log error with full context information.

    Args:
        error: FormEngineError instance
        operation: Description of the operation that failed
    """
    logger.error(f"Form engine error during {operation}")
    logger.error(f"Error type: {type(error).__name__}")
    logger.error(f"Error message: {error.message}")

    if error.context:
        logger.error("Error context:")
        for key, value in error.context.items():
            logger.error(f"  {key}: {value}")

    if error.recovery_suggestions:
        logger.info("Recovery suggestions:")
        for i, suggestion in enumerate(error.recovery_suggestions, 1):
            logger.info(f"  {i}. {suggestion}")
