"""
Error handling utilities for the form engine.

Turns unexpected exceptions from collaborators into user-friendly German
messages and records registry gaps so misconfigured forms can be audited.
"""

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Iterable, Optional, Union

import requests

from . import validation_messages
from .errors import TransportError

logger = logging.getLogger(__name__)


class ErrorType:
    """Error type constants."""
    VALIDATION = "validation"
    NETWORK = "network"
    TRANSPORT = "transport"
    PAYLOAD = "payload"
    DATA_CORRUPTION = "data_corruption"
    SYSTEM = "system"


class ErrorHandler:
    """Error classification and reporting for submission attempts."""

    @staticmethod
    def classify(error: Exception) -> str:
        """
        Map an exception raised by a collaborator to an ErrorType.

        Args:
            error: The exception that occurred

        Returns:
            One of the ErrorType constants
        """
        if isinstance(error, (requests.Timeout, requests.ConnectionError, ConnectionError, TimeoutError)):
            return ErrorType.NETWORK
        if isinstance(error, (json.JSONDecodeError, UnicodeDecodeError)):
            return ErrorType.DATA_CORRUPTION
        if isinstance(error, requests.RequestException):
            return ErrorType.TRANSPORT
        if isinstance(error, TransportError):
            return ErrorType.TRANSPORT
        return ErrorType.SYSTEM

    @staticmethod
    def get_user_message(error: Exception, error_type: Optional[str] = None) -> str:
        """Generate a user-friendly German message for an exception."""
        if error_type is None:
            error_type = ErrorHandler.classify(error)

        error_messages: Dict[str, Dict[Any, str]] = {
            ErrorType.NETWORK: {
                requests.Timeout: validation_messages.TIMEOUT_ERROR,
                TimeoutError: validation_messages.TIMEOUT_ERROR,
                requests.ConnectionError: validation_messages.NETWORK_ERROR,
                ConnectionError: validation_messages.NETWORK_ERROR,
                "default": validation_messages.NETWORK_ERROR
            },

            ErrorType.DATA_CORRUPTION: {
                "default": validation_messages.MALFORMED_RESPONSE_ERROR
            },

            ErrorType.PAYLOAD: {
                "default": validation_messages.PAYLOAD_TOO_LARGE_ERROR
            },

            ErrorType.TRANSPORT: {
                TransportError: None,
                "default": validation_messages.SERVER_ERROR
            },

            ErrorType.SYSTEM: {
                "default": validation_messages.GENERIC_ERROR
            }
        }

        error_type_messages = error_messages.get(error_type, error_messages[ErrorType.SYSTEM])

        for exception_type, message in error_type_messages.items():
            if exception_type != "default" and isinstance(error, exception_type):
                # TransportError already carries a user-facing message
                return message if message is not None else str(error)

        return error_type_messages.get("default", validation_messages.GENERIC_ERROR)

    @staticmethod
    def to_transport_error(error: Exception, context: str) -> TransportError:
        """
        Log an exception escaping the transport and reclassify it.

        Args:
            error: Exception raised by the transport collaborator
            context: Where the error occurred (for the log)

        Returns:
            TransportError carrying the user-facing message
        """
        if isinstance(error, TransportError):
            logger.error(f"Transport error in {context}: {error}")
            return error

        logger.error(f"Error in {context}: {str(error)}", exc_info=True)
        return TransportError(ErrorHandler.get_user_message(error), original_error=error)

    @staticmethod
    def log_registry_gap(
        fields: Iterable[str],
        form_id: Optional[str] = None,
        log_path: Optional[Union[str, Path]] = None
    ) -> bool:
        """
        Record issues that auto-navigation cannot reach.

        The record is appended to a JSONL audit file so forms with broken
        field wiring can be found later. Failures to write are logged only.

        Args:
            fields: Field ids missing from the form's field order
            form_id: Identifier of the form
            log_path: Audit file; only the log message is emitted when None

        Returns:
            True if an audit record was written
        """
        fields = list(fields)
        logger.warning(
            f"Registry gap in form '{form_id or 'unknown'}': no field order entry for {', '.join(fields)}"
        )

        if log_path is None:
            return False

        try:
            gap_record = {
                'timestamp': datetime.now().isoformat(),
                'event': 'registry_gap',
                'form_id': form_id,
                'fields': fields,
            }

            log_file = Path(log_path)
            log_file.parent.mkdir(parents=True, exist_ok=True)

            with open(log_file, 'a', encoding='utf-8') as f:
                json.dump(gap_record, f)
                f.write('\n')
            return True

        except Exception as e:
            logger.error(f"Failed to write registry gap audit record: {e}")
            return False
