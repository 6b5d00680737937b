"""
Transport collaborators for form submissions.

The transport sends validated values and attachments to the remote system
and reports one of three results: success, a field-level rejection, or a
failure without field detail.
"""

import asyncio
import json
import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Awaitable, Dict, List, Mapping, Optional, Protocol, Sequence, Tuple, Union

import requests

from . import validation_messages
from .attachments import Attachment

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TransportSuccess:
    data: Any = None


@dataclass(frozen=True)
class TransportFieldRejection:
    """The remote system rejected specific fields."""
    field_errors: Dict[str, str] = field(default_factory=dict)
    message: Optional[str] = None


@dataclass(frozen=True)
class TransportFailure:
    """Failure without field-level detail (size limit, outage, malformed response)."""
    message: str
    status_code: Optional[int] = None


TransportResult = Union[TransportSuccess, TransportFieldRejection, TransportFailure]


class Transport(Protocol):
    """Sends a submission; may answer synchronously or with an awaitable."""

    def send(self, values: Mapping[str, Any],
             attachments: Sequence[Attachment]) -> Union[TransportResult, Awaitable[TransportResult]]:
        ...


def interpret_response(status_code: int, body: Any) -> TransportResult:
    """
    Map an HTTP response to a transport result.

    The remote contract is a JSON body of the form
    ``{"success": bool, "error": str, "fieldErrors": {field: message}}``.

    Args:
        status_code: HTTP status code
        body: Decoded JSON body, or None if the body was not JSON

    Returns:
        TransportSuccess, TransportFieldRejection or TransportFailure
    """
    body_dict = body if isinstance(body, dict) else {}
    error_message = body_dict.get('error') if isinstance(body_dict.get('error'), str) else None

    if 200 <= status_code < 300:
        if body_dict.get('success') is False:
            return _rejection_or_failure(body_dict, error_message, status_code)
        return TransportSuccess(data=body)

    if status_code == 413:
        return TransportFailure(validation_messages.PAYLOAD_TOO_LARGE_ERROR, status_code)

    if status_code >= 500:
        return TransportFailure(error_message or validation_messages.SERVER_ERROR, status_code)

    if status_code == 404:
        return TransportFailure(error_message or validation_messages.NOT_FOUND_ERROR, status_code)

    return _rejection_or_failure(body_dict, error_message, status_code)


def coerce_transport_result(result: Any) -> TransportResult:
    """
    Accept the plain mapping shapes ``{ok: true, data}``, ``{ok: false,
    fieldErrors}`` and ``{ok: false, message}`` besides the result types.

    Anything else is reported as a malformed response.
    """
    if isinstance(result, (TransportSuccess, TransportFieldRejection, TransportFailure)):
        return result

    if isinstance(result, Mapping) and 'ok' in result:
        if result['ok']:
            return TransportSuccess(data=result.get('data'))
        field_errors = result.get('fieldErrors') or result.get('field_errors')
        if isinstance(field_errors, Mapping) and field_errors:
            return TransportFieldRejection(
                field_errors={str(k): str(v) for k, v in field_errors.items() if v},
                message=result.get('message'),
            )
        return TransportFailure(result.get('message') or validation_messages.GENERIC_ERROR,
                                result.get('status'))

    logger.error(f"Transport returned an unexpected result: {type(result).__name__}")
    return TransportFailure(validation_messages.MALFORMED_RESPONSE_ERROR)


def _rejection_or_failure(body: Dict[str, Any], error_message: Optional[str],
                          status_code: int) -> TransportResult:
    field_errors = body.get('fieldErrors')
    if isinstance(field_errors, dict) and field_errors:
        return TransportFieldRejection(
            field_errors={str(k): str(v) for k, v in field_errors.items() if v},
            message=error_message,
        )
    return TransportFailure(error_message or validation_messages.BAD_REQUEST_ERROR, status_code)


def _to_form_value(value: Any) -> str:
    """Encode one value for a multipart form part."""
    if value is None:
        return ''
    if isinstance(value, bool):
        return 'true' if value else 'false'
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, (dict, list, tuple)):
        return json.dumps(value, default=_json_default)
    return str(value)


def _json_default(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return str(value)
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


class HttpTransport:
    """
    Transport posting submissions to an HTTP endpoint with requests.

    Without attachments the values are posted as JSON. With attachments a
    multipart body is sent: one part per value, ``file-<n>`` parts for the
    payloads and a ``fileCount`` part.
    """

    def __init__(self, endpoint: str, timeout: float = 30.0, session: Optional[requests.Session] = None):
        self.endpoint = endpoint
        self.timeout = timeout
        self.session = session or requests.Session()

    async def send(self, values: Mapping[str, Any], attachments: Sequence[Attachment] = ()) -> TransportResult:
        """
        Send the submission without blocking the event loop.

        Raises:
            requests.RequestException: On network failures
        """
        return await asyncio.to_thread(self.send_sync, values, attachments)

    def send_sync(self, values: Mapping[str, Any], attachments: Sequence[Attachment] = ()) -> TransportResult:
        if attachments:
            data, files = self._build_multipart(values, attachments)
            logger.info(f"POST {self.endpoint} (multipart, {len(files)} file(s))")
            response = self.session.post(self.endpoint, data=data, files=files, timeout=self.timeout)
        else:
            payload = json.loads(json.dumps(dict(values), default=_json_default))
            logger.info(f"POST {self.endpoint} (json)")
            response = self.session.post(self.endpoint, json=payload, timeout=self.timeout)

        try:
            body = response.json()
        except ValueError:
            logger.warning(f"Response of {self.endpoint} with status {response.status_code} is not JSON")
            if 200 <= response.status_code < 300:
                return TransportFailure(validation_messages.MALFORMED_RESPONSE_ERROR, response.status_code)
            body = None

        result = interpret_response(response.status_code, body)
        logger.info(f"Response {response.status_code} from {self.endpoint}: {type(result).__name__}")
        return result

    @staticmethod
    def _build_multipart(values: Mapping[str, Any],
                         attachments: Sequence[Attachment]) -> Tuple[Dict[str, str], List[Tuple[str, Tuple[str, bytes, str]]]]:
        data = {key: _to_form_value(value) for key, value in values.items()}
        files = [
            (f"file-{index}", (attachment.name, attachment.data, attachment.content_type))
            for index, attachment in enumerate(attachments)
        ]
        data['fileCount'] = str(len(files))
        return data, files

    def close(self) -> None:
        self.session.close()
