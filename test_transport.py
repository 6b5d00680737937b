"""
Unit tests for transport module.
"""

import asyncio
import json
from datetime import date
from unittest.mock import MagicMock

import pytest
import requests

from form_engine import validation_messages
from form_engine.attachments import Attachment
from form_engine.transport import (
    HttpTransport,
    TransportFailure,
    TransportFieldRejection,
    TransportSuccess,
    coerce_transport_result,
    interpret_response,
)


class TestInterpretResponse:
    """Test cases for mapping HTTP responses to transport results."""

    def test_success(self):
        result = interpret_response(200, {'success': True, 'antragId': '42'})

        assert isinstance(result, TransportSuccess)
        assert result.data['antragId'] == '42'

    def test_field_errors_become_rejection(self):
        result = interpret_response(400, {
            'success': False,
            'error': 'Validierung fehlgeschlagen',
            'fieldErrors': {'title': 'too long', 'summary': ''},
        })

        assert isinstance(result, TransportFieldRejection)
        assert result.field_errors == {'title': 'too long'}
        assert result.message == 'Validierung fehlgeschlagen'

    def test_success_false_on_2xx_is_not_success(self):
        result = interpret_response(200, {'success': False, 'fieldErrors': {'email': 'bereits registriert'}})

        assert isinstance(result, TransportFieldRejection)

    def test_bad_request_without_field_errors(self):
        result = interpret_response(400, {'success': False})

        assert isinstance(result, TransportFailure)
        assert result.message == validation_messages.BAD_REQUEST_ERROR
        assert result.status_code == 400

    def test_payload_too_large(self):
        result = interpret_response(413, None)

        assert result == TransportFailure(validation_messages.PAYLOAD_TOO_LARGE_ERROR, 413)

    def test_server_error_prefers_body_message(self):
        assert interpret_response(500, {'error': 'Datenbank nicht erreichbar'}).message == 'Datenbank nicht erreichbar'
        assert interpret_response(503, None).message == validation_messages.SERVER_ERROR

    def test_not_found(self):
        assert interpret_response(404, 'kein json').message == validation_messages.NOT_FOUND_ERROR


class TestCoerceTransportResult:
    """Test cases for accepting plain mapping results."""

    def test_result_types_pass_through(self):
        success = TransportSuccess({'id': 1})

        assert coerce_transport_result(success) is success

    def test_ok_mapping(self):
        assert coerce_transport_result({'ok': True, 'data': {'id': 7}}) == TransportSuccess({'id': 7})

    def test_field_errors_mapping(self):
        result = coerce_transport_result({'ok': False, 'fieldErrors': {'title': 'too long'}})

        assert result == TransportFieldRejection({'title': 'too long'}, None)

    def test_message_mapping(self):
        result = coerce_transport_result({'ok': False, 'message': 'Payload too large', 'status': 413})

        assert result == TransportFailure('Payload too large', 413)

    @pytest.mark.parametrize("value", [None, 'ok', 42, {'data': 1}])
    def test_unexpected_values_are_malformed(self, value):
        assert coerce_transport_result(value) == TransportFailure(validation_messages.MALFORMED_RESPONSE_ERROR)


class TestHttpTransport:
    """Test cases for the requests based transport."""

    def setup_method(self):
        self.session = MagicMock(spec=requests.Session)
        self.response = MagicMock()
        self.response.status_code = 200
        self.response.json.return_value = {'success': True}
        self.session.post.return_value = self.response
        self.transport = HttpTransport('https://portal.example/api/submit', timeout=5, session=self.session)

    def test_json_post_without_attachments(self):
        result = self.transport.send_sync({'title': 'Sommerfest', 'date': date(2025, 7, 1)})

        assert isinstance(result, TransportSuccess)
        _, kwargs = self.session.post.call_args
        assert kwargs['json'] == {'title': 'Sommerfest', 'date': '2025-07-01'}
        assert kwargs['timeout'] == 5
        assert 'files' not in kwargs

    def test_multipart_post_with_attachments(self):
        attachments = [
            Attachment('a.pdf', 'application/pdf', b'pdf'),
            Attachment('b.png', 'image/png', b'png'),
        ]

        self.transport.send_sync({'title': 'Antrag', 'purposes': {'zuschuss': {'enabled': True}}, 'urgent': False},
                                 attachments)

        _, kwargs = self.session.post.call_args
        assert kwargs['data']['title'] == 'Antrag'
        assert json.loads(kwargs['data']['purposes']) == {'zuschuss': {'enabled': True}}
        assert kwargs['data']['urgent'] == 'false'
        assert kwargs['data']['fileCount'] == '2'
        assert kwargs['files'] == [
            ('file-0', ('a.pdf', b'pdf', 'application/pdf')),
            ('file-1', ('b.png', b'png', 'image/png')),
        ]

    def test_non_json_success_is_malformed(self):
        self.response.json.side_effect = ValueError("no json")

        result = self.transport.send_sync({'title': 'x'})

        assert result == TransportFailure(validation_messages.MALFORMED_RESPONSE_ERROR, 200)

    def test_non_json_error_uses_status(self):
        self.response.status_code = 502
        self.response.json.side_effect = ValueError("no json")

        assert self.transport.send_sync({}).message == validation_messages.SERVER_ERROR

    def test_network_errors_propagate(self):
        self.session.post.side_effect = requests.ConnectionError("refused")

        with pytest.raises(requests.ConnectionError):
            self.transport.send_sync({})

    def test_async_send(self):
        self.response.status_code = 422
        self.response.json.return_value = {'success': False, 'fieldErrors': {'title': 'too long'}}

        result = asyncio.run(self.transport.send({'title': 'x' * 300}))

        assert result == TransportFieldRejection({'title': 'too long'}, None)

    def test_close(self):
        self.transport.close()

        self.session.close.assert_called_once()
