"""
Unit tests for session_manager module.
"""

import asyncio
from unittest.mock import MagicMock

import pytest

import form_engine.session_manager as session_manager
from form_engine.attachments import Attachment
from form_engine.field_registry import FieldPathRegistry
from form_engine.orchestrator import SubmissionOrchestrator
from form_engine.schema_validator import RuleSchemaValidator
from form_engine.session_manager import (
    ACTIVE_FORM_KEY, LAST_OUTCOME_KEY, ORCHESTRATORS_KEY, FormSessionManager, run_coroutine
)
from form_engine.transport import TransportSuccess


class FakeTransport:
    def __init__(self):
        self.sent_names = []

    def send(self, values, attachments):
        self.sent_names.append([attachment.name for attachment in attachments])
        return TransportSuccess({'success': True})


def _factory(form_id='antrag', transport=None):
    return lambda: SubmissionOrchestrator(
        registry=FieldPathRegistry(['title']),
        schema_validator=RuleSchemaValidator({'title': {'type': 'string', 'required': True}}),
        transport=transport or FakeTransport(),
        form_id=form_id,
    )


@pytest.fixture
def session_state(monkeypatch):
    session_state = {}
    monkeypatch.setattr(session_manager.st, "session_state", session_state)
    return session_state


class TestFormSessionManager:
    """Test cases for orchestrators kept in session state."""

    def test_initialize_does_not_overwrite(self, session_state):
        session_state[ACTIVE_FORM_KEY] = 'antrag'

        FormSessionManager.initialize()

        assert session_state[ACTIVE_FORM_KEY] == 'antrag'
        assert session_state[ORCHESTRATORS_KEY] == {}
        assert session_state[LAST_OUTCOME_KEY] == {}
        assert 'form_session_started' in session_state

    def test_get_orchestrator_reuses_instance(self, session_state):
        factory = MagicMock(side_effect=_factory())

        first = FormSessionManager.get_orchestrator('antrag', factory)
        second = FormSessionManager.get_orchestrator('antrag', factory)

        assert first is second
        assert factory.call_count == 1
        assert session_state[ACTIVE_FORM_KEY] == 'antrag'

    def test_switching_forms_tears_down_previous(self, session_state):
        antrag = FormSessionManager.get_orchestrator('antrag', _factory('antrag'))
        preview = MagicMock()
        antrag.add_attachment('files', Attachment('a.pdf', 'application/pdf', b'1', preview))

        gruppe = FormSessionManager.get_orchestrator('gruppe', _factory('gruppe'))

        assert antrag.is_torn_down
        preview.release.assert_called_once()
        assert not gruppe.is_torn_down
        assert set(session_state[ORCHESTRATORS_KEY]) == {'gruppe'}
        assert session_state[ACTIVE_FORM_KEY] == 'gruppe'

    def test_torn_down_orchestrator_is_recreated(self, session_state):
        first = FormSessionManager.get_orchestrator('antrag', _factory())
        first.teardown()

        second = FormSessionManager.get_orchestrator('antrag', _factory())

        assert second is not first
        assert not second.is_torn_down

    def test_teardown_form(self, session_state):
        FormSessionManager.get_orchestrator('antrag', _factory())

        assert FormSessionManager.teardown_form('antrag') is True
        assert FormSessionManager.teardown_form('antrag') is False
        assert session_state[ACTIVE_FORM_KEY] is None

    def test_teardown_all(self, session_state):
        FormSessionManager.initialize()
        session_state[ORCHESTRATORS_KEY]['a'] = _factory('a')()
        session_state[ORCHESTRATORS_KEY]['b'] = _factory('b')()

        assert FormSessionManager.teardown_all() == 2
        assert session_state[ORCHESTRATORS_KEY] == {}

    def test_run_submit_remembers_outcome(self, session_state):
        orchestrator = FormSessionManager.get_orchestrator('antrag', _factory())

        outcome = FormSessionManager.run_submit(orchestrator, {'title': 'Sommerfest'}, form_key='antrag')

        assert outcome.succeeded
        assert FormSessionManager.get_last_outcome('antrag') is outcome
        assert FormSessionManager.get_last_outcome('gruppe') is None

    def test_run_submit_calls_on_success_only_when_succeeded(self, session_state):
        orchestrator = FormSessionManager.get_orchestrator('antrag', _factory())
        successes = []

        failed = FormSessionManager.run_submit(orchestrator, {'title': ''}, on_success=successes.append)
        succeeded = FormSessionManager.run_submit(orchestrator, {'title': 'Sommerfest'}, on_success=successes.append)

        assert not failed.succeeded
        assert successes == [succeeded]

    def test_resubmission_keeps_uploaded_files(self, session_state):
        transport = FakeTransport()
        orchestrator = FormSessionManager.get_orchestrator('antrag', _factory(transport=transport))
        uploads = ['antrag.pdf']

        def sync():
            if [a.name for a in orchestrator.attachments.get('files')] == uploads:
                return
            for index in reversed(range(orchestrator.attachments.count('files'))):
                orchestrator.remove_attachment('files', index)
            for name in uploads:
                orchestrator.add_attachment('files', Attachment(name, 'application/pdf', b'%PDF'))

        sync()
        first = FormSessionManager.run_submit(orchestrator, {'title': 'Sommerfest'}, sync_attachments=sync)
        assert first.succeeded
        assert orchestrator.attachments.get('files') == []

        # the next script run adopts the new upload while the form still shows success
        uploads = ['nachtrag.pdf']
        sync()
        second = FormSessionManager.run_submit(orchestrator, {'title': 'Sommerfest'}, sync_attachments=sync)

        assert second.succeeded
        assert transport.sent_names == [['antrag.pdf'], ['nachtrag.pdf']]

    def test_get_session_info(self, session_state):
        orchestrator = FormSessionManager.get_orchestrator('antrag', _factory())
        FormSessionManager.run_submit(orchestrator, {'title': ''})

        info = FormSessionManager.get_session_info()

        assert info['active_form'] == 'antrag'
        assert info['forms'] == {'antrag': 'failed(client_validation)'}


class TestRunCoroutine:
    """Test cases for running coroutines from script code."""

    def test_runs_without_loop(self):
        async def answer():
            return 42

        assert run_coroutine(answer()) == 42

    def test_refuses_inside_running_loop(self):
        async def inner():
            return 1

        async def outer():
            with pytest.raises(RuntimeError):
                run_coroutine(inner())

        asyncio.run(outer())
