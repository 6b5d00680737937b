"""
Unit tests for ui_feedback module.
"""

from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest

import form_engine.ui_feedback as ui_feedback
from form_engine.error_aggregator import ErrorSummary, ErrorSummaryItem
from form_engine.submission_state import FailureReason, SubmissionState, SubmissionStatus


class _DummyContext:
    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        return False


def _mock_st(session_state=None):
    return SimpleNamespace(
        session_state={} if session_state is None else session_state,
        markdown=MagicMock(),
        caption=MagicMock(),
        info=MagicMock(),
        success=MagicMock(),
        warning=MagicMock(),
        error=MagicMock(),
        container=MagicMock(return_value=_DummyContext()),
        spinner=MagicMock(return_value=_DummyContext()),
    )


@pytest.fixture
def st(monkeypatch):
    st = _mock_st()
    monkeypatch.setattr(ui_feedback, "st", st)
    return st


@pytest.fixture
def components(monkeypatch):
    components = MagicMock()
    monkeypatch.setattr(ui_feedback, "components", components)
    return components


class TestAnchors:
    """Test cases for DOM anchors of fields."""

    def test_field_anchor_id(self):
        assert ui_feedback.field_anchor_id('title') == 'field-title'
        assert ui_feedback.field_anchor_id('responsiblePersons.0.email') == 'field-responsiblePersons-0-email'

    def test_render_field_anchor(self, st):
        ui_feedback.render_field_anchor('purposes.zuschuss.amount')

        html = st.markdown.call_args.args[0]
        assert 'id="field-purposes-zuschuss-amount"' in html
        assert st.markdown.call_args.kwargs['unsafe_allow_html'] is True


class TestStreamlitFocusTarget:
    """Test cases for the scroll/focus scripts."""

    def test_scripts_are_queued_until_applied(self, st, components):
        target = ui_feedback.StreamlitFocusTarget(behavior='auto', block='start')

        target.scroll_to('email')
        target.focus('email')

        scripts = st.session_state[ui_feedback.PENDING_FOCUS_KEY]
        assert len(scripts) == 2
        assert 'getElementById("field-email")' in scripts[0]
        assert '"behavior": "auto"' in scripts[0]
        assert '"block": "start"' in scripts[0]
        assert 'input.focus' in scripts[1]
        components.html.assert_not_called()

    def test_apply_pending_focus_injects_and_clears(self, st, components):
        target = ui_feedback.StreamlitFocusTarget()
        target.scroll_to('title')
        target.focus('title')

        assert ui_feedback.apply_pending_focus() == 2
        assert components.html.call_count == 2
        assert components.html.call_args.kwargs['height'] == 0
        assert st.session_state[ui_feedback.PENDING_FOCUS_KEY] == []

        assert ui_feedback.apply_pending_focus() == 0
        assert components.html.call_count == 2


class TestRenderSubmissionStatus:
    """Test cases for rendering the submission state."""

    def test_idle_renders_nothing(self, st):
        ui_feedback.render_submission_status(SubmissionState())

        st.info.assert_not_called()
        st.success.assert_not_called()
        st.warning.assert_not_called()

    def test_submitting(self, st):
        ui_feedback.render_submission_status(SubmissionState(status=SubmissionStatus.SUBMITTING))

        assert 'wird gesendet' in st.info.call_args.args[0]

    def test_succeeded(self, st):
        ui_feedback.render_submission_status(SubmissionState(status=SubmissionStatus.SUCCEEDED))

        assert 'erfolgreich' in st.success.call_args.args[0]

    @pytest.mark.parametrize("reason", list(FailureReason))
    def test_failed(self, st, reason):
        state = SubmissionState(status=SubmissionStatus.FAILED, failure_reason=reason, submit_count=1)

        ui_feedback.render_submission_status(state)

        assert ui_feedback.FAILURE_MESSAGES[reason] in st.warning.call_args.args[0]


class TestRenderErrors:
    """Test cases for the summary banner and inline errors."""

    def test_summary_lists_items(self, st):
        summary = ErrorSummary(
            title='Bitte überprüfen Sie Ihre Eingaben',
            items=(
                ErrorSummaryItem('firstName', 'Vorname', 'Vorname ist erforderlich'),
                ErrorSummaryItem('email', 'E-Mail-Adresse', 'ungültig'),
            ),
        )

        assert ui_feedback.render_error_summary(summary) is True
        assert 'Bitte überprüfen Sie Ihre Eingaben' in st.error.call_args.args[0]
        assert [c.args[0] for c in st.markdown.call_args_list] == [
            '- **Vorname:** Vorname ist erforderlich',
            '- **E-Mail-Adresse:** ungültig',
        ]

    def test_summary_with_message_only(self, st):
        summary = ErrorSummary(title='Fehler beim Absenden des Formulars', message='Netzwerkfehler')

        assert ui_feedback.render_error_summary(summary) is True
        st.markdown.assert_called_once_with('Netzwerkfehler')

    def test_empty_summary_renders_nothing(self, st):
        assert ui_feedback.render_error_summary(ErrorSummary(title='x')) is False
        st.error.assert_not_called()

    def test_render_field_error(self, st):
        orchestrator = MagicMock()
        orchestrator.error_for.side_effect = lambda field: {'title': 'Titel ist erforderlich'}.get(field)

        assert ui_feedback.render_field_error(orchestrator, 'title') == 'Titel ist erforderlich'
        st.caption.assert_called_once_with(':red[Titel ist erforderlich]')

        assert ui_feedback.render_field_error(orchestrator, 'email') is None
        assert st.caption.call_count == 1

    def test_show_loading(self, st):
        with ui_feedback.show_loading("Bitte warten..."):
            pass

        st.spinner.assert_called_once_with("Bitte warten...")
