"""
Streamlit feedback for the form engine.

Renders the submission state, the error summary banner and inline field
errors, and implements the focus target by injecting a small script that
scrolls to and focuses the field's DOM anchor.
"""

import json
import re
import streamlit as st
import streamlit.components.v1 as components
from contextlib import contextmanager
from typing import Optional
import logging

from .error_aggregator import ErrorSummary
from .submission_state import FailureReason, SubmissionState, SubmissionStatus

logger = logging.getLogger(__name__)

ANCHOR_PREFIX = "field-"
PENDING_FOCUS_KEY = 'form_pending_focus'

STATUS_MESSAGES = {
    SubmissionStatus.VALIDATING: "Eingaben werden geprüft...",
    SubmissionStatus.SUBMITTING: "Formular wird gesendet...",
    SubmissionStatus.SUCCEEDED: "Vielen Dank! Ihr Formular wurde erfolgreich übermittelt.",
}

FAILURE_MESSAGES = {
    FailureReason.CLIENT_VALIDATION: "Bitte korrigieren Sie die markierten Felder.",
    FailureReason.SERVER_VALIDATION: "Einige Angaben wurden vom Server abgelehnt.",
    FailureReason.TRANSPORT: "Das Formular konnte nicht gesendet werden.",
}


def field_anchor_id(field: str) -> str:
    """DOM id of the anchor rendered above a field."""
    return ANCHOR_PREFIX + re.sub(r'[^A-Za-z0-9_-]', '-', field)


def render_field_anchor(field: str) -> None:
    """Render the invisible anchor the focus target scrolls to."""
    st.markdown(f'<div id="{field_anchor_id(field)}"></div>', unsafe_allow_html=True)


class StreamlitFocusTarget:
    """
    Focus target that scrolls the page to a field anchor and focuses its input.

    Actions are queued in session state and applied by ``apply_pending_focus``
    after the page has been rendered, so they survive the rerun that follows
    a submit.
    """

    def __init__(self, behavior: str = "smooth", block: str = "center"):
        self.behavior = behavior
        self.block = block

    def scroll_to(self, field: str) -> None:
        options = json.dumps({'behavior': self.behavior, 'block': self.block})
        self._queue(field, f"anchor.scrollIntoView({options});")

    def focus(self, field: str) -> None:
        self._queue(
            field,
            "const holder = anchor.closest('[data-testid=\"stElementContainer\"], .element-container');"
            "const widget = holder ? holder.nextElementSibling : anchor.nextElementSibling;"
            "const input = widget && widget.querySelector('input, textarea, select');"
            "if (input) { input.focus({preventScroll: true}); }"
        )

    def _queue(self, field: str, action: str) -> None:
        anchor_id = json.dumps(field_anchor_id(field))
        script = (
            "<script>"
            f"const anchor = window.parent.document.getElementById({anchor_id});"
            f"if (anchor) {{ {action} }}"
            "</script>"
        )
        st.session_state.setdefault(PENDING_FOCUS_KEY, []).append(script)
        logger.debug(f"Queued focus script for field '{field}'")


def apply_pending_focus() -> int:
    """
    Inject the queued focus scripts. Call once at the end of the page.

    Returns:
        Number of scripts injected
    """
    scripts = st.session_state.get(PENDING_FOCUS_KEY) or []
    st.session_state[PENDING_FOCUS_KEY] = []
    for script in scripts:
        components.html(script, height=0)
    return len(scripts)


def render_submission_status(state: SubmissionState) -> None:
    """Show the current submission state; read-only."""
    if state.status == SubmissionStatus.IDLE:
        return

    if state.status in (SubmissionStatus.VALIDATING, SubmissionStatus.SUBMITTING):
        st.info(f"⏳ {STATUS_MESSAGES[state.status]}")
    elif state.status == SubmissionStatus.SUCCEEDED:
        st.success(f"✅ {STATUS_MESSAGES[state.status]}")
    elif state.status == SubmissionStatus.FAILED and state.failure_reason is not None:
        st.warning(f"⚠️ {FAILURE_MESSAGES[state.failure_reason]}")


def render_error_summary(summary: ErrorSummary) -> bool:
    """
    Render the top-level banner listing every visible issue in field order.

    Returns:
        True if a banner was rendered
    """
    if not summary.has_errors:
        return False

    with st.container():
        st.error(f"❌ **{summary.title}**")
        if summary.message:
            st.markdown(summary.message)
        for item in summary.items:
            st.markdown(f"- **{item.label}:** {item.message}")
    return True


def render_field_error(orchestrator, field: str) -> Optional[str]:
    """
    Render the inline message of a field below its input.

    Returns:
        The rendered message, or None
    """
    message = orchestrator.error_for(field)
    if message:
        st.caption(f":red[{message}]")
    return message


@contextmanager
def show_loading(message: str = "Formular wird gesendet..."):
    """Context manager for spinner loading indicator."""
    with st.spinner(message):
        yield

