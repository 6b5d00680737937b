"""
Session state management for Streamlit forms.
Keeps one submission orchestrator per form in the session and tears it down
when the user leaves the form.
"""

import asyncio
import streamlit as st
from typing import Any, Callable, Coroutine, Dict, Mapping, Optional
from datetime import datetime
import logging

from .orchestrator import SubmissionOrchestrator, SubmissionOutcome

logger = logging.getLogger(__name__)

ORCHESTRATORS_KEY = 'form_orchestrators'
ACTIVE_FORM_KEY = 'active_form'
LAST_OUTCOME_KEY = 'form_last_outcomes'


class FormSessionManager:
    """Manages the form orchestrators stored in Streamlit session state."""

    @staticmethod
    def initialize():
        """Initialize session state keys; existing keys are not overwritten."""
        defaults = {
            ORCHESTRATORS_KEY: {},
            ACTIVE_FORM_KEY: None,
            LAST_OUTCOME_KEY: {},
            'form_session_started': datetime.now(),
        }

        for key, default_value in defaults.items():
            if key not in st.session_state:
                st.session_state[key] = default_value

    @staticmethod
    def _orchestrators() -> Dict[str, SubmissionOrchestrator]:
        FormSessionManager.initialize()
        return st.session_state[ORCHESTRATORS_KEY]

    @staticmethod
    def get_orchestrator(form_key: str, factory: Callable[[], SubmissionOrchestrator]) -> SubmissionOrchestrator:
        """
        Get the orchestrator of a form, creating it on first use.

        Switching to another form tears down the previously active one, so
        its attachments are released and in-flight results are discarded.
        """
        orchestrators = FormSessionManager._orchestrators()

        active_form = st.session_state[ACTIVE_FORM_KEY]
        if active_form is not None and active_form != form_key:
            FormSessionManager.teardown_form(active_form)

        orchestrator = orchestrators.get(form_key)
        if orchestrator is None or orchestrator.is_torn_down:
            orchestrator = factory()
            orchestrators[form_key] = orchestrator
            logger.info(f"Created orchestrator for form '{form_key}'")

        st.session_state[ACTIVE_FORM_KEY] = form_key
        return orchestrator

    @staticmethod
    def teardown_form(form_key: str) -> bool:
        """
        Tear down and forget the orchestrator of a form.

        Returns:
            True if an orchestrator was torn down
        """
        orchestrators = FormSessionManager._orchestrators()
        orchestrator = orchestrators.pop(form_key, None)
        st.session_state[LAST_OUTCOME_KEY].pop(form_key, None)

        if st.session_state[ACTIVE_FORM_KEY] == form_key:
            st.session_state[ACTIVE_FORM_KEY] = None

        if orchestrator is None:
            return False

        orchestrator.teardown()
        logger.info(f"Tore down form '{form_key}'")
        return True

    @staticmethod
    def teardown_all() -> int:
        """Tear down every form of the session (e.g. on logout)."""
        form_keys = list(FormSessionManager._orchestrators().keys())
        for form_key in form_keys:
            FormSessionManager.teardown_form(form_key)
        return len(form_keys)

    @staticmethod
    def run_submit(orchestrator: SubmissionOrchestrator, values: Mapping[str, Any],
                   form_key: Optional[str] = None,
                   sync_attachments: Optional[Callable[[], None]] = None,
                   on_success: Optional[Callable[[SubmissionOutcome], None]] = None) -> SubmissionOutcome:
        """
        Run a submission from Streamlit's synchronous script run.

        The outcome is remembered per form so it survives the rerun that
        follows the submit button.

        Args:
            orchestrator: Orchestrator of the form
            values: Current form values
            form_key: Key under which the outcome is remembered
            sync_attachments: Copies the uploader content into the attachment
                store; called after a resubmission reset so the reset does
                not drop the files the uploader still shows
            on_success: Called with the outcome of a successful submit, e.g. to
                clear the uploader whose files were released
        """
        if orchestrator.state.succeeded:
            logger.info(f"Resubmitting form '{orchestrator.form_id}', resetting before attachments are synced")
            orchestrator.reset()
        if sync_attachments is not None:
            sync_attachments()

        outcome = run_coroutine(orchestrator.submit(values))
        if form_key is not None:
            FormSessionManager.initialize()
            st.session_state[LAST_OUTCOME_KEY][form_key] = outcome

        if outcome.succeeded and on_success is not None:
            on_success(outcome)
        return outcome

    @staticmethod
    def get_last_outcome(form_key: str) -> Optional[SubmissionOutcome]:
        FormSessionManager.initialize()
        return st.session_state[LAST_OUTCOME_KEY].get(form_key)

    @staticmethod
    def get_session_info() -> Dict[str, Any]:
        """Get session information for debugging."""
        orchestrators = FormSessionManager._orchestrators()
        return {
            'active_form': st.session_state[ACTIVE_FORM_KEY],
            'forms': {key: orch.state.describe() for key, orch in orchestrators.items()},
            'session_started': st.session_state['form_session_started'],
        }


def run_coroutine(coroutine: Coroutine[Any, Any, Any]) -> Any:
    """
    Run a coroutine to completion from synchronous code.

    Streamlit scripts run without an event loop, so a fresh loop is used.

    Raises:
        RuntimeError: If called from inside a running event loop
    """
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return asyncio.run(coroutine)

    coroutine.close()
    raise RuntimeError("run_coroutine() cannot be called from a running event loop; await the coroutine instead")
