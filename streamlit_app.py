"""
Main Streamlit application for the form portal.
Demo funding request ("Antrag") form driven by the form engine.
"""

import streamlit as st
from pathlib import Path
import logging
from typing import Any, Dict, List

from form_engine.attachments import Attachment, TempFilePreview
from form_engine.config_loader import configure_logging, get_config_value, load_config, validate_config
from form_engine.form_definition import FormDefinition, load_form_definition
from form_engine.session_manager import FormSessionManager
from form_engine.transport import HttpTransport, TransportSuccess
from form_engine.ui_feedback import (
    StreamlitFocusTarget,
    apply_pending_focus,
    render_error_summary,
    render_field_anchor,
    render_field_error,
    render_submission_status,
    show_loading,
)

FORM_DEFINITION_PATH = Path("forms/antrag.yaml")
UPLOADER_GENERATION_KEY = "uploader_generation"

# Configure logging dynamically from config
config = load_config()
configure_logging(config)
logger = logging.getLogger(__name__)

if not validate_config(config):
    logger.warning("Configuration is incomplete, missing values fall back to defaults")

st.set_page_config(
    page_title=get_config_value(config, 'app', 'name', 'Formular-Portal'),
    page_icon="📝",
    layout="centered"
)

PURPOSES = [
    ('zuschuss', 'Zuschuss (finanzielle Unterstützung)'),
    ('personelleUnterstuetzung', 'Personelle Unterstützung'),
    ('raumbuchung', 'Raumbuchung'),
    ('weiteres', 'Weiteres'),
]


class DemoTransport:
    """Accepts every submission; used when no endpoint is configured."""

    def send(self, values, attachments):
        logger.info(f"Demo submission with {len(attachments)} attachment(s): {sorted(values.keys())}")
        return TransportSuccess(data={'success': True, 'antragId': 'demo'})


@st.cache_resource
def get_form_definition() -> FormDefinition:
    return load_form_definition(FORM_DEFINITION_PATH)


def create_orchestrator(definition: FormDefinition):
    endpoint = get_config_value(config, 'transport', 'endpoint')
    if endpoint:
        transport = HttpTransport(endpoint, timeout=float(get_config_value(config, 'transport', 'timeout', 30)))
    else:
        transport = DemoTransport()

    focus_target = StreamlitFocusTarget(
        behavior=get_config_value(config, 'navigation', 'scroll_behavior', 'smooth'),
        block=get_config_value(config, 'navigation', 'scroll_block', 'center'),
    )
    return definition.build_orchestrator(transport, config=config, focus_target=focus_target)


def text_field(orchestrator, definition: FormDefinition, field: str, area: bool = False) -> str:
    render_field_anchor(field)
    label = definition.labels.get(field, field)
    widget = st.text_area if area else st.text_input
    value = widget(label, key=f"antrag_{field}")
    render_field_error(orchestrator, field)
    return value


def render_purposes(orchestrator, definition: FormDefinition) -> Dict[str, Any]:
    """Render the purpose toggles and keep the field order in sync with revealed sections."""
    render_field_anchor('purposes')
    st.subheader("Verwendungszweck")
    render_field_error(orchestrator, 'purposes')

    purposes: Dict[str, Any] = {}
    for purpose_id, purpose_label in PURPOSES:
        prefix = f"purposes.{purpose_id}"
        render_field_anchor(f"{prefix}.enabled")
        enabled = st.checkbox(purpose_label, key=f"antrag_{prefix}.enabled")

        if enabled and not orchestrator.registry.has_section(purpose_id):
            definition.apply_section(orchestrator.registry, purpose_id)
        elif not enabled and orchestrator.registry.has_section(purpose_id):
            orchestrator.registry.remove_section(purpose_id)

        purpose: Dict[str, Any] = {'enabled': enabled}
        if enabled:
            if purpose_id == 'zuschuss':
                render_field_anchor(f"{prefix}.amount")
                purpose['amount'] = st.number_input("Betrag (€)", min_value=0.0, step=50.0,
                                                    key=f"antrag_{prefix}.amount") or None
                render_field_error(orchestrator, f"{prefix}.amount")
            if purpose_id == 'raumbuchung':
                purpose['location'] = text_field(orchestrator, definition, f"{prefix}.location")
                render_field_anchor(f"{prefix}.numberOfPeople")
                purpose['numberOfPeople'] = int(st.number_input("Anzahl der Personen", min_value=0, step=1,
                                                                key=f"antrag_{prefix}.numberOfPeople")) or None
                render_field_error(orchestrator, f"{prefix}.numberOfPeople")
            if purpose_id != 'zuschuss':
                purpose['details'] = text_field(orchestrator, definition, f"{prefix}.details", area=True)
        purposes[purpose_id] = purpose

    return purposes


def sync_attachments(orchestrator, uploaded_files: List[Any]) -> None:
    """Mirror the uploader content into the form's attachment store."""
    field = orchestrator.attachment_field
    current = [(a.name, a.size) for a in orchestrator.attachments.get(field)]
    uploaded = [(f.name, f.size) for f in uploaded_files]
    if current == uploaded:
        return

    for index in reversed(range(len(current))):
        orchestrator.remove_attachment(field, index)

    for uploaded_file in uploaded_files:
        data = uploaded_file.getvalue()
        preview = None
        if uploaded_file.type and uploaded_file.type.startswith('image/'):
            preview = TempFilePreview(data, suffix=Path(uploaded_file.name).suffix)
        orchestrator.add_attachment(field, Attachment(uploaded_file.name, uploaded_file.type or '', data, preview))


def uploader_key() -> str:
    return f"antrag_files_{st.session_state.get(UPLOADER_GENERATION_KEY, 0)}"


def clear_uploader() -> None:
    """Give the uploader a fresh key; its released files must not be adopted again."""
    st.session_state[UPLOADER_GENERATION_KEY] = st.session_state.get(UPLOADER_GENERATION_KEY, 0) + 1


def main():
    """Main application entry point."""
    FormSessionManager.initialize()
    definition = get_form_definition()
    orchestrator = FormSessionManager.get_orchestrator(definition.form_id, lambda: create_orchestrator(definition))

    st.title(definition.title)
    render_submission_status(orchestrator.state)
    render_error_summary(orchestrator.get_summary())

    values: Dict[str, Any] = {
        'firstName': text_field(orchestrator, definition, 'firstName'),
        'lastName': text_field(orchestrator, definition, 'lastName'),
        'email': text_field(orchestrator, definition, 'email'),
        'title': text_field(orchestrator, definition, 'title'),
        'summary': text_field(orchestrator, definition, 'summary', area=True),
    }
    values['purposes'] = render_purposes(orchestrator, definition)

    render_field_anchor('files')
    uploaded_files = st.file_uploader("Datei-Anhänge", accept_multiple_files=True, key=uploader_key())
    sync_attachments(orchestrator, uploaded_files or [])
    render_field_error(orchestrator, 'files')

    col1, col2 = st.columns(2)
    with col1:
        submitted = st.button("Antrag absenden", type="primary", disabled=orchestrator.state.is_submitting)
    with col2:
        reset_requested = st.button("Formular zurücksetzen")

    if reset_requested:
        orchestrator.reset()
        clear_uploader()
        for key in [k for k in st.session_state.keys() if str(k).startswith('antrag_')]:
            del st.session_state[key]
        st.rerun()

    if submitted:
        with show_loading():
            outcome = FormSessionManager.run_submit(
                orchestrator,
                values,
                form_key=definition.form_id,
                sync_attachments=lambda: sync_attachments(orchestrator, uploaded_files or []),
                on_success=lambda _: clear_uploader(),
            )
        logger.info(f"Submission finished: {outcome.status.value}")
        st.rerun()

    apply_pending_focus()


if __name__ == "__main__":
    main()
