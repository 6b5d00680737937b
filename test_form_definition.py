"""
Unit tests for form_definition module.
"""

import asyncio
from pathlib import Path

import pytest
import yaml

from form_engine.errors import RegistrationError
from form_engine.focus_navigator import RecordingFocusTarget
from form_engine.form_definition import load_form_definition, parse_form_definition
from form_engine.schema_validator import ModelSchemaValidator, RuleSchemaValidator
from form_engine.submission_state import FailureReason
from form_engine.transport import TransportSuccess

ANTRAG_PATH = Path(__file__).parent / "forms" / "antrag.yaml"

VALID_ANTRAG = {
    'firstName': 'Ada',
    'lastName': 'Lovelace',
    'email': 'ada@example.org',
    'title': 'Sommerfest im Kiez',
    'summary': 'Wir planen ein Sommerfest für die Nachbarschaft.',
    'purposes': {
        'zuschuss': {'enabled': True, 'amount': 250.0},
        'personelleUnterstuetzung': {'enabled': False},
        'raumbuchung': {'enabled': False},
        'weiteres': {'enabled': False},
    },
}


def _minimal(**overrides):
    data = {
        'form_id': 'gruppe',
        'title': 'Gruppe vorschlagen',
        'fields': {
            'name': {'type': 'string', 'label': 'Gruppenname', 'required': True},
            'responsiblePersons': {
                'type': 'array',
                'items': {'type': 'object', 'properties': {'email': {'type': 'email', 'label': 'E-Mail'}}},
            },
        },
        'field_order': ['name', 'responsiblePersons'],
    }
    data.update(overrides)
    return data


class RecordingTransport:
    def __init__(self):
        self.calls = []

    def send(self, values, attachments):
        self.calls.append(values)
        return TransportSuccess({'success': True})


class TestParseFormDefinition:
    """Test cases for validating form definition documents."""

    def test_minimal_definition(self):
        definition = parse_form_definition(_minimal())

        assert definition.form_id == 'gruppe'
        assert definition.field_order == ['name', 'responsiblePersons']
        assert definition.labels == {'name': 'Gruppenname', 'email': 'E-Mail'}

    def test_title_defaults_to_form_id(self):
        data = _minimal()
        del data['title']

        assert parse_form_definition(data).title == 'gruppe'

    @pytest.mark.parametrize("key", ['form_id', 'fields', 'field_order'])
    def test_missing_required_keys(self, key):
        data = _minimal()
        del data[key]

        with pytest.raises(RegistrationError) as exc_info:
            parse_form_definition(data)

        assert exc_info.value.fields == [key]

    def test_not_a_mapping(self):
        with pytest.raises(RegistrationError):
            parse_form_definition(['form_id'])

    def test_unsupported_field_type(self):
        with pytest.raises(RegistrationError):
            parse_form_definition(_minimal(fields={'name': {'type': 'color'}}))

    def test_nested_unsupported_type_is_found(self):
        fields = {'person': {'type': 'object', 'properties': {'age': {'type': 'years'}}}}

        with pytest.raises(RegistrationError) as exc_info:
            parse_form_definition(_minimal(fields=fields, field_order=['person']))

        assert exc_info.value.fields == ['person.age']

    def test_enum_needs_choices(self):
        with pytest.raises(RegistrationError):
            parse_form_definition(_minimal(fields={'state': {'type': 'enum'}}, field_order=['state']))

    def test_field_order_with_unknown_root(self):
        with pytest.raises(RegistrationError) as exc_info:
            parse_form_definition(_minimal(field_order=['name', 'logo']))

        assert exc_info.value.fields == ['logo']

    def test_attachment_field_may_appear_in_order(self):
        definition = parse_form_definition(_minimal(
            field_order=['name', 'responsiblePersons', 'logo'],
            attachments={'field': 'logo', 'max_count': 1},
        ))

        assert definition.attachments['max_count'] == 1

    def test_duplicate_field_order(self):
        with pytest.raises(RegistrationError):
            parse_form_definition(_minimal(field_order=['name', 'name']))

    def test_section_with_bad_anchor(self):
        sections = {'extra': {'after': 'missing', 'fields': ['responsiblePersons.0.email']}}

        with pytest.raises(RegistrationError):
            parse_form_definition(_minimal(sections=sections))

    def test_section_needs_fields(self):
        with pytest.raises(RegistrationError):
            parse_form_definition(_minimal(sections={'extra': {'after': 'name'}}))

    def test_rules_need_type_and_field(self):
        with pytest.raises(RegistrationError):
            parse_form_definition(_minimal(rules=[{'type': 'required_when'}]))

    def test_unknown_rule_type_rejected_when_built(self):
        definition = parse_form_definition(_minimal(rules=[{'type': 'sometimes', 'field': 'name'}]))

        with pytest.raises(RegistrationError):
            definition.build_custom_rules()


class TestLoadFormDefinition:
    """Test cases for loading definitions from YAML files."""

    def test_load_antrag(self):
        definition = load_form_definition(ANTRAG_PATH)

        assert definition.form_id == 'antrag'
        assert set(definition.sections) == {'zuschuss', 'personelleUnterstuetzung', 'raumbuchung', 'weiteres'}
        assert definition.attachments['field'] == 'files'
        assert definition.labels['purposes.zuschuss.amount'] == 'Betrag'

    def test_load_from_tmp_path(self, tmp_path):
        path = tmp_path / "gruppe.yaml"
        path.write_text(yaml.safe_dump(_minimal()), encoding='utf-8')

        assert load_form_definition(path).form_id == 'gruppe'

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "broken.yaml"
        path.write_text("fields: [unclosed", encoding='utf-8')

        with pytest.raises(RegistrationError):
            load_form_definition(path)

    def test_missing_file(self, tmp_path):
        with pytest.raises(RegistrationError):
            load_form_definition(tmp_path / "missing.yaml")


class TestAntragForm:
    """End-to-end checks of the funding request form."""

    def setup_method(self):
        self.definition = load_form_definition(ANTRAG_PATH)

    def test_sections_follow_their_toggle(self):
        registry = self.definition.build_registry(('raumbuchung',))

        toggle = registry.index_of('purposes.raumbuchung.enabled')
        assert registry.index_of('purposes.raumbuchung.location') == toggle + 1
        assert registry.index_of('purposes.weiteres.enabled') == toggle + 4

    def test_apply_unknown_section(self):
        with pytest.raises(RegistrationError):
            self.definition.apply_section(self.definition.build_registry(), 'catering')

    @pytest.mark.parametrize("use_model, validator_class", [
        (True, ModelSchemaValidator),
        (False, RuleSchemaValidator),
    ])
    def test_valid_antrag_is_submitted(self, use_model, validator_class):
        transport = RecordingTransport()
        orchestrator = self.definition.build_orchestrator(
            transport, focus_target=RecordingFocusTarget(), active_sections=('zuschuss',), use_model=use_model
        )

        outcome = asyncio.run(orchestrator.submit(VALID_ANTRAG))

        assert isinstance(orchestrator.schema_validator, validator_class)
        assert outcome.succeeded
        assert len(transport.calls) == 1

    def test_model_validator_name(self):
        validator = self.definition.build_validator()

        assert validator.model_class.__name__ == 'AntragModel'

    def test_no_purpose_selected(self):
        values = dict(VALID_ANTRAG, purposes={
            name: {'enabled': False}
            for name in ('zuschuss', 'personelleUnterstuetzung', 'raumbuchung', 'weiteres')
        })
        target = RecordingFocusTarget()
        orchestrator = self.definition.build_orchestrator(RecordingTransport(), focus_target=target)

        outcome = asyncio.run(orchestrator.submit(values))

        assert outcome.reason == FailureReason.CLIENT_VALIDATION
        assert orchestrator.error_for('purposes') == 'Mindestens ein Zweck muss ausgewählt werden'
        assert target.last_focused == 'purposes'

    def test_enabled_purpose_requires_details(self):
        values = dict(VALID_ANTRAG, purposes=dict(VALID_ANTRAG['purposes'], weiteres={'enabled': True}))
        target = RecordingFocusTarget()
        orchestrator = self.definition.build_orchestrator(
            RecordingTransport(), focus_target=target, active_sections=('zuschuss', 'weiteres')
        )

        outcome = asyncio.run(orchestrator.submit(values))

        assert [issue.field for issue in outcome.issues] == ['purposes.weiteres.details']
        assert outcome.issues[0].message == 'Bitte beschreiben Sie Ihr weiteres Anliegen'
        assert target.last_focused == 'purposes.weiteres.details'

    def test_first_erroring_field_in_form_order_is_focused(self):
        values = dict(VALID_ANTRAG, firstName='', title='')
        target = RecordingFocusTarget()
        orchestrator = self.definition.build_orchestrator(RecordingTransport(), focus_target=target)

        outcome = asyncio.run(orchestrator.submit(values))

        assert [issue.field for issue in outcome.issues][:2] == ['firstName', 'title']
        assert outcome.issues[0].message == 'Vorname ist erforderlich'
        assert outcome.focused_field == 'firstName'

    def test_definition_attachment_limit_overrides_config(self):
        orchestrator = self.definition.build_orchestrator(RecordingTransport())

        assert orchestrator.attachment_field == 'files'
        assert orchestrator.config['attachments']['max_count'] == 5
