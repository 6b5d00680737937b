"""
Form definition loading.

A form definition is a YAML document describing the fields of one form, their
visual order, conditional sections and the custom rules the schema cannot
express::

    form_id: antrag
    title: Antrag an den Kreisvorstand
    fields:
      firstName: {type: string, required: true, label: Vorname}
      ...
    field_order: [firstName, lastName, email, purposes, summary, files]
    sections:
      zuschuss:
        after: purposes
        fields: [purposes.zuschuss.amount]
    rules:
      - {type: at_least_one_of, field: purposes, toggles: [purposes.zuschuss.enabled]}
    attachments: {field: files, max_count: 5}
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

import yaml

from . import validation_messages
from .config_loader import deep_merge, get_default_config
from .custom_validation import CustomValidationRule, at_least_one_of, not_before, required_when
from .errors import RegistrationError
from .field_registry import FieldPathRegistry, normalize_field_path
from .focus_navigator import FocusTarget
from .model_builder import create_model_from_definition
from .orchestrator import SubmissionOrchestrator
from .schema_validator import ModelSchemaValidator, RuleSchemaValidator

logger = logging.getLogger(__name__)

SUPPORTED_FIELD_TYPES = {
    'string', 'email', 'integer', 'number', 'float', 'boolean',
    'enum', 'date', 'datetime', 'array', 'object',
}


@dataclass
class SectionDefinition:
    fields: List[str]
    after: Optional[str] = None


@dataclass
class FormDefinition:
    """
    Parsed form definition.

    Attributes:
        form_id: Identifier used in logs and audit records
        title: Display title of the form
        fields: Field definitions in the rule-schema format
        field_order: Base field order (top to bottom)
        sections: Conditional sub-ranges keyed by section id
        labels: Display labels derived from the field definitions
        rules: Declarative custom rule definitions
        attachments: Attachment settings (field, min_count, max_count)
    """
    form_id: str
    title: str
    fields: Dict[str, Dict[str, Any]]
    field_order: List[str]
    sections: Dict[str, SectionDefinition] = field(default_factory=dict)
    labels: Dict[str, str] = field(default_factory=dict)
    rules: List[Dict[str, Any]] = field(default_factory=list)
    attachments: Dict[str, Any] = field(default_factory=dict)

    def build_registry(self, active_sections: Tuple[str, ...] = ()) -> FieldPathRegistry:
        """
        Build the field order registry.

        Args:
            active_sections: Ids of the conditional sections currently shown
        """
        registry = FieldPathRegistry(self.field_order)
        for section_id in active_sections:
            self.apply_section(registry, section_id)
        return registry

    def apply_section(self, registry: FieldPathRegistry, section_id: str) -> None:
        section = self.sections.get(section_id)
        if section is None:
            raise RegistrationError(f"Form '{self.form_id}' has no section '{section_id}'", [section_id])
        registry.register_section(section_id, section.fields, after=section.after)

    def build_validator(self, use_model: bool = True) -> Union[ModelSchemaValidator, RuleSchemaValidator]:
        """
        Build the schema validator of the form.

        Args:
            use_model: Validate with a generated pydantic model instead of the field rules
        """
        if use_model:
            model_name = ''.join(part.capitalize() for part in self.form_id.replace('-', '_').split('_')) or 'Form'
            return ModelSchemaValidator(create_model_from_definition(self.fields, f"{model_name}Model"), self.labels)
        return RuleSchemaValidator(self.fields, self.labels)

    def build_custom_rules(self) -> List[CustomValidationRule]:
        """Instantiate the declarative custom rules."""
        rules = []
        for rule_config in self.rules:
            rule_type = rule_config.get('type')
            target = rule_config['field']
            message = rule_config.get('message')

            if rule_type == 'at_least_one_of':
                rules.append(at_least_one_of(
                    target, rule_config['toggles'],
                    message or validation_messages.at_least_one(target, self.labels)
                ))
            elif rule_type == 'not_before':
                rules.append(not_before(
                    target, rule_config['start'], rule_config.get('end', target),
                    message or validation_messages.end_before_start(target, self.labels)
                ))
            elif rule_type == 'required_when':
                required_path = rule_config.get('target', target)
                rules.append(required_when(
                    target, rule_config['toggle'], required_path,
                    message or validation_messages.required(required_path, self.labels)
                ))
            else:
                raise RegistrationError(f"Unknown rule type '{rule_type}' in form '{self.form_id}'", [target])

        return rules

    def build_orchestrator(
        self,
        transport,
        config: Optional[Dict[str, Any]] = None,
        focus_target: Optional[FocusTarget] = None,
        active_sections: Tuple[str, ...] = (),
        use_model: bool = True,
        initial_values: Optional[Mapping[str, Any]] = None
    ) -> SubmissionOrchestrator:
        """
        Wire a submission orchestrator for this form.

        Attachment limits of the definition override the configured defaults.
        """
        config = deep_merge(config or get_default_config(), {
            'attachments': {k: v for k, v in self.attachments.items() if k in ('min_count', 'max_count')}
        })

        return SubmissionOrchestrator(
            registry=self.build_registry(active_sections),
            schema_validator=self.build_validator(use_model),
            transport=transport,
            custom_rules=self.build_custom_rules(),
            focus_target=focus_target,
            config=config,
            form_id=self.form_id,
            labels=self.labels,
            attachment_field=self.attachments.get('field'),
            initial_values=initial_values,
        )


def parse_form_definition(data: Mapping[str, Any], source: str = "<memory>") -> FormDefinition:
    """
    Validate and parse a form definition document.

    Raises:
        RegistrationError: If the definition is malformed
    """
    if not isinstance(data, Mapping):
        raise RegistrationError(f"Form definition {source} must be a mapping")

    missing = [key for key in ('form_id', 'fields', 'field_order') if key not in data]
    if missing:
        raise RegistrationError(f"Form definition {source} is missing: {', '.join(missing)}", missing)

    fields = data['fields']
    if not isinstance(fields, Mapping) or not fields:
        raise RegistrationError(f"Form definition {source} must define at least one field")

    for field_name, field_config in fields.items():
        _check_field_config(field_name, field_config, source)

    attachments = dict(data.get('attachments') or {})
    field_order = [normalize_field_path(f) for f in data['field_order'] or []]
    known_roots = set(fields.keys())
    if attachments.get('field'):
        known_roots.add(normalize_field_path(attachments['field']))
    unknown = [f for f in field_order if f.split('.')[0] not in known_roots]
    if unknown:
        raise RegistrationError(f"Field order of {source} names undefined fields: {', '.join(unknown)}", unknown)

    sections = {}
    for section_id, section_config in (data.get('sections') or {}).items():
        if not isinstance(section_config, Mapping) or not section_config.get('fields'):
            raise RegistrationError(f"Section '{section_id}' of {source} must list its fields", [section_id])
        sections[section_id] = SectionDefinition(
            fields=[normalize_field_path(f) for f in section_config['fields']],
            after=section_config.get('after'),
        )

    rules = list(data.get('rules') or [])
    for rule_config in rules:
        if not isinstance(rule_config, Mapping) or 'type' not in rule_config or 'field' not in rule_config:
            raise RegistrationError(f"Every rule of {source} needs a 'type' and a 'field'")

    definition = FormDefinition(
        form_id=str(data['form_id']),
        title=str(data.get('title', data['form_id'])),
        fields=dict(fields),
        field_order=field_order,
        sections=sections,
        labels=_collect_labels(fields),
        rules=rules,
        attachments=attachments,
    )

    # registering once surfaces duplicate ids and bad section anchors
    definition.build_registry(tuple(sections.keys()))

    logger.info(f"Parsed form definition '{definition.form_id}' with {len(fields)} fields")
    return definition


def load_form_definition(path: Union[str, Path]) -> FormDefinition:
    """
    Load a form definition from a YAML file.

    Raises:
        RegistrationError: If the file cannot be read or is malformed
    """
    path = Path(path)
    try:
        with open(path, 'r', encoding='utf-8') as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        logger.error(f"YAML parsing error in {path}: {e}")
        raise RegistrationError(f"Form definition {path} is not valid YAML: {e}") from e
    except (IOError, OSError) as e:
        logger.error(f"Failed to read form definition {path}: {e}")
        raise RegistrationError(f"Form definition {path} could not be read: {e}") from e

    return parse_form_definition(data, str(path))


def _check_field_config(field_name: str, field_config: Any, source: str) -> None:
    if not isinstance(field_config, Mapping):
        raise RegistrationError(f"Field '{field_name}' of {source} must be a mapping", [field_name])

    field_type = field_config.get('type', 'string')
    if field_type not in SUPPORTED_FIELD_TYPES:
        raise RegistrationError(f"Field '{field_name}' of {source} has unsupported type '{field_type}'", [field_name])

    if field_type == 'enum' and not field_config.get('choices'):
        raise RegistrationError(f"Enum field '{field_name}' of {source} needs choices", [field_name])

    if field_type == 'object':
        for prop_name, prop_config in (field_config.get('properties') or {}).items():
            _check_field_config(f"{field_name}.{prop_name}", prop_config, source)

    if field_type == 'array' and isinstance(field_config.get('items'), Mapping):
        _check_field_config(f"{field_name}.items", field_config['items'], source)


def _collect_labels(fields: Mapping[str, Any], prefix: str = '') -> Dict[str, str]:
    labels = {}
    for field_name, field_config in fields.items():
        path = f"{prefix}{field_name}"
        if 'label' in field_config:
            labels[path] = field_config['label']
        if field_config.get('type') == 'object':
            labels.update(_collect_labels(field_config.get('properties') or {}, f"{path}."))
        items = field_config.get('items')
        if isinstance(items, Mapping) and items.get('type') == 'object':
            # item labels apply to every index; looked up by property name
            labels.update(_collect_labels(items.get('properties') or {}, ''))
    return labels
