"""
Schema validation collaborators for the form engine.

A schema validator turns the current form values into a list of field-scoped
issues. Two implementations are provided: one backed by a pydantic model and
one interpreting YAML field definitions directly.
"""

import inspect
import logging
import re
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Awaitable, Dict, List, Mapping, Optional, Protocol, Tuple, Type, Union

from pydantic import BaseModel, ValidationError

from . import validation_messages
from .field_registry import normalize_field_path
from .issues import FORM_FIELD, IssueSource, ValidationIssue

logger = logging.getLogger(__name__)

EMAIL_PATTERN = r'^[^@\s]+@[^@\s]+\.[^@\s]+$'


@dataclass(frozen=True)
class SchemaResult:
    """
    Outcome of one schema validation run.

    Attributes:
        ok: True if no issues were found
        issues: Field-scoped schema issues
    """
    ok: bool
    issues: Tuple[ValidationIssue, ...] = ()

    @classmethod
    def success(cls) -> 'SchemaResult':
        return cls(ok=True)

    @classmethod
    def from_issues(cls, issues: List[ValidationIssue]) -> 'SchemaResult':
        return cls(ok=not issues, issues=tuple(issues))


class SchemaValidator(Protocol):
    """Validates form values; may answer synchronously or with an awaitable."""

    def validate(self, values: Mapping[str, Any]) -> Union[SchemaResult, Awaitable[SchemaResult]]:
        ...


async def run_schema_validator(validator: SchemaValidator, values: Mapping[str, Any]) -> SchemaResult:
    """Run a schema validator, awaiting its result when it is asynchronous."""
    result = validator.validate(values)
    if inspect.isawaitable(result):
        result = await result
    return result


class ModelSchemaValidator:
    """
    Schema validator backed by a pydantic model.

    Each pydantic error location becomes a canonical field id and each error
    type a German message.
    """

    def __init__(self, model_class: Type[BaseModel], labels: Optional[Mapping[str, str]] = None):
        self.model_class = model_class
        self.labels = dict(labels or {})

    def validate(self, values: Mapping[str, Any]) -> SchemaResult:
        try:
            self.model_class.model_validate(dict(values))
            return SchemaResult.success()
        except ValidationError as e:
            errors = e.errors()
            issues = []
            seen = set()
            for error in errors:
                # model validators report no location
                field = normalize_field_path(tuple(error.get('loc', ()))) or FORM_FIELD
                if field in seen:
                    continue
                seen.add(field)
                error_type = error.get('type', '')
                if error_type == 'string_too_short' and _is_empty(error.get('input')):
                    error_type = 'missing'
                message = validation_messages.localize_error(
                    error_type,
                    field,
                    error.get('ctx'),
                    error.get('msg', ''),
                    self.labels,
                )
                issues.append(ValidationIssue(field, message, IssueSource.SCHEMA))

            logger.debug(f"Model validation of {self.model_class.__name__} found {len(issues)} issue(s)")
            return SchemaResult(ok=not errors, issues=tuple(issues))


class RuleSchemaValidator:
    """
    Schema validator interpreting field definitions.

    Field definitions use the same format as form definition files::

        title:
          type: string
          required: true
          max_length: 100
        purposes:
          type: array
          min_items: 1
          items: {type: string}

    Supported types: string, email, integer, number, boolean, enum, date,
    datetime, array and object. Only the first issue of each field is kept.
    """

    def __init__(self, fields: Mapping[str, Dict[str, Any]], labels: Optional[Mapping[str, str]] = None):
        self.fields = dict(fields)
        self.labels = dict(labels or {})

    def validate(self, values: Mapping[str, Any]) -> SchemaResult:
        issues: List[ValidationIssue] = []
        for field_name, field_config in self.fields.items():
            self._validate_field(field_name, values.get(field_name), field_config, issues)

        if issues:
            logger.debug(f"Rule validation found {len(issues)} issue(s): {[i.field for i in issues]}")
        return SchemaResult.from_issues(issues)

    def _validate_field(self, path: str, value: Any, field_config: Dict[str, Any],
                        issues: List[ValidationIssue]) -> None:
        """Validate a single value against its configuration."""
        labels = self._labels_for(path, field_config)
        field_type = field_config.get('type', 'string')

        if _is_empty(value):
            if field_config.get('required', False):
                issues.append(self._issue(path, validation_messages.required(path, labels)))
            return

        if field_type in ('string', 'email'):
            message = self._check_string(path, value, field_config, labels)
        elif field_type in ('number', 'integer', 'float'):
            message = self._check_numeric(path, value, field_config, labels)
        elif field_type == 'boolean':
            message = None if isinstance(value, bool) else validation_messages.invalid_format(path, labels)
        elif field_type == 'enum':
            choices = field_config.get('choices', [])
            message = None if value in choices else validation_messages.invalid_choice(path, choices, labels)
        elif field_type in ('date', 'datetime'):
            message = self._check_date(path, value, labels)
        elif field_type == 'array':
            self._validate_array(path, value, field_config, labels, issues)
            return
        elif field_type == 'object':
            self._validate_object(path, value, field_config, labels, issues)
            return
        else:
            logger.warning(f"Unknown field type '{field_type}' for '{path}', skipping")
            message = None

        if message:
            issues.append(self._issue(path, message))

    def _check_string(self, path: str, value: Any, field_config: Dict[str, Any],
                      labels: Mapping[str, str]) -> Optional[str]:
        if not isinstance(value, str):
            return validation_messages.invalid_format(path, labels)

        value = value.strip()
        min_length = field_config.get('min_length')
        max_length = field_config.get('max_length')

        if min_length is not None and max_length is not None and not min_length <= len(value) <= max_length:
            return validation_messages.between(path, min_length, max_length, labels)
        if min_length is not None and len(value) < min_length:
            return validation_messages.min_length(path, min_length, labels)
        if max_length is not None and len(value) > max_length:
            return validation_messages.max_length(path, max_length, labels)

        if field_config.get('type') == 'email' or field_config.get('format') == 'email':
            if not re.match(EMAIL_PATTERN, value):
                return validation_messages.email(path, labels)

        pattern = field_config.get('pattern')
        if pattern:
            try:
                if not re.match(pattern, value):
                    return field_config.get('pattern_message') or validation_messages.invalid_format(path, labels)
            except re.error:
                logger.error(f"Invalid regex pattern for field {path}: {pattern}")

        return None

    def _check_numeric(self, path: str, value: Any, field_config: Dict[str, Any],
                       labels: Mapping[str, str]) -> Optional[str]:
        if isinstance(value, bool):
            return validation_messages.invalid_format(path, labels)
        try:
            numeric_value = float(value)
        except (ValueError, TypeError):
            return validation_messages.invalid_format(path, labels)

        if field_config.get('type') == 'integer':
            if not numeric_value.is_integer():
                return validation_messages.invalid_format(path, labels)
            numeric_value = int(numeric_value)

        min_value = field_config.get('min_value')
        max_value = field_config.get('max_value')

        if min_value is not None and numeric_value < min_value:
            return validation_messages.min_value(path, min_value, labels)
        if max_value is not None and numeric_value > max_value:
            return validation_messages.max_value(path, max_value, labels)
        return None

    def _check_date(self, path: str, value: Any, labels: Mapping[str, str]) -> Optional[str]:
        if isinstance(value, (date, datetime)):
            return None
        if isinstance(value, str):
            try:
                datetime.fromisoformat(value.replace('Z', '+00:00'))
                return None
            except ValueError:
                pass
        return validation_messages.invalid_date(path, labels)

    def _validate_array(self, path: str, value: Any, field_config: Dict[str, Any],
                        labels: Mapping[str, str], issues: List[ValidationIssue]) -> None:
        if not isinstance(value, (list, tuple)):
            issues.append(self._issue(path, validation_messages.invalid_format(path, labels)))
            return

        min_items = field_config.get('min_items', 1 if field_config.get('required') else None)
        max_items = field_config.get('max_items')
        if min_items is not None and len(value) < min_items:
            issues.append(self._issue(path, validation_messages.at_least_one(path, labels)))
            return
        if max_items is not None and len(value) > max_items:
            issues.append(self._issue(
                path, f"Maximal {max_items} Einträge für {validation_messages.get_field_label(path, labels)} erlaubt"
            ))
            return

        items_config = field_config.get('items')
        if not items_config:
            return

        for i, item in enumerate(value):
            item_path = f"{path}.{i}"
            if items_config.get('type') == 'object':
                self._validate_object(item_path, item, items_config, labels, issues)
            else:
                self._validate_field(item_path, item, items_config, issues)

    def _validate_object(self, path: str, value: Any, field_config: Dict[str, Any],
                         labels: Mapping[str, str], issues: List[ValidationIssue]) -> None:
        if not isinstance(value, Mapping):
            issues.append(self._issue(path, validation_messages.invalid_format(path, labels)))
            return

        for prop_name, prop_config in field_config.get('properties', {}).items():
            self._validate_field(f"{path}.{prop_name}", value.get(prop_name), prop_config, issues)

    def _labels_for(self, path: str, field_config: Dict[str, Any]) -> Mapping[str, str]:
        if 'label' in field_config:
            return {**self.labels, path: field_config['label']}
        return self.labels

    @staticmethod
    def _issue(path: str, message: str) -> ValidationIssue:
        return ValidationIssue(path, message, IssueSource.SCHEMA)


def _is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return value.strip() == ''
    return False
