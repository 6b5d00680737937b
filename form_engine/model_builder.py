"""
Dynamic Pydantic model builder for form definitions.
Creates Pydantic models from YAML field definitions for schema validation.
"""

from typing import Dict, Any, Type, List, Literal, Optional
from datetime import datetime, date
from pydantic import BaseModel, ConfigDict, Field, field_validator, create_model
import re
import logging

from . import validation_messages

logger = logging.getLogger(__name__)


def create_model_from_definition(fields: Dict[str, Dict[str, Any]], model_name: str = "FormModel") -> Type[BaseModel]:
    """
    Create a Pydantic model from form field definitions.

    Args:
        fields: Field definitions keyed by field name
        model_name: Name for the generated model class

    Returns:
        Pydantic model class ignoring unknown keys
    """
    if not fields:
        raise ValueError("Form definition must contain at least one field")

    model_fields = {}
    validators_dict = {}

    for field_name, field_config in fields.items():
        field_type, field_info = create_field_from_config(field_name, field_config, model_name)
        model_fields[field_name] = (field_type, field_info)
        validators_dict.update(create_validators_for_field(field_name, field_config))

    try:
        dynamic_model = create_model(
            model_name,
            __config__=ConfigDict(extra='ignore', str_strip_whitespace=True),
            __validators__=validators_dict,
            **model_fields
        )
        logger.info(f"Created dynamic model '{model_name}' with {len(fields)} fields")
        return dynamic_model

    except Exception as e:
        logger.error(f"Failed to create model '{model_name}': {e}")
        raise


def create_field_from_config(field_name: str, field_config: Dict[str, Any], model_name: str = "FormModel") -> tuple:
    """
    Create a Pydantic field from a field definition.

    Returns:
        Tuple of (field_type, FieldInfo)
    """
    field_type = get_field_type(field_config, f"{model_name}_{field_name}")
    required = field_config.get('required', False)

    field_kwargs: Dict[str, Any] = {}

    if 'default' in field_config:
        field_kwargs['default'] = field_config['default']
    elif not required:
        field_kwargs['default'] = None
        field_type = Optional[field_type]

    if 'label' in field_config:
        field_kwargs['description'] = field_config['label']

    field_type_name = field_config.get('type', 'string')

    if field_type_name in ('string', 'email'):
        min_length = field_config.get('min_length')
        if required and min_length is None:
            # blank input counts as missing
            min_length = 1
        if min_length is not None:
            field_kwargs['min_length'] = min_length
        if 'max_length' in field_config:
            field_kwargs['max_length'] = field_config['max_length']

    elif field_type_name in ('number', 'integer', 'float'):
        if 'min_value' in field_config:
            field_kwargs['ge'] = field_config['min_value']
        if 'max_value' in field_config:
            field_kwargs['le'] = field_config['max_value']

    elif field_type_name == 'array':
        min_items = field_config.get('min_items', 1 if required else None)
        if min_items is not None:
            field_kwargs['min_length'] = min_items
        if 'max_items' in field_config:
            field_kwargs['max_length'] = field_config['max_items']

    return field_type, Field(**field_kwargs)


def get_field_type(field_config: Dict[str, Any], nested_name: str = "NestedModel") -> Any:
    """
    Map a definition type to a Python/Pydantic type.

    Args:
        field_config: Field definition
        nested_name: Model name used for object fields

    Returns:
        Python type for the field
    """
    field_type = field_config.get('type', 'string')

    if field_type in ('string', 'email'):
        return str

    elif field_type == 'integer':
        return int

    elif field_type in ('number', 'float'):
        return float

    elif field_type == 'boolean':
        return bool

    elif field_type == 'date':
        return date

    elif field_type == 'datetime':
        return datetime

    elif field_type == 'enum':
        choices = field_config.get('choices', [])
        if not choices:
            logger.warning("Enum field has no choices, defaulting to str")
            return str
        return Literal[tuple(choices)]

    elif field_type == 'array':
        items_config = field_config.get('items', {'type': 'string'})
        return List[get_field_type(items_config, f"{nested_name}_item")]

    elif field_type == 'object':
        properties = field_config.get('properties', {})
        if properties:
            return create_nested_model(properties, nested_name)
        return Dict[str, Any]

    else:
        logger.warning(f"Unknown field type '{field_type}', defaulting to str")
        return str


def create_nested_model(properties: Dict[str, Any], model_name: str) -> Type[BaseModel]:
    """Create a nested Pydantic model for object fields and object array items."""
    nested_fields = {}
    nested_validators = {}

    for prop_name, prop_config in properties.items():
        nested_fields[prop_name] = create_field_from_config(prop_name, prop_config, model_name)
        nested_validators.update(create_validators_for_field(prop_name, prop_config))

    return create_model(
        model_name,
        __config__=ConfigDict(extra='ignore', str_strip_whitespace=True),
        __validators__=nested_validators,
        **nested_fields
    )


def create_validators_for_field(field_name: str, field_config: Dict[str, Any]) -> Dict[str, Any]:
    """
    Create custom validators for a field based on its definition.

    Returns:
        Dictionary of validator functions
    """
    validators = {}
    field_type = field_config.get('type', 'string')
    label = field_config.get('label')
    labels = {field_name: label} if label else None

    if field_type == 'email' or field_config.get('format') == 'email':
        email_message = validation_messages.email(field_name, labels)

        @field_validator(field_name)
        @classmethod
        def email_validator_func(cls, v):
            if v and not re.match(r'^[^@\s]+@[^@\s]+\.[^@\s]+$', str(v)):
                raise ValueError(email_message)
            return v
        validators[f'validate_{field_name}_email'] = email_validator_func

    if field_type in ('string', 'email') and 'pattern' in field_config:
        pattern = field_config['pattern']
        pattern_message = field_config.get('pattern_message') or validation_messages.invalid_format(field_name, labels)

        @field_validator(field_name)
        @classmethod
        def pattern_validator_func(cls, v):
            if v and not re.match(pattern, str(v)):
                raise ValueError(pattern_message)
            return v
        validators[f'validate_{field_name}_pattern'] = pattern_validator_func

    return validators
