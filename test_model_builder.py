"""
Unit tests for model_builder module.
"""

import pytest
from datetime import date, datetime
from typing import List, Literal, Optional
from pydantic import BaseModel, ValidationError

from form_engine.model_builder import (
    create_model_from_definition,
    create_field_from_config,
    get_field_type,
    create_nested_model,
    create_validators_for_field
)


class TestModelBuilder:
    """Test class for model builder."""

    def test_create_model_from_definition_basic(self):
        """Test creating a basic model from field definitions."""
        fields = {
            "title": {"type": "string", "label": "Titel", "required": True, "max_length": 20},
            "participants": {"type": "integer", "required": False, "default": 1},
        }

        model_class = create_model_from_definition(fields, "AppointmentModel")

        assert model_class.__name__ == "AppointmentModel"
        instance = model_class(title="Sommerfest")
        assert instance.title == "Sommerfest"
        assert instance.participants == 1

    def test_create_model_empty_definition_raises(self):
        with pytest.raises(ValueError):
            create_model_from_definition({})

    def test_unknown_keys_are_ignored(self):
        model_class = create_model_from_definition({"title": {"type": "string"}})

        instance = model_class.model_validate({"title": "A", "unexpected": True})

        assert not hasattr(instance, "unexpected")

    def test_required_string_rejects_blank_input(self):
        """Whitespace-only input counts as missing."""
        model_class = create_model_from_definition({"title": {"type": "string", "required": True}})

        with pytest.raises(ValidationError) as exc_info:
            model_class(title="   ")

        assert exc_info.value.errors()[0]["type"] == "string_too_short"

    def test_optional_fields_default_to_none(self):
        model_class = create_model_from_definition({"teaser": {"type": "string"}})

        assert model_class().teaser is None

    def test_number_bounds(self):
        model_class = create_model_from_definition({
            "amount": {"type": "number", "min_value": 1, "max_value": 999999, "required": True},
        })

        assert model_class(amount=250.5).amount == 250.5
        with pytest.raises(ValidationError):
            model_class(amount=0)
        with pytest.raises(ValidationError):
            model_class(amount=1000000)

    def test_required_array_needs_one_item(self):
        model_class = create_model_from_definition({
            "tags": {"type": "array", "required": True, "items": {"type": "string"}, "max_items": 2},
        })

        assert model_class(tags=["a"]).tags == ["a"]
        with pytest.raises(ValidationError) as exc_info:
            model_class(tags=[])
        assert exc_info.value.errors()[0]["type"] == "too_short"
        with pytest.raises(ValidationError):
            model_class(tags=["a", "b", "c"])

    def test_email_validator_message(self):
        model_class = create_model_from_definition({
            "email": {"type": "email", "label": "E-Mail", "required": True},
        })

        assert model_class(email="ada@example.org").email == "ada@example.org"
        with pytest.raises(ValidationError) as exc_info:
            model_class(email="keine-adresse")

        error = exc_info.value.errors()[0]
        assert error["type"] == "value_error"
        assert "E-Mail muss eine gültige E-Mail-Adresse sein" in error["msg"]

    def test_pattern_validator(self):
        model_class = create_model_from_definition({
            "postalCode": {"type": "string", "pattern": r"^\d{5}$", "pattern_message": "PLZ ungültig"},
        })

        assert model_class(postalCode="10115").postalCode == "10115"
        with pytest.raises(ValidationError) as exc_info:
            model_class(postalCode="1011")
        assert "PLZ ungültig" in exc_info.value.errors()[0]["msg"]

    def test_nested_object_errors_have_full_location(self):
        model_class = create_model_from_definition({
            "purposes": {
                "type": "object",
                "required": True,
                "properties": {
                    "zuschuss": {
                        "type": "object",
                        "properties": {"amount": {"type": "number", "min_value": 1}},
                    }
                },
            }
        })

        with pytest.raises(ValidationError) as exc_info:
            model_class(purposes={"zuschuss": {"amount": 0}})

        assert exc_info.value.errors()[0]["loc"] == ("purposes", "zuschuss", "amount")

    def test_get_field_type_mapping(self):
        assert get_field_type({"type": "string"}) is str
        assert get_field_type({"type": "email"}) is str
        assert get_field_type({"type": "integer"}) is int
        assert get_field_type({"type": "number"}) is float
        assert get_field_type({"type": "boolean"}) is bool
        assert get_field_type({"type": "date"}) is date
        assert get_field_type({"type": "datetime"}) is datetime
        assert get_field_type({"type": "array", "items": {"type": "integer"}}) == List[int]
        assert get_field_type({"type": "enum", "choices": ["a", "b"]}) == Literal["a", "b"]
        assert get_field_type({"type": "unknown"}) is str

    def test_enum_without_choices_falls_back_to_str(self):
        assert get_field_type({"type": "enum"}) is str

    def test_create_field_from_config_optional(self):
        field_type, field_info = create_field_from_config("teaser", {"type": "string", "label": "Kurzbeschreibung"})

        assert field_type == Optional[str]
        assert field_info.default is None
        assert field_info.description == "Kurzbeschreibung"

    def test_create_nested_model(self):
        model_class = create_nested_model(
            {"firstName": {"type": "string", "required": True}, "email": {"type": "email"}},
            "PersonModel"
        )

        assert issubclass(model_class, BaseModel)
        assert model_class(firstName="Ada").email is None
        with pytest.raises(ValidationError):
            model_class(firstName="Ada", email="kaputt")

    def test_create_validators_for_plain_field_is_empty(self):
        assert create_validators_for_field("title", {"type": "string"}) == {}
        assert set(create_validators_for_field("email", {"type": "email", "pattern": ".*"})) == {
            "validate_email_email",
            "validate_email_pattern",
        }
