"""
Validation issue types shared by the aggregator, navigator and orchestrator.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from .field_registry import normalize_field_path

# Field id of issues that concern the whole form rather than one field
FORM_FIELD = '__form__'


class IssueSource(Enum):
    """Origin of a validation issue."""
    SERVER = "server"
    SCHEMA = "schema"
    CUSTOM = "custom"

    @property
    def rank(self) -> int:
        """Higher rank wins when several sources report the same field."""
        return _SOURCE_RANKS[self]


_SOURCE_RANKS = {
    IssueSource.SERVER: 3,
    IssueSource.SCHEMA: 2,
    IssueSource.CUSTOM: 1,
}


@dataclass(frozen=True)
class ValidationIssue:
    """
    One field-scoped error with a message and its originating source.

    Attributes:
        field: Canonical field id
        message: User-facing message
        source: Which validation layer produced the issue
        label: Optional display label of the field
    """
    field: str
    message: str
    source: IssueSource
    label: Optional[str] = None

    def __post_init__(self):
        object.__setattr__(self, 'field', normalize_field_path(self.field))

    def outranks(self, other: 'ValidationIssue') -> bool:
        return self.source.rank > other.source.rank

    def to_dict(self) -> dict:
        return {
            'field': self.field,
            'message': self.message,
            'source': self.source.value,
            'label': self.label,
        }


@dataclass(frozen=True)
class CustomValidationEntry:
    """Current result of one runtime rule that the schema cannot express."""
    field: str
    is_valid: bool
    message: str = ""

    def __post_init__(self):
        object.__setattr__(self, 'field', normalize_field_path(self.field))

    def to_issue(self) -> Optional[ValidationIssue]:
        """Convert a failing entry to an issue; passing or message-less entries yield None."""
        if self.is_valid or not self.message:
            return None
        return ValidationIssue(self.field, self.message, IssueSource.CUSTOM)
