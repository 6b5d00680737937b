"""
Validation error aggregation for the form engine.

Merges schema issues, custom validation entries and server field errors into
one list with at most one issue per field, and decides when those issues
become visible to the user.
"""

import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

from . import validation_messages
from .field_registry import FieldPathRegistry
from .issues import CustomValidationEntry, IssueSource, ValidationIssue
from .submission_state import SubmissionState, SubmissionStatus

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ErrorSummaryItem:
    field: str
    label: str
    message: str


@dataclass(frozen=True)
class ErrorSummary:
    """
    Content of the top-level error banner.

    Attributes:
        title: Banner title
        items: Every visible issue in field order
        message: Non-field-scoped message (transport failures)
    """
    title: str
    items: Tuple[ErrorSummaryItem, ...] = ()
    message: Optional[str] = None

    @property
    def has_errors(self) -> bool:
        return bool(self.items) or bool(self.message)


class ValidationErrorAggregator:
    """Merges and ranks validation issues from all sources."""

    @staticmethod
    def aggregate(
        schema_issues: Iterable[ValidationIssue],
        custom_entries: Iterable[CustomValidationEntry],
        server_errors: Optional[Mapping[str, str]] = None
    ) -> List[ValidationIssue]:
        """
        Merge issues from all three sources, keeping one issue per field.

        When several sources report the same field the server message wins,
        then the schema message, then the custom rule message. Within one
        source the first message for a field is kept.

        Args:
            schema_issues: Issues produced by the schema validator
            custom_entries: Current custom validation entries
            server_errors: Field errors of the last rejected submission

        Returns:
            Ranked issues, at most one per field, in first-seen order
        """
        candidates: List[ValidationIssue] = []

        for field, message in (server_errors or {}).items():
            if message:
                candidates.append(ValidationIssue(field, message, IssueSource.SERVER))

        candidates.extend(schema_issues)

        for entry in custom_entries:
            issue = entry.to_issue()
            if issue is not None:
                candidates.append(issue)

        ranked: Dict[str, ValidationIssue] = {}
        for issue in candidates:
            existing = ranked.get(issue.field)
            if existing is None or issue.outranks(existing):
                ranked[issue.field] = issue

        logger.debug(f"Aggregated {len(candidates)} candidate issues into {len(ranked)} field issues")
        return list(ranked.values())

    @staticmethod
    def is_visible(state: SubmissionState, force_show: bool = False) -> bool:
        """Issues are hidden until the first submit attempt unless forced."""
        return force_show or state.has_attempted or state.status != SubmissionStatus.IDLE

    @staticmethod
    def get_visible_issues(
        issues: Iterable[ValidationIssue],
        state: SubmissionState,
        force_show: bool = False
    ) -> List[ValidationIssue]:
        if not ValidationErrorAggregator.is_visible(state, force_show):
            return []
        return list(issues)

    @staticmethod
    def sort_by_field_order(
        issues: Iterable[ValidationIssue],
        registry: FieldPathRegistry
    ) -> List[ValidationIssue]:
        """
        Order issues by the canonical field order.

        Issues whose field cannot be resolved keep their relative order and go last.
        """
        indexed = list(enumerate(issues))
        unreachable_position = len(registry)

        def sort_key(item):
            original_index, issue = item
            position = registry.position(issue.field)
            return (unreachable_position if position is None else position, original_index)

        return [issue for _, issue in sorted(indexed, key=sort_key)]

    @staticmethod
    def build_summary(
        issues: Iterable[ValidationIssue],
        registry: FieldPathRegistry,
        labels: Optional[Mapping[str, str]] = None,
        error_message: Optional[str] = None
    ) -> ErrorSummary:
        """
        Build the banner that enumerates every visible issue in field order.

        Args:
            issues: Visible issues
            registry: Field order of the form
            labels: Optional form-specific labels
            error_message: Non-field-scoped failure message

        Returns:
            ErrorSummary for the UI collaborator
        """
        items = tuple(
            ErrorSummaryItem(
                field=issue.field,
                label=issue.label or validation_messages.get_field_label(issue.field, labels),
                message=issue.message,
            )
            for issue in ValidationErrorAggregator.sort_by_field_order(issues, registry)
        )

        title = validation_messages.SUMMARY_TITLE if items else validation_messages.DEFAULT_ERROR_TITLE
        return ErrorSummary(title=title, items=items, message=None if items else error_message)
