"""
Focus navigation for the form engine.

Selects the first erroring field in canonical field order and asks the UI
collaborator to scroll to and focus it.
"""

import logging
from pathlib import Path
from typing import Iterable, List, Optional, Protocol, Tuple, Union

from .error_handler import ErrorHandler
from .field_registry import FieldPathRegistry
from .issues import FORM_FIELD, ValidationIssue

logger = logging.getLogger(__name__)


class FocusTarget(Protocol):
    """UI collaborator that can bring a field into view."""

    def scroll_to(self, field: str) -> None:
        ...

    def focus(self, field: str) -> None:
        ...


class RecordingFocusTarget:
    """
    Focus target that only records the requested actions.

    Used for headless forms and in tests.
    """

    def __init__(self):
        self.calls: List[Tuple[str, str]] = []

    def scroll_to(self, field: str) -> None:
        self.calls.append(('scroll_to', field))

    def focus(self, field: str) -> None:
        self.calls.append(('focus', field))

    @property
    def focused_fields(self) -> List[str]:
        return [field for action, field in self.calls if action == 'focus']

    @property
    def last_focused(self) -> Optional[str]:
        focused = self.focused_fields
        return focused[-1] if focused else None

    def clear(self) -> None:
        self.calls = []


class FocusNavigator:
    """
    Deterministic navigation to the first erroring field.

    The target is chosen by walking the registry's field order, never by
    iterating the issue collection, so the same issues and the same order
    always select the same field.
    """

    def __init__(
        self,
        registry: FieldPathRegistry,
        target: Optional[FocusTarget] = None,
        form_id: Optional[str] = None,
        audit_log: Optional[Union[str, Path]] = None
    ):
        self.registry = registry
        self.target = target
        self.form_id = form_id
        self.audit_log = audit_log

    def select_target(self, issues: Iterable[ValidationIssue]) -> Optional[str]:
        """
        Choose the field to navigate to.

        Args:
            issues: Ranked, visible issues

        Returns:
            Registered field id of the first erroring field, or None
        """
        erroring = set()
        for issue in issues:
            resolved = self.registry.resolve(issue.field)
            if resolved is not None:
                erroring.add(resolved)

        if not erroring:
            return None

        for field in self.registry.order:
            if field in erroring:
                return field
        return None

    def find_unreachable(self, issues: Iterable[ValidationIssue]) -> List[str]:
        """List the fields of issues that map to no entry of the field order; form-level issues are skipped."""
        unreachable = []
        for issue in issues:
            if issue.field == FORM_FIELD:
                continue
            if self.registry.resolve(issue.field) is None and issue.field not in unreachable:
                unreachable.append(issue.field)
        return unreachable

    def navigate(self, issues: Iterable[ValidationIssue]) -> Optional[str]:
        """
        Scroll to and focus the first erroring field.

        Issues that cannot be reached are reported as a registry gap; they
        never cause an exception.

        Args:
            issues: Ranked, visible issues

        Returns:
            The field that received focus, or None
        """
        issues = list(issues)
        if not issues:
            return None

        unreachable = self.find_unreachable(issues)
        if unreachable:
            ErrorHandler.log_registry_gap(unreachable, form_id=self.form_id, log_path=self.audit_log)

        field = self.select_target(issues)
        if field is None:
            logger.warning(f"No erroring field of form '{self.form_id or 'unknown'}' is in the field order")
            return None

        if self.target is None:
            logger.debug(f"No focus target attached, would focus '{field}'")
            return field

        self.target.scroll_to(field)
        self.target.focus(field)
        logger.debug(f"Focused first erroring field '{field}'")
        return field
