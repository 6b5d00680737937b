"""
Custom validation rules for constraints the declarative schema cannot express.

Examples are "at least one of four purposes must be enabled" or
"end date must not be before start date". Each rule yields a
CustomValidationEntry that is recomputed whenever one of its dependent
values changes.
"""

import copy
import logging
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from . import validation_messages
from .field_registry import normalize_field_path
from .issues import CustomValidationEntry
from .value_diff import changed_paths, get_path_value, path_affected

logger = logging.getLogger(__name__)

Predicate = Callable[[Mapping[str, Any]], bool]


@dataclass(frozen=True)
class CustomValidationRule:
    """
    A runtime predicate bound to one field.

    Attributes:
        field: Field the resulting message belongs to
        predicate: Returns True when the values satisfy the rule
        message: Message shown when the rule fails
        depends_on: Value paths the predicate reads; empty means "always re-evaluate"
    """
    field: str
    predicate: Predicate
    message: str
    depends_on: Tuple[str, ...] = ()

    def evaluate(self, values: Mapping[str, Any]) -> CustomValidationEntry:
        """Run the predicate against the values."""
        try:
            is_valid = bool(self.predicate(values))
        except Exception as e:
            logger.error(f"Custom validation rule for '{self.field}' raised: {e}", exc_info=True)
            is_valid = False
        return CustomValidationEntry(self.field, is_valid, self.message)


class CustomValidationSet:
    """
    The custom rules of one form together with their latest results.

    ``recompute`` only re-runs rules whose dependencies changed since the
    previous call (as reported by DeepDiff); rules without declared
    dependencies always run.
    """

    def __init__(self, rules: Optional[Iterable[CustomValidationRule]] = None):
        self._rules: List[CustomValidationRule] = list(rules or [])
        self._entries: Dict[int, CustomValidationEntry] = {}
        self._last_values: Optional[Dict[str, Any]] = None

    @property
    def rules(self) -> Tuple[CustomValidationRule, ...]:
        return tuple(self._rules)

    def add_rule(self, rule: CustomValidationRule) -> None:
        self._rules.append(rule)

    def recompute(self, values: Mapping[str, Any]) -> List[CustomValidationEntry]:
        """
        Re-evaluate the rules affected by changes in ``values``.

        Args:
            values: Current value tree of the form

        Returns:
            Entries of all rules, in rule order
        """
        changed = None
        if self._last_values is not None:
            changed = changed_paths(self._last_values, values)

        evaluated = 0
        for index, rule in enumerate(self._rules):
            if self._needs_evaluation(index, rule, changed):
                self._entries[index] = rule.evaluate(values)
                evaluated += 1

        self._last_values = copy.deepcopy(dict(values))
        logger.debug(f"Recomputed {evaluated} of {len(self._rules)} custom validation rules")
        return self.entries

    @property
    def entries(self) -> List[CustomValidationEntry]:
        return [self._entries[i] for i in range(len(self._rules)) if i in self._entries]

    def failing(self) -> List[CustomValidationEntry]:
        return [entry for entry in self.entries if not entry.is_valid]

    def reset(self) -> None:
        """Forget cached inputs and results."""
        self._entries = {}
        self._last_values = None

    def _needs_evaluation(self, index: int, rule: CustomValidationRule, changed) -> bool:
        if changed is None or index not in self._entries or not rule.depends_on:
            return True
        return any(path_affected(dependency, changed) for dependency in rule.depends_on)


def at_least_one_of(field: str, toggles: Sequence[str], message: Optional[str] = None) -> CustomValidationRule:
    """
    Rule: at least one of the toggle values must be truthy.

    Args:
        field: Field that receives the message (e.g. 'purposes')
        toggles: Paths of the toggles
        message: Optional custom message
    """
    toggle_paths = tuple(normalize_field_path(t) for t in toggles)

    def predicate(values: Mapping[str, Any]) -> bool:
        return any(bool(get_path_value(values, path)) for path in toggle_paths)

    return CustomValidationRule(
        field=field,
        predicate=predicate,
        message=message or validation_messages.at_least_one(field),
        depends_on=toggle_paths,
    )


def not_before(field: str, start: str, end: str, message: Optional[str] = None) -> CustomValidationRule:
    """
    Rule: the end value must not be before the start value.

    Missing or unparseable values pass; required/format checks belong to the schema.
    """
    start_path = normalize_field_path(start)
    end_path = normalize_field_path(end)

    def predicate(values: Mapping[str, Any]) -> bool:
        start_value = _coerce_datetime(get_path_value(values, start_path))
        end_value = _coerce_datetime(get_path_value(values, end_path))
        if start_value is None or end_value is None:
            return True
        return end_value >= start_value

    return CustomValidationRule(
        field=field,
        predicate=predicate,
        message=message or validation_messages.end_before_start(field),
        depends_on=(start_path, end_path),
    )


def required_when(field: str, toggle: str, target: Optional[str] = None,
                  message: Optional[str] = None) -> CustomValidationRule:
    """
    Rule: ``target`` must be filled in whenever ``toggle`` is enabled.

    Args:
        field: Field that receives the message
        toggle: Path of the enabling toggle
        target: Path of the value that becomes required (defaults to ``field``)
        message: Optional custom message
    """
    toggle_path = normalize_field_path(toggle)
    target_path = normalize_field_path(target or field)

    def predicate(values: Mapping[str, Any]) -> bool:
        if not get_path_value(values, toggle_path):
            return True
        value = get_path_value(values, target_path)
        if value is None:
            return False
        if isinstance(value, str):
            return value.strip() != ''
        if isinstance(value, (list, dict, tuple)):
            return len(value) > 0
        return True

    return CustomValidationRule(
        field=field,
        predicate=predicate,
        message=message or validation_messages.required(target_path),
        depends_on=(toggle_path, target_path),
    )


def _coerce_datetime(value: Any) -> Optional[datetime]:
    if value is None or value == '':
        return None
    if isinstance(value, datetime):
        return _to_naive_utc(value)
    if isinstance(value, date):
        return datetime.combine(value, datetime.min.time())
    if isinstance(value, str):
        try:
            parsed = datetime.fromisoformat(value.replace('Z', '+00:00'))
        except ValueError:
            return None
        return _to_naive_utc(parsed)
    return None


def _to_naive_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)
