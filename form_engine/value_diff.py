"""
Value tree change detection for the form engine.

Uses DeepDiff to work out which field paths changed between two snapshots
of a form's values, so dependent rules are only re-evaluated when needed.
"""

import logging
from typing import Any, List, Mapping, Optional, Set

from deepdiff import DeepDiff

from .field_registry import normalize_field_path

logger = logging.getLogger(__name__)

_MISSING = object()


def changed_paths(original: Optional[Mapping[str, Any]], modified: Optional[Mapping[str, Any]]) -> Set[str]:
    """
    Calculate the canonical field paths that differ between two value trees.

    Args:
        original: Previous values snapshot
        modified: Current values

    Returns:
        Set of dotted field ids (e.g. {'purposes.zuschuss.amount', 'files.1'})
    """
    diff = DeepDiff(
        dict(original or {}),
        dict(modified or {}),
        view='tree'  # Tree view exposes path segments for every change
    )

    paths: Set[str] = set()
    for report_type in diff:
        for level in diff[report_type]:
            tokens = level.path(output_format='list')
            if tokens:
                paths.add(normalize_field_path(tokens))

    if paths:
        logger.debug(f"Changed paths: {sorted(paths)}")
    return paths


def has_changes(original: Optional[Mapping[str, Any]], modified: Optional[Mapping[str, Any]]) -> bool:
    """Check if two value trees differ anywhere."""
    return bool(changed_paths(original, modified))


def path_affected(path: str, changed: Set[str]) -> bool:
    """
    Check whether a dependency path is touched by a set of changed paths.

    A change below the path (``files.0`` for ``files``) or a replacement of one
    of its parents (``purposes`` for ``purposes.zuschuss``) both count.
    """
    path = normalize_field_path(path)
    for changed_path in changed:
        if changed_path == path:
            return True
        if changed_path.startswith(path + '.') or path.startswith(changed_path + '.'):
            return True
    return False


def get_path_value(values: Optional[Mapping[str, Any]], path: str, default: Any = None) -> Any:
    """
    Resolve a dotted field path inside a nested value tree.

    Args:
        values: Nested dicts/lists
        path: Field id such as 'responsiblePersons.0.email'
        default: Returned when any segment is missing

    Returns:
        The value at the path or ``default``
    """
    current: Any = values
    for segment in _split(path):
        current = _step(current, segment)
        if current is _MISSING:
            return default
    return current


def _split(path: str) -> List[str]:
    normalized = normalize_field_path(path)
    return normalized.split('.') if normalized else []


def _step(current: Any, segment: str) -> Any:
    if isinstance(current, Mapping):
        return current.get(segment, _MISSING)
    if isinstance(current, (list, tuple)) and segment.isdigit():
        index = int(segment)
        return current[index] if index < len(current) else _MISSING
    return getattr(current, segment, _MISSING) if current is not None else _MISSING
