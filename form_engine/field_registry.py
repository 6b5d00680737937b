"""
Field path registry for the form engine.

Holds the canonical, ordered list of addressable field ids of one form and
answers position lookups used for deterministic error navigation.
"""

import re
import logging
from typing import Dict, Iterable, Iterator, List, Optional, Tuple, Union

from .errors import RegistrationError

logger = logging.getLogger(__name__)

_INDEX_PATTERN = re.compile(r"\[(\d+)\]")

FieldPath = Union[str, Tuple[Union[str, int], ...], List[Union[str, int]]]


def normalize_field_path(path: FieldPath) -> str:
    """
    Convert a field path to its canonical dotted form.

    ``responsiblePersons[0].email``, ``responsiblePersons.0.email`` and
    ``('responsiblePersons', 0, 'email')`` all map to
    ``responsiblePersons.0.email``.

    Args:
        path: Field path as string or sequence of segments

    Returns:
        Canonical field id
    """
    if isinstance(path, (tuple, list)):
        path = '.'.join(str(segment) for segment in path)

    normalized = _INDEX_PATTERN.sub(r".\1", str(path).strip())
    segments = [segment for segment in normalized.split('.') if segment]
    return '.'.join(segments)


def parent_paths(field: str) -> List[str]:
    """Return the prefixes of a dotted path, longest first (excluding the path itself)."""
    segments = field.split('.')
    return ['.'.join(segments[:i]) for i in range(len(segments) - 1, 0, -1)]


class FieldPathRegistry:
    """
    Ordered registry of the field ids of one form.

    The base order is registered once per form definition. Conditionally
    rendered sections register their own sub-range anchored after an existing
    field, so revealing or hiding a section never shifts the relative order of
    unrelated fields.
    """

    def __init__(self, order: Optional[Iterable[FieldPath]] = None):
        self._base: List[str] = []
        self._sections: Dict[str, Tuple[Optional[str], List[str]]] = {}
        self._order: Tuple[str, ...] = ()
        self._index: Dict[str, int] = {}

        if order is not None:
            self.register(order)

    def register(self, order: Iterable[FieldPath]) -> None:
        """
        Register the base field order of the form.

        Args:
            order: Field ids in visual (top-to-bottom) order

        Raises:
            RegistrationError: If the order contains duplicate field ids
        """
        fields = [normalize_field_path(field) for field in order]
        duplicates = _find_duplicates(fields)
        if duplicates:
            raise RegistrationError(
                f"Duplicate field ids in field order: {', '.join(duplicates)}", duplicates
            )

        self._base = fields
        self._sections = {}
        self._rebuild()
        logger.debug(f"Registered field order with {len(fields)} fields")

    def register_section(self, section_id: str, fields: Iterable[FieldPath],
                         after: Optional[FieldPath] = None) -> None:
        """
        Register (or re-register) the fields of a conditional section.

        Only the sub-range of ``section_id`` is replaced; all other fields keep
        their relative positions.

        Args:
            section_id: Identifier of the section
            fields: Field ids of the section in visual order
            after: Field the section is rendered after; appended at the end when None

        Raises:
            RegistrationError: On duplicate ids or an unknown anchor field
        """
        section_fields = [normalize_field_path(field) for field in fields]
        anchor = normalize_field_path(after) if after is not None else None

        other_fields = set(self._base)
        for other_id, (_, other_section_fields) in self._sections.items():
            if other_id != section_id:
                other_fields.update(other_section_fields)

        duplicates = _find_duplicates(section_fields)
        duplicates.extend(f for f in section_fields if f in other_fields and f not in duplicates)
        if duplicates:
            raise RegistrationError(
                f"Section '{section_id}' repeats registered field ids: {', '.join(duplicates)}",
                duplicates
            )

        if anchor is not None and anchor not in other_fields:
            raise RegistrationError(
                f"Section '{section_id}' is anchored after unknown field '{anchor}'", [anchor]
            )

        self._sections[section_id] = (anchor, section_fields)
        self._rebuild()
        logger.debug(f"Registered section '{section_id}' with {len(section_fields)} fields after '{anchor}'")

    def remove_section(self, section_id: str) -> bool:
        """Drop the sub-range of a section. Returns False if it was not registered."""
        if section_id not in self._sections:
            return False

        del self._sections[section_id]
        self._rebuild()
        logger.debug(f"Removed section '{section_id}'")
        return True

    def has_section(self, section_id: str) -> bool:
        return section_id in self._sections

    def index_of(self, field: FieldPath) -> Optional[int]:
        """
        Get the position of a field in the canonical order.

        Returns:
            Zero-based position, or None when the field is not registered
        """
        return self._index.get(normalize_field_path(field))

    def contains(self, field: FieldPath) -> bool:
        return normalize_field_path(field) in self._index

    def resolve(self, field: FieldPath) -> Optional[str]:
        """
        Map a (possibly nested) field id to the registered field that represents it.

        The field itself wins; otherwise the longest registered prefix is used,
        so an error on ``responsiblePersons.0.email`` is reachable through
        ``responsiblePersons``.

        Returns:
            Registered field id, or None for a registry gap
        """
        normalized = normalize_field_path(field)
        if normalized in self._index:
            return normalized

        for prefix in parent_paths(normalized):
            if prefix in self._index:
                return prefix

        return None

    def position(self, field: FieldPath) -> Optional[int]:
        """Position of the registered field that ``resolve`` maps ``field`` to."""
        resolved = self.resolve(field)
        if resolved is None:
            return None
        return self._index[resolved]

    @property
    def order(self) -> Tuple[str, ...]:
        return self._order

    def __len__(self) -> int:
        return len(self._order)

    def __iter__(self) -> Iterator[str]:
        return iter(self._order)

    def __contains__(self, field: object) -> bool:
        if not isinstance(field, (str, tuple, list)):
            return False
        return self.contains(field)

    def _rebuild(self) -> None:
        order = list(self._base)
        inserted_after: Dict[str, int] = {}

        for section_id, (anchor, fields) in self._sections.items():
            if anchor is None:
                order.extend(fields)
                continue

            if anchor not in order:
                logger.warning(
                    f"Anchor '{anchor}' of section '{section_id}' is no longer registered, "
                    f"appending section at the end"
                )
                order.extend(fields)
                continue

            position = order.index(anchor) + 1 + inserted_after.get(anchor, 0)
            order[position:position] = fields
            inserted_after[anchor] = inserted_after.get(anchor, 0) + len(fields)

        self._order = tuple(order)
        self._index = {field: i for i, field in enumerate(order)}


def _find_duplicates(fields: List[str]) -> List[str]:
    seen = set()
    duplicates = []
    for field in fields:
        if field in seen and field not in duplicates:
            duplicates.append(field)
        seen.add(field)
    return duplicates
