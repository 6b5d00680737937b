"""
Attachment ownership for form instances.

A form owns the file and image payloads the user attached. Each payload may
hold a temporary preview resource which is released exactly once: on
replacement, on removal, or when the form is torn down.
"""

import logging
import os
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Protocol

from . import validation_messages
from .errors import AttachmentError
from .field_registry import normalize_field_path
from .issues import CustomValidationEntry

logger = logging.getLogger(__name__)


class PreviewHandle(Protocol):
    """Temporary resource backing a preview of an attachment."""

    def release(self) -> None:
        ...


class TempFilePreview:
    """Preview handle backed by a temporary file that is deleted on release."""

    def __init__(self, data: bytes, suffix: str = ""):
        fd, path = tempfile.mkstemp(prefix="form_preview_", suffix=suffix)
        with os.fdopen(fd, 'wb') as f:
            f.write(data)
        self.path = Path(path)

    def release(self) -> None:
        try:
            self.path.unlink()
        except FileNotFoundError:
            logger.warning(f"Preview file already gone: {self.path}")


@dataclass(eq=False)
class Attachment:
    """
    One binary payload attached to a form.

    Attributes:
        name: Original file name
        content_type: MIME type reported by the upload collaborator
        data: Payload bytes
        preview: Optional temporary preview resource
    """
    name: str
    content_type: str
    data: bytes
    preview: Optional[PreviewHandle] = None
    released: bool = field(default=False, init=False)

    @property
    def size(self) -> int:
        return len(self.data)

    def release(self) -> None:
        """
        Release the preview resource.

        Raises:
            AttachmentError: If the attachment was already released
        """
        if self.released:
            raise AttachmentError(f"Attachment '{self.name}' was already released", self.name)

        self.released = True
        if self.preview is not None:
            self.preview.release()
        logger.debug(f"Released attachment '{self.name}'")


class AttachmentStore:
    """Attachments of one form instance, grouped by field id."""

    def __init__(self):
        self._items: Dict[str, List[Attachment]] = {}

    def add(self, field_id: str, attachment: Attachment) -> int:
        """
        Attach a payload to a field.

        Returns:
            Index of the attachment within the field
        """
        if attachment.released:
            raise AttachmentError(f"Cannot attach released attachment '{attachment.name}'", attachment.name)
        if any(existing is attachment for existing in self.all()):
            raise AttachmentError(f"Attachment '{attachment.name}' is already attached", attachment.name)

        items = self._items.setdefault(normalize_field_path(field_id), [])
        items.append(attachment)
        logger.debug(f"Attached '{attachment.name}' ({attachment.size} bytes) to '{field_id}'")
        return len(items) - 1

    def replace(self, field_id: str, index: int, attachment: Attachment) -> Attachment:
        """
        Replace an attachment, releasing the previous one.

        Returns:
            The replaced (now released) attachment
        """
        items = self._get_items(field_id, index)
        if attachment.released:
            raise AttachmentError(f"Cannot attach released attachment '{attachment.name}'", attachment.name)

        previous = items[index]
        items[index] = attachment
        previous.release()
        return previous

    def remove(self, field_id: str, index: int) -> Attachment:
        """
        Remove an attachment and release it.

        Returns:
            The removed (now released) attachment
        """
        items = self._get_items(field_id, index)
        removed = items.pop(index)
        if not items:
            del self._items[normalize_field_path(field_id)]
        removed.release()
        return removed

    def get(self, field_id: str) -> List[Attachment]:
        return list(self._items.get(normalize_field_path(field_id), []))

    def all(self) -> List[Attachment]:
        return [attachment for items in self._items.values() for attachment in items]

    def fields(self) -> List[str]:
        return list(self._items.keys())

    def count(self, field_id: Optional[str] = None) -> int:
        if field_id is None:
            return sum(len(items) for items in self._items.values())
        return len(self._items.get(normalize_field_path(field_id), []))

    def total_size(self) -> int:
        return sum(attachment.size for attachment in self.all())

    def release_all(self) -> int:
        """
        Release every attachment and empty the store.

        Returns:
            Number of attachments released
        """
        attachments = self.all()
        self._items = {}

        for attachment in attachments:
            try:
                attachment.release()
            except Exception as e:
                logger.error(f"Failed to release attachment '{attachment.name}': {e}", exc_info=True)

        if attachments:
            logger.info(f"Released {len(attachments)} attachment(s)")
        return len(attachments)

    def _get_items(self, field_id: str, index: int) -> List[Attachment]:
        items = self._items.get(normalize_field_path(field_id))
        if not items or not 0 <= index < len(items):
            raise AttachmentError(f"No attachment at index {index} of field '{field_id}'")
        return items


def count_entry(store: AttachmentStore, field_id: str, min_count: int = 0,
                max_count: Optional[int] = None) -> CustomValidationEntry:
    """
    Check presence/count of the attachments of a field.

    Args:
        store: Attachment store of the form
        field_id: Field the attachments belong to
        min_count: Minimum number of attachments
        max_count: Maximum number of attachments (unbounded when None)

    Returns:
        CustomValidationEntry for the field
    """
    count = store.count(field_id)

    if count < min_count:
        return CustomValidationEntry(field_id, False, validation_messages.too_few_files(field_id, min_count))
    if max_count is not None and count > max_count:
        return CustomValidationEntry(field_id, False, validation_messages.too_many_files(max_count))
    return CustomValidationEntry(field_id, True, "")
