"""
Submission orchestrator for the form engine.

Coordinates schema and custom validation, the transport call and the
submission state transitions of one form instance. This is the only
component that mutates the submission state and the server field errors;
everything else reads them through the orchestrator.
"""

import asyncio
import copy
import inspect
import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from . import validation_messages
from .attachments import Attachment, AttachmentStore, count_entry
from .config_loader import get_config_value, get_default_config
from .custom_validation import CustomValidationRule, CustomValidationSet
from .error_aggregator import ErrorSummary, ValidationErrorAggregator
from .error_handler import ErrorHandler, ErrorType
from .errors import (
    ClientValidationError, InvalidTransitionError, ServerValidationError,
    TransportError, log_error_with_context
)
from .field_registry import FieldPathRegistry, normalize_field_path
from .focus_navigator import FocusNavigator, FocusTarget
from .issues import CustomValidationEntry, ValidationIssue
from .schema_validator import SchemaValidator, run_schema_validator
from .submission_state import (
    FailureReason, StateListener, SubmissionState, SubmissionStateMachine, SubmissionStatus
)
from .transport import (
    Transport, TransportFailure, TransportFieldRejection, TransportSuccess, coerce_transport_result
)
from .value_diff import has_changes

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SubmissionOutcome:
    """
    Result of one submit() or retry() call.

    Attributes:
        status: Submission status after the call
        reason: Failure reason when status is FAILED
        issues: Visible issues after the call
        data: Transport payload on success
        message: Non-field-scoped message (transport failures)
        focused_field: Field the focus navigator selected
        ignored: True if the call was a no-op because a submission was in flight
        stale: True if the attempt was superseded before its result arrived
    """
    status: SubmissionStatus
    reason: Optional[FailureReason] = None
    issues: Tuple[ValidationIssue, ...] = ()
    data: Any = None
    message: Optional[str] = None
    focused_field: Optional[str] = None
    ignored: bool = False
    stale: bool = False

    @property
    def succeeded(self) -> bool:
        return self.status == SubmissionStatus.SUCCEEDED and not self.stale and not self.ignored

    def raise_for_failure(self) -> None:
        """Raise the error matching the failure reason; does nothing otherwise."""
        if self.status != SubmissionStatus.FAILED or self.stale:
            return
        if self.reason == FailureReason.CLIENT_VALIDATION:
            raise ClientValidationError({issue.field: issue.message for issue in self.issues})
        if self.reason == FailureReason.SERVER_VALIDATION:
            raise ServerValidationError({issue.field: issue.message for issue in self.issues}, self.message)
        raise TransportError(self.message or validation_messages.GENERIC_ERROR)


class SubmissionOrchestrator:
    """
    Drives submit / retry / reset of one form instance.

    The transport call is the only suspension point. The attempt token is
    captured before it and compared afterwards, so a result that arrives after
    a reset or teardown is discarded instead of being applied.
    """

    def __init__(
        self,
        registry: FieldPathRegistry,
        schema_validator: SchemaValidator,
        transport: Transport,
        custom_rules: Optional[Iterable[CustomValidationRule]] = None,
        focus_target: Optional[FocusTarget] = None,
        attachments: Optional[AttachmentStore] = None,
        config: Optional[Dict[str, Any]] = None,
        form_id: Optional[str] = None,
        labels: Optional[Mapping[str, str]] = None,
        attachment_field: Optional[str] = None,
        initial_values: Optional[Mapping[str, Any]] = None
    ):
        self.registry = registry
        self.schema_validator = schema_validator
        self.transport = transport
        self.config = config or get_default_config()
        self.form_id = form_id or 'form'
        self.labels = dict(labels or {})
        self.attachments = attachments if attachments is not None else AttachmentStore()
        self.attachment_field = normalize_field_path(attachment_field) if attachment_field else None

        self.navigator = FocusNavigator(
            registry,
            focus_target,
            form_id=self.form_id,
            audit_log=get_config_value(self.config, 'navigation', 'audit_log'),
        )

        self._machine = SubmissionStateMachine()
        self._custom = CustomValidationSet(custom_rules)
        self._schema_issues: List[ValidationIssue] = []
        self._attachment_entries: List[CustomValidationEntry] = []
        self._server_errors: Dict[str, str] = {}
        self._initial_values: Dict[str, Any] = copy.deepcopy(dict(initial_values or {}))
        self._torn_down = False

    @property
    def state(self) -> SubmissionState:
        return self._machine.state

    @property
    def server_field_errors(self) -> Dict[str, str]:
        return dict(self._server_errors)

    @property
    def is_torn_down(self) -> bool:
        return self._torn_down

    @property
    def issues(self) -> List[ValidationIssue]:
        """Ranked issues, one per field, regardless of visibility."""
        return ValidationErrorAggregator.aggregate(
            self._schema_issues,
            self._custom.entries + self._attachment_entries,
            self._server_errors,
        )

    def get_visible_issues(self, force_show: bool = False) -> List[ValidationIssue]:
        visible = ValidationErrorAggregator.get_visible_issues(self.issues, self.state, force_show)
        return ValidationErrorAggregator.sort_by_field_order(visible, self.registry)

    def error_for(self, field: str, force_show: bool = False) -> Optional[str]:
        """Inline message of a field, or None if it has no visible issue."""
        field = normalize_field_path(field)
        for issue in self.get_visible_issues(force_show):
            if issue.field == field:
                return issue.message
        return None

    def get_summary(self, force_show: bool = False) -> ErrorSummary:
        error_message = self.state.error_message if self.state.is_failed else None
        return ValidationErrorAggregator.build_summary(
            self.get_visible_issues(force_show), self.registry, self.labels, error_message
        )

    def is_dirty(self, values: Mapping[str, Any]) -> bool:
        return has_changes(self._initial_values, values)

    def add_state_listener(self, listener: StateListener) -> None:
        self._machine.add_listener(listener)

    async def validate(self, values: Mapping[str, Any]) -> List[ValidationIssue]:
        """
        Recompute schema and custom issues without submitting.

        Issues stay hidden until the first submit attempt.

        Returns:
            Visible issues after the update
        """
        self._ensure_mutable('validate')
        token = self._machine.attempt
        if not await self._run_validation(token, values):
            logger.info(f"Discarding validation result of form '{self.form_id}' superseded by a newer attempt")
        return self.get_visible_issues()

    def add_attachment(self, field_id: str, attachment: Attachment) -> int:
        self._ensure_mutable('add_attachment')
        return self.attachments.add(field_id, attachment)

    def replace_attachment(self, field_id: str, index: int, attachment: Attachment) -> Attachment:
        self._ensure_mutable('replace_attachment')
        return self.attachments.replace(field_id, index, attachment)

    def remove_attachment(self, field_id: str, index: int) -> Attachment:
        self._ensure_mutable('remove_attachment')
        return self.attachments.remove(field_id, index)

    async def submit(self, values: Mapping[str, Any]) -> SubmissionOutcome:
        """
        Validate the values and, if valid, send them with the attachments.

        A call while a submission is in flight is a no-op. From FAILED this
        behaves like retry(); from SUCCEEDED the form is reset first.

        Raises:
            InvalidTransitionError: If the form was torn down
        """
        if self._torn_down:
            raise InvalidTransitionError('submit', 'torn_down')

        status = self._machine.status
        if status in (SubmissionStatus.VALIDATING, SubmissionStatus.SUBMITTING):
            logger.info(f"Ignoring submit of form '{self.form_id}' while {status.value}")
            return SubmissionOutcome(status=status, ignored=True)

        if status == SubmissionStatus.FAILED:
            return await self.retry(values)

        if status == SubmissionStatus.SUCCEEDED:
            logger.info(f"Resubmission of form '{self.form_id}' requested, resetting first")
            self.reset()

        token = self._machine.begin_validation()
        return await self._run_attempt(token, values)

    async def retry(self, values: Mapping[str, Any]) -> SubmissionOutcome:
        """
        Start a new attempt from FAILED, re-entering validation.

        Raises:
            InvalidTransitionError: If the state is not FAILED
        """
        if self._torn_down:
            raise InvalidTransitionError('retry', 'torn_down')

        token = self._machine.retry()
        return await self._run_attempt(token, values)

    def reset(self) -> None:
        """
        Return to IDLE from any state.

        Invalidates an in-flight attempt and clears server errors, computed
        issues, custom validation inputs and attachments.
        """
        if self._torn_down:
            raise InvalidTransitionError('reset', 'torn_down')

        self._machine.reset()
        self._clear_transient_state()
        released = self.attachments.release_all()
        logger.info(f"Form '{self.form_id}' reset ({released} attachment(s) released)")

    def teardown(self) -> None:
        """
        Tear down the form instance when it is unmounted.

        An in-flight attempt is invalidated and every attachment is released.
        Calling teardown again does nothing.
        """
        if self._torn_down:
            logger.debug(f"Form '{self.form_id}' already torn down")
            return

        self._machine.reset()
        self._clear_transient_state()
        released = self.attachments.release_all()
        self._torn_down = True
        logger.info(f"Form '{self.form_id}' torn down ({released} attachment(s) released)")

    async def _run_attempt(self, token: int, values: Mapping[str, Any]) -> SubmissionOutcome:
        # server errors of an earlier attempt are no longer trusted
        self._server_errors = {}

        try:
            applied = await self._run_validation(token, values)
        except (asyncio.CancelledError, Exception):
            if self._machine.is_current(token):
                logger.error(f"Validation of form '{self.form_id}' aborted, returning to idle")
                self._machine.reset()
            raise

        if not applied:
            return self._stale_outcome(token)

        visible = self.get_visible_issues()
        if visible:
            self._machine.mark_invalid()
            focused = self.navigator.navigate(visible)
            logger.info(f"Client validation of form '{self.form_id}' failed for {len(visible)} field(s)")
            return self._outcome(visible, focused_field=focused)

        self._machine.mark_valid()

        try:
            result = self.transport.send(dict(values), self.attachments.all())
            if inspect.isawaitable(result):
                result = await result
            result = coerce_transport_result(result)
        except asyncio.CancelledError:
            if self._machine.is_current(token):
                self._machine.mark_transport_failed(validation_messages.SUBMISSION_CANCELLED)
            raise
        except Exception as e:
            transport_error = ErrorHandler.to_transport_error(e, f"submission of form '{self.form_id}'")
            message = transport_error.message
            if ErrorHandler.classify(e) == ErrorType.SYSTEM:
                message = get_config_value(self.config, 'submission', 'generic_error_message', message)
            result = TransportFailure(message, transport_error.status_code)

        if not self._machine.is_current(token):
            return self._stale_outcome(token)

        return self._apply_result(result)

    async def _run_validation(self, token: int, values: Mapping[str, Any]) -> bool:
        """Run all validation layers; returns False if the attempt went stale meanwhile."""
        schema_result = await run_schema_validator(self.schema_validator, values)
        if not self._machine.is_current(token):
            return False

        self._schema_issues = list(schema_result.issues)
        self._custom.recompute(values)

        attachment_entries: List[CustomValidationEntry] = []
        if self.attachment_field is not None:
            attachment_entries.append(count_entry(
                self.attachments,
                self.attachment_field,
                int(get_config_value(self.config, 'attachments', 'min_count', 0)),
                get_config_value(self.config, 'attachments', 'max_count'),
            ))
        self._attachment_entries = attachment_entries
        return True

    def _apply_result(self, result) -> SubmissionOutcome:
        if isinstance(result, TransportSuccess):
            self._machine.mark_succeeded()
            self._clear_transient_state()
            self.attachments.release_all()
            logger.info(f"Form '{self.form_id}' submitted successfully")
            return self._outcome([], data=result.data)

        if isinstance(result, TransportFieldRejection) and result.field_errors:
            self._server_errors = {
                normalize_field_path(field): message for field, message in result.field_errors.items()
            }
            self._machine.mark_server_rejected(result.message)
            visible = self.get_visible_issues()
            focused = self.navigator.navigate(visible)
            logger.info(f"Server rejected {len(self._server_errors)} field(s) of form '{self.form_id}'")
            return self._outcome(visible, message=result.message, focused_field=focused)

        if isinstance(result, TransportFieldRejection):
            result = TransportFailure(result.message or validation_messages.GENERIC_ERROR)

        log_error_with_context(
            TransportError(result.message, result.status_code), f"submission of form '{self.form_id}'"
        )
        self._machine.mark_transport_failed(result.message)
        return self._outcome([], message=result.message)

    def _outcome(self, issues: List[ValidationIssue], data: Any = None, message: Optional[str] = None,
                 focused_field: Optional[str] = None) -> SubmissionOutcome:
        state = self.state
        return SubmissionOutcome(
            status=state.status,
            reason=state.failure_reason,
            issues=tuple(issues),
            data=data,
            message=message if message is not None else state.error_message,
            focused_field=focused_field,
        )

    def _stale_outcome(self, token: int) -> SubmissionOutcome:
        logger.info(f"Discarding result of stale attempt {token} of form '{self.form_id}' "
                    f"(current attempt {self._machine.attempt})")
        return SubmissionOutcome(status=self.state.status, stale=True)

    def _clear_transient_state(self) -> None:
        self._server_errors = {}
        self._schema_issues = []
        self._attachment_entries = []
        self._custom.reset()

    def _ensure_mutable(self, operation: str) -> None:
        if self._torn_down:
            raise InvalidTransitionError(operation, 'torn_down')
        if self._machine.status in (SubmissionStatus.VALIDATING, SubmissionStatus.SUBMITTING):
            raise InvalidTransitionError(operation, self.state.describe())
