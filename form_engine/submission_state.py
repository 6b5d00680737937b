"""
Submission state machine for the form engine.

Tracks idle -> validating -> submitting -> succeeded | failed, gates error
visibility, and carries the monotonically increasing attempt counter used to
discard stale transport responses.
"""

from dataclasses import dataclass, replace
from enum import Enum
from typing import Callable, Dict, FrozenSet, List, Optional
import logging

from .errors import InvalidTransitionError

logger = logging.getLogger(__name__)


class SubmissionStatus(Enum):
    """Lifecycle states of one form submission."""
    IDLE = "idle"
    VALIDATING = "validating"
    SUBMITTING = "submitting"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class FailureReason(Enum):
    """Why the last attempt failed. Used for messaging only."""
    CLIENT_VALIDATION = "client_validation"
    SERVER_VALIDATION = "server_validation"
    TRANSPORT = "transport"


@dataclass(frozen=True)
class SubmissionState:
    """
    Immutable snapshot of the submission state.

    Attributes:
        status: Current lifecycle state
        failure_reason: Set only while status is FAILED
        error_message: Non-field-scoped message of a transport failure
        attempt: Token of the current attempt; bumped on every new attempt and on reset
        submit_count: Number of submit attempts since the last reset
    """
    status: SubmissionStatus = SubmissionStatus.IDLE
    failure_reason: Optional[FailureReason] = None
    error_message: Optional[str] = None
    attempt: int = 0
    submit_count: int = 0

    @property
    def has_attempted(self) -> bool:
        return self.submit_count > 0

    @property
    def is_submitting(self) -> bool:
        return self.status == SubmissionStatus.SUBMITTING

    @property
    def is_failed(self) -> bool:
        return self.status == SubmissionStatus.FAILED

    @property
    def succeeded(self) -> bool:
        return self.status == SubmissionStatus.SUCCEEDED

    def describe(self) -> str:
        if self.failure_reason is not None:
            return f"{self.status.value}({self.failure_reason.value})"
        return self.status.value


StateListener = Callable[[SubmissionState, SubmissionState], None]

_ALL_STATES: FrozenSet[SubmissionStatus] = frozenset(SubmissionStatus)

# Allowed source states per transition
ALLOWED_TRANSITIONS: Dict[str, FrozenSet[SubmissionStatus]] = {
    'begin_validation': frozenset({SubmissionStatus.IDLE}),
    'mark_valid': frozenset({SubmissionStatus.VALIDATING}),
    'mark_invalid': frozenset({SubmissionStatus.VALIDATING}),
    'mark_succeeded': frozenset({SubmissionStatus.SUBMITTING}),
    'mark_server_rejected': frozenset({SubmissionStatus.SUBMITTING}),
    'mark_transport_failed': frozenset({SubmissionStatus.SUBMITTING}),
    'retry': frozenset({SubmissionStatus.FAILED}),
    'reset': _ALL_STATES,
}


class SubmissionStateMachine:
    """
    Holds the current SubmissionState and applies the allowed transitions.

    Only the submission orchestrator drives the transitions; everything else
    reads ``state``.
    """

    def __init__(self):
        self._state = SubmissionState()
        self._listeners: List[StateListener] = []

    @property
    def state(self) -> SubmissionState:
        return self._state

    @property
    def status(self) -> SubmissionStatus:
        return self._state.status

    @property
    def attempt(self) -> int:
        return self._state.attempt

    def add_listener(self, listener: StateListener) -> None:
        """Register a callback invoked with (old, new) after every transition."""
        self._listeners.append(listener)

    def remove_listener(self, listener: StateListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def can(self, transition: str) -> bool:
        return self._state.status in ALLOWED_TRANSITIONS[transition]

    def is_current(self, attempt: int) -> bool:
        """Check whether an attempt token still belongs to the live attempt."""
        return attempt == self._state.attempt

    def begin_validation(self) -> int:
        """
        Idle -> Validating. Starts a new attempt.

        Returns:
            Token of the new attempt
        """
        self._transition(
            'begin_validation',
            status=SubmissionStatus.VALIDATING,
            attempt=self._state.attempt + 1,
            submit_count=self._state.submit_count + 1,
        )
        return self._state.attempt

    def retry(self) -> int:
        """
        Failed(*) -> Validating. Starts a new attempt; previous server errors are not trusted.

        Returns:
            Token of the new attempt
        """
        self._transition(
            'retry',
            status=SubmissionStatus.VALIDATING,
            attempt=self._state.attempt + 1,
            submit_count=self._state.submit_count + 1,
        )
        return self._state.attempt

    def mark_valid(self) -> None:
        """Validating -> Submitting."""
        self._transition('mark_valid', status=SubmissionStatus.SUBMITTING)

    def mark_invalid(self) -> None:
        """Validating -> Failed(ClientValidation)."""
        self._transition(
            'mark_invalid',
            status=SubmissionStatus.FAILED,
            failure_reason=FailureReason.CLIENT_VALIDATION,
        )

    def mark_succeeded(self) -> None:
        """Submitting -> Succeeded."""
        self._transition('mark_succeeded', status=SubmissionStatus.SUCCEEDED)

    def mark_server_rejected(self, message: Optional[str] = None) -> None:
        """Submitting -> Failed(ServerValidation)."""
        self._transition(
            'mark_server_rejected',
            status=SubmissionStatus.FAILED,
            failure_reason=FailureReason.SERVER_VALIDATION,
            error_message=message,
        )

    def mark_transport_failed(self, message: str) -> None:
        """Submitting -> Failed(Transport)."""
        self._transition(
            'mark_transport_failed',
            status=SubmissionStatus.FAILED,
            failure_reason=FailureReason.TRANSPORT,
            error_message=message,
        )

    def reset(self) -> None:
        """
        Any state -> Idle.

        The attempt token is bumped so a response of an in-flight attempt is
        recognised as stale when it arrives.
        """
        self._transition(
            'reset',
            status=SubmissionStatus.IDLE,
            attempt=self._state.attempt + 1,
            submit_count=0,
        )

    def _transition(self, transition: str, **changes) -> None:
        old_state = self._state
        if old_state.status not in ALLOWED_TRANSITIONS[transition]:
            raise InvalidTransitionError(transition, old_state.describe())

        # failure details only survive while the new state is FAILED
        changes.setdefault('failure_reason', None)
        changes.setdefault('error_message', None)
        self._state = replace(old_state, **changes)

        logger.info(f"Submission state: {old_state.describe()} -> {self._state.describe()} "
                    f"(attempt {self._state.attempt})")

        for listener in list(self._listeners):
            try:
                listener(old_state, self._state)
            except Exception as e:
                logger.error(f"Submission state listener failed: {e}", exc_info=True)
