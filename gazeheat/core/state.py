"""
Session state management.

Recording and tracking are independent finite-state machines: mouse samples
can be recorded with the camera off, and the camera can track without
recording. Components receive the machine they depend on instead of
consulting global flags.
"""

from enum import Enum, auto
from typing import Dict, Optional, Set
from dataclasses import dataclass


class RecordingState(Enum):
    """
    Recorder states.

    State transitions:
        IDLE -> RECORDING -> IDLE
    """

    IDLE = auto()       # Samples are ignored
    RECORDING = auto()  # Samples are appended to the open session


class TrackingState(Enum):
    """
    Gaze tracking states.

    State transitions:
        IDLE -> TRACKING -> IDLE
        Any -> ERROR -> IDLE
    """

    IDLE = auto()      # Camera off
    TRACKING = auto()  # Frames are processed into gaze points
    ERROR = auto()     # Initialization or runtime failure, requires reset


RECORDING_TRANSITIONS: Dict[Enum, Set[Enum]] = {
    RecordingState.IDLE: {RecordingState.RECORDING},
    RecordingState.RECORDING: {RecordingState.IDLE},
}

TRACKING_TRANSITIONS: Dict[Enum, Set[Enum]] = {
    TrackingState.IDLE: {TrackingState.TRACKING, TrackingState.ERROR},
    TrackingState.TRACKING: {TrackingState.IDLE, TrackingState.ERROR},
    TrackingState.ERROR: {TrackingState.IDLE},
}


def is_valid_transition(
    transitions: Dict[Enum, Set[Enum]], from_state: Enum, to_state: Enum
) -> bool:
    """
    Check if a state transition is valid.

    Args:
        transitions: Transition table of the machine
        from_state: Current state
        to_state: Target state

    Returns:
        True if transition is allowed, False otherwise
    """
    # Same state is always valid (no-op)
    if from_state == to_state:
        return True

    return to_state in transitions.get(from_state, set())


@dataclass
class ErrorInfo:
    """Information about an error that occurred."""

    error_type: str
    message: str
    recoverable: bool = True
    details: Optional[str] = None


class StateMachine:
    """
    Table-driven state machine with validated transitions.

    Only mutated from the thread that runs the capture loop.
    """

    def __init__(
        self,
        transitions: Dict[Enum, Set[Enum]],
        initial_state: Enum,
        error_state: Optional[Enum] = None,
    ):
        """
        Initialize state machine.

        Args:
            transitions: Allowed transitions per state
            initial_state: Starting state, also the state reset() returns to
            error_state: State entered by set_error(), if the machine has one
        """
        self._transitions = transitions
        self._initial_state = initial_state
        self._error_state = error_state
        self._current_state = initial_state
        self._previous_state: Optional[Enum] = None
        self._error: Optional[ErrorInfo] = None

    @property
    def current_state(self) -> Enum:
        return self._current_state

    @property
    def previous_state(self) -> Optional[Enum]:
        return self._previous_state

    @property
    def error(self) -> Optional[ErrorInfo]:
        """Error information if in the error state."""
        return self._error

    def is_in(self, state: Enum) -> bool:
        return self._current_state == state

    def transition_to(self, new_state: Enum) -> bool:
        """
        Transition to a new state.

        Args:
            new_state: Target state

        Returns:
            True if transition succeeded, False if invalid
        """
        if not is_valid_transition(self._transitions, self._current_state, new_state):
            return False

        self._previous_state = self._current_state
        self._current_state = new_state

        # Clear error when leaving the error state
        if self._previous_state == self._error_state and new_state != self._error_state:
            self._error = None

        return True

    def set_error(self, error_info: ErrorInfo) -> bool:
        """
        Record an error and enter the error state.

        Returns:
            True if the transition to the error state succeeded
        """
        self._error = error_info
        if self._error_state is None:
            return False
        return self.transition_to(self._error_state)

    def can_transition_to(self, new_state: Enum) -> bool:
        return is_valid_transition(self._transitions, self._current_state, new_state)

    def reset(self):
        """Return to the initial state, clearing any error."""
        self._previous_state = self._current_state
        self._current_state = self._initial_state
        self._error = None


def recording_state_machine() -> StateMachine:
    """Create a recorder state machine starting in IDLE."""
    return StateMachine(RECORDING_TRANSITIONS, RecordingState.IDLE)


def tracking_state_machine() -> StateMachine:
    """Create a tracking state machine starting in IDLE."""
    return StateMachine(
        TRACKING_TRANSITIONS, TrackingState.IDLE, error_state=TrackingState.ERROR
    )
