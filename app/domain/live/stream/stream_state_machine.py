"""Stream state machine for managing state transitions."""

from app.schemas import StreamState
from app.utils.app_errors import StateConflictError


class StreamStateMachine:
    """State machine for managing stream state transitions.

    State flow with triggers:
    - PENDING (stream created) -> LIVE (broadcast ingest created at the provider)
    - LIVE -> COMPLETED (archival upload succeeded) | FAILED (download or upload failed)
      | ARCHIVED (stopped with evidentiary save, bypassing normal archival)
    - COMPLETED -> ARCHIVED (subsequent evidence save)
    - FAILED/ARCHIVED are terminal; a failed stream is re-broadcast as a new stream

    Detailed triggers:
    1. PENDING: Set when stream is created via create_stream()
    2. LIVE: Set by start_broadcast()
    3. COMPLETED: Set by ArchivalPipeline after the media is stored and the record updated
    4. FAILED: Set by ArchivalPipeline when any archival step fails
    5. ARCHIVED: Set by EvidenceCapture.save_for_evidence()
    """

    TRANSITIONS: dict[StreamState, set[StreamState]] = {
        StreamState.PENDING: {StreamState.LIVE},
        StreamState.LIVE: {
            StreamState.COMPLETED,
            StreamState.FAILED,
            StreamState.ARCHIVED,
        },
        StreamState.COMPLETED: {StreamState.ARCHIVED},
        StreamState.FAILED: set(),
        StreamState.ARCHIVED: set(),
    }

    TERMINAL_STATES: set[StreamState] = {
        StreamState.COMPLETED,
        StreamState.FAILED,
        StreamState.ARCHIVED,
    }

    INITIAL_STATE: StreamState = StreamState.PENDING

    @classmethod
    def can_transition(cls, current: StreamState, new: StreamState) -> bool:
        """Check if state transition is valid.

        Args:
            current: Current stream state
            new: Target state to transition to

        Returns:
            True if transition is valid, False otherwise
        """
        return new in cls.TRANSITIONS.get(current, set())

    @classmethod
    def ensure_transition(cls, current: StreamState, new: StreamState) -> None:
        """Raise StateConflictError unless current -> new is in the transition table."""
        if not cls.can_transition(current, new):
            raise StateConflictError(
                f"Invalid state transition: {current} -> {new}",
                current=str(current),
                attempted=str(new),
            )

    @classmethod
    def is_terminal(cls, state: StreamState) -> bool:
        return state in cls.TERMINAL_STATES

    @classmethod
    def get_valid_transitions(cls, state: StreamState) -> set[StreamState]:
        return cls.TRANSITIONS.get(state, set())

    @classmethod
    def get_valid_sources(cls, target: StreamState) -> set[StreamState]:
        """Get all states that can transition to the target state."""
        return {state for state, targets in cls.TRANSITIONS.items() if target in targets}

    @classmethod
    def is_valid_path(cls, states: list[StreamState]) -> bool:
        """Check that an observed sequence of statuses follows the transition table."""
        if not states or states[0] != cls.INITIAL_STATE:
            return False
        return all(cls.can_transition(a, b) for a, b in zip(states, states[1:]))
