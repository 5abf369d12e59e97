"""Tests for StreamStateMachine state transitions."""

import pytest

from app.domain.live.stream.stream_state_machine import StreamStateMachine
from app.schemas import StreamState
from app.utils.app_errors import StateConflictError

ALL_STATES = list(StreamState)

ALLOWED = {
    (StreamState.PENDING, StreamState.LIVE),
    (StreamState.LIVE, StreamState.COMPLETED),
    (StreamState.LIVE, StreamState.FAILED),
    (StreamState.LIVE, StreamState.ARCHIVED),
    (StreamState.COMPLETED, StreamState.ARCHIVED),
}


class TestCanTransition:
    """Tests for StreamStateMachine.can_transition method."""

    @pytest.mark.parametrize("current", ALL_STATES)
    @pytest.mark.parametrize("new", ALL_STATES)
    def test_only_listed_transitions_are_allowed(self, current: StreamState, new: StreamState):
        assert StreamStateMachine.can_transition(current, new) is ((current, new) in ALLOWED)

    def test_failed_is_terminal_with_no_exits(self):
        """Test FAILED has no outgoing transitions (a retry is a new stream)."""
        assert StreamStateMachine.get_valid_transitions(StreamState.FAILED) == set()

    def test_archived_is_terminal_with_no_exits(self):
        assert StreamStateMachine.get_valid_transitions(StreamState.ARCHIVED) == set()


class TestEnsureTransition:
    def test_valid_transition_passes(self):
        StreamStateMachine.ensure_transition(StreamState.LIVE, StreamState.COMPLETED)

    def test_invalid_transition_raises_state_conflict(self):
        with pytest.raises(StateConflictError) as exc_info:
            StreamStateMachine.ensure_transition(StreamState.COMPLETED, StreamState.FAILED)

        assert exc_info.value.current == "completed"
        assert exc_info.value.attempted == "failed"
        assert exc_info.value.status_code == 409

    def test_pending_cannot_skip_to_completed(self):
        with pytest.raises(StateConflictError):
            StreamStateMachine.ensure_transition(StreamState.PENDING, StreamState.COMPLETED)


class TestTerminalStates:
    @pytest.mark.parametrize(
        "state", [StreamState.COMPLETED, StreamState.FAILED, StreamState.ARCHIVED]
    )
    def test_terminal(self, state: StreamState):
        assert StreamStateMachine.is_terminal(state) is True

    @pytest.mark.parametrize("state", [StreamState.PENDING, StreamState.LIVE])
    def test_not_terminal(self, state: StreamState):
        assert StreamStateMachine.is_terminal(state) is False


class TestValidSources:
    def test_archived_reachable_from_live_and_completed(self):
        assert StreamStateMachine.get_valid_sources(StreamState.ARCHIVED) == {
            StreamState.LIVE,
            StreamState.COMPLETED,
        }

    def test_nothing_leads_back_to_pending(self):
        assert StreamStateMachine.get_valid_sources(StreamState.PENDING) == set()


class TestValidPath:
    @pytest.mark.parametrize(
        "path",
        [
            [StreamState.PENDING, StreamState.LIVE, StreamState.COMPLETED],
            [StreamState.PENDING, StreamState.LIVE, StreamState.FAILED],
            [StreamState.PENDING, StreamState.LIVE, StreamState.ARCHIVED],
            [StreamState.PENDING, StreamState.LIVE, StreamState.COMPLETED, StreamState.ARCHIVED],
        ],
    )
    def test_lifecycle_paths(self, path: list[StreamState]):
        assert StreamStateMachine.is_valid_path(path) is True

    @pytest.mark.parametrize(
        "path",
        [
            [],
            [StreamState.LIVE, StreamState.COMPLETED],
            [StreamState.PENDING, StreamState.LIVE, StreamState.FAILED, StreamState.LIVE],
            [StreamState.PENDING, StreamState.LIVE, StreamState.ARCHIVED, StreamState.COMPLETED],
        ],
    )
    def test_invalid_paths(self, path: list[StreamState]):
        assert StreamStateMachine.is_valid_path(path) is False
