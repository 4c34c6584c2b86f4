import pytest
from app.services.state_machine import (
    SessionState,
    InvalidTransitionError,
    can_transition,
    complete,
    fail,
    parse_state,
    reset,
    start_generation,
    transition,
)


class TestValidTransitions:
    def test_welcome_to_awaiting_email(self):
        result = transition(SessionState.WELCOME, SessionState.AWAITING_EMAIL)
        assert result == SessionState.AWAITING_EMAIL

    def test_awaiting_email_to_awaiting_instagram(self):
        result = transition(SessionState.AWAITING_EMAIL, SessionState.AWAITING_INSTAGRAM)
        assert result == SessionState.AWAITING_INSTAGRAM

    def test_awaiting_instagram_to_ask_permission(self):
        result = transition(SessionState.AWAITING_INSTAGRAM, SessionState.ASK_PERMISSION)
        assert result == SessionState.ASK_PERMISSION

    def test_awaiting_instagram_straight_to_generating(self):
        result = transition(SessionState.AWAITING_INSTAGRAM, SessionState.GENERATING)
        assert result == SessionState.GENERATING

    def test_legacy_awaiting_name_to_awaiting_email(self):
        assert can_transition(SessionState.AWAITING_NAME, SessionState.AWAITING_EMAIL)


class TestInvalidTransitions:
    def test_welcome_cannot_skip_to_generating(self):
        with pytest.raises(InvalidTransitionError):
            transition(SessionState.WELCOME, SessionState.GENERATING)

    def test_completed_cannot_go_back_to_generating(self):
        with pytest.raises(InvalidTransitionError):
            transition(SessionState.COMPLETED, SessionState.GENERATING)

    def test_error_only_leaves_through_reset(self):
        for target in SessionState:
            if target != SessionState.WELCOME:
                assert not can_transition(SessionState.ERROR, target)

    def test_error_message_names_both_states(self):
        with pytest.raises(InvalidTransitionError, match="ASK_PERMISSION -> COMPLETED"):
            transition(SessionState.ASK_PERMISSION, SessionState.COMPLETED)


class TestHelperFunctions:
    def test_reset_from_every_state(self):
        for state in SessionState:
            assert reset(state) == SessionState.WELCOME

    def test_start_generation_from_ask_permission(self):
        assert start_generation(SessionState.ASK_PERMISSION) == SessionState.GENERATING

    def test_start_generation_from_awaiting_email_fails(self):
        with pytest.raises(InvalidTransitionError):
            start_generation(SessionState.AWAITING_EMAIL)

    def test_complete_only_from_generating(self):
        assert complete(SessionState.GENERATING) == SessionState.COMPLETED
        with pytest.raises(InvalidTransitionError):
            complete(SessionState.ASK_PERMISSION)

    def test_fail_only_from_generating(self):
        assert fail(SessionState.GENERATING) == SessionState.ERROR
        with pytest.raises(InvalidTransitionError):
            fail(SessionState.COMPLETED)


class TestParseState:
    def test_known_values(self):
        assert parse_state("COMPLETED") == SessionState.COMPLETED
        assert parse_state(" awaiting_email ") == SessionState.AWAITING_EMAIL

    def test_legacy_aliases(self):
        assert parse_state("NEW") == SessionState.WELCOME
        assert parse_state("GENERATING_LETTER") == SessionState.GENERATING

    def test_unknown_values(self):
        assert parse_state("LIMBO") is None
        assert parse_state(None) is None
        assert parse_state(3) is None
