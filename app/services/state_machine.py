from enum import Enum
from typing import Optional


class SessionState(str, Enum):
    WELCOME = "WELCOME"
    AWAITING_NAME = "AWAITING_NAME"
    AWAITING_EMAIL = "AWAITING_EMAIL"
    AWAITING_INSTAGRAM = "AWAITING_INSTAGRAM"
    ASK_PERMISSION = "ASK_PERMISSION"
    GENERATING = "GENERATING"
    COMPLETED = "COMPLETED"
    ERROR = "ERROR"


# Values written by older deployments of the funnel.
STATE_ALIASES = {
    "NEW": SessionState.WELCOME,
    "GENERATING_LETTER": SessionState.GENERATING,
}

# Every state may go back to WELCOME through the reset command.
VALID_TRANSITIONS = {
    SessionState.WELCOME: [SessionState.AWAITING_EMAIL, SessionState.WELCOME],
    SessionState.AWAITING_NAME: [SessionState.AWAITING_EMAIL, SessionState.WELCOME],
    SessionState.AWAITING_EMAIL: [SessionState.AWAITING_INSTAGRAM, SessionState.WELCOME],
    SessionState.AWAITING_INSTAGRAM: [
        SessionState.ASK_PERMISSION,
        SessionState.GENERATING,
        SessionState.WELCOME,
    ],
    SessionState.ASK_PERMISSION: [SessionState.GENERATING, SessionState.WELCOME],
    SessionState.GENERATING: [SessionState.COMPLETED, SessionState.ERROR, SessionState.WELCOME],
    SessionState.COMPLETED: [SessionState.WELCOME],
    SessionState.ERROR: [SessionState.WELCOME],
}


class InvalidTransitionError(Exception):
    def __init__(self, from_state: SessionState, to_state: SessionState):
        self.from_state = from_state
        self.to_state = to_state
        super().__init__(f"Invalid transition: {from_state.value} -> {to_state.value}")


def parse_state(value) -> Optional[SessionState]:
    """Map a stored state value to SessionState, or None when it is not recognised."""
    if isinstance(value, SessionState):
        return value
    if not isinstance(value, str):
        return None
    normalized = value.strip().upper()
    if normalized in STATE_ALIASES:
        return STATE_ALIASES[normalized]
    try:
        return SessionState(normalized)
    except ValueError:
        return None


def can_transition(from_state: SessionState, to_state: SessionState) -> bool:
    """Check if transition is valid."""
    allowed = VALID_TRANSITIONS.get(from_state, [])
    return to_state in allowed


def transition(from_state: SessionState, to_state: SessionState) -> SessionState:
    """Perform state transition. Raises InvalidTransitionError if not allowed."""
    if not can_transition(from_state, to_state):
        raise InvalidTransitionError(from_state, to_state)
    return to_state


def reset(current_state: SessionState) -> SessionState:
    """Reset command: any state goes back to WELCOME."""
    return transition(current_state, SessionState.WELCOME)


def start_generation(current_state: SessionState) -> SessionState:
    return transition(current_state, SessionState.GENERATING)


def complete(current_state: SessionState) -> SessionState:
    return transition(current_state, SessionState.COMPLETED)


def fail(current_state: SessionState) -> SessionState:
    return transition(current_state, SessionState.ERROR)
