from app.services.result import TRANSIENT_ERROR_CODES, Result
from app.services.state_machine import (
    InvalidTransitionError,
    SessionState,
    can_transition,
    parse_state,
    transition,
)

__all__ = [
    "TRANSIENT_ERROR_CODES",
    "Result",
    "InvalidTransitionError",
    "SessionState",
    "can_transition",
    "parse_state",
    "transition",
]
