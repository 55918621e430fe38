from app.services.result import Result
from app.services.state_machine import (
    BotState,
    Command,
    CommandKind,
    DraftProduct,
    InvalidTransitionError,
    can_transition,
    coerce_state,
    parse_command,
    parse_price,
    transition,
)

__all__ = [
    "BotState",
    "Command",
    "CommandKind",
    "DraftProduct",
    "InvalidTransitionError",
    "Result",
    "can_transition",
    "coerce_state",
    "parse_command",
    "parse_price",
    "transition",
]
