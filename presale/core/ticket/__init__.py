"""
预售系统 — 票据状态机
"""

from .models import Ticket
from .states import (
    EVENT_RULES,
    STATE_METADATA,
    VALID_TRANSITIONS,
    StateMetadata,
    get_state_metadata,
    is_terminal,
    is_valid_transition,
)
from .transitions import (
    EVENT_NOTICES,
    TicketEvent,
    TicketStateChange,
    apply_event,
    can_apply,
)

__all__ = [
    "Ticket",
    # States
    "EVENT_RULES",
    "STATE_METADATA",
    "VALID_TRANSITIONS",
    "StateMetadata",
    "get_state_metadata",
    "is_terminal",
    "is_valid_transition",
    # Transitions
    "EVENT_NOTICES",
    "TicketEvent",
    "TicketStateChange",
    "apply_event",
    "can_apply",
]
