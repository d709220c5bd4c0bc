from enum import Enum


class Ownership(str, Enum):
    AI = "ai"
    HUMAN = "human"
    ESCALATED = "escalated"


# The engine only ever performs AI -> ESCALATED; the other two belong to operators.
VALID_TRANSITIONS = {
    Ownership.AI: [Ownership.ESCALATED],
    Ownership.ESCALATED: [Ownership.HUMAN],
    Ownership.HUMAN: [Ownership.AI],
}


class InvalidTransitionError(Exception):
    def __init__(self, from_state: Ownership, to_state: Ownership):
        self.from_state = from_state
        self.to_state = to_state
        super().__init__(f"Invalid ownership transition: {from_state.value} -> {to_state.value}")


def can_transition(from_state: Ownership, to_state: Ownership) -> bool:
    """Check if transition is valid."""
    return to_state in VALID_TRANSITIONS.get(from_state, [])


def transition(from_state: Ownership, to_state: Ownership) -> Ownership:
    """Perform ownership transition. Raises InvalidTransitionError if not allowed."""
    if not can_transition(from_state, to_state):
        raise InvalidTransitionError(from_state, to_state)
    return to_state


def escalate(current: Ownership) -> Ownership:
    """AI hands the conversation over to a human."""
    return transition(current, Ownership.ESCALATED)


def operator_take(current: Ownership) -> Ownership:
    """Operator picks up an escalated conversation."""
    return transition(current, Ownership.HUMAN)


def operator_return(current: Ownership) -> Ownership:
    """Operator hands the conversation back to the AI."""
    return transition(current, Ownership.AI)


def initial_ownership(ai_enabled: bool) -> Ownership:
    return Ownership.AI if ai_enabled else Ownership.HUMAN
