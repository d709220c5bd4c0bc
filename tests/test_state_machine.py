import pytest
from app.services.state_machine import (
    InvalidTransitionError,
    Ownership,
    can_transition,
    escalate,
    initial_ownership,
    operator_return,
    operator_take,
    transition,
)


class TestValidTransitions:
    def test_ai_to_escalated(self):
        assert transition(Ownership.AI, Ownership.ESCALATED) == Ownership.ESCALATED

    def test_escalated_to_human(self):
        assert transition(Ownership.ESCALATED, Ownership.HUMAN) == Ownership.HUMAN

    def test_human_to_ai(self):
        assert transition(Ownership.HUMAN, Ownership.AI) == Ownership.AI


class TestInvalidTransitions:
    def test_escalated_cannot_go_back_to_ai_directly(self):
        with pytest.raises(InvalidTransitionError):
            transition(Ownership.ESCALATED, Ownership.AI)

    def test_ai_cannot_jump_to_human(self):
        with pytest.raises(InvalidTransitionError):
            transition(Ownership.AI, Ownership.HUMAN)

    def test_human_cannot_be_escalated(self):
        with pytest.raises(InvalidTransitionError):
            transition(Ownership.HUMAN, Ownership.ESCALATED)

    def test_same_state(self):
        with pytest.raises(InvalidTransitionError):
            transition(Ownership.AI, Ownership.AI)

    def test_error_message(self):
        with pytest.raises(InvalidTransitionError) as exc_info:
            escalate(Ownership.HUMAN)
        assert "human -> escalated" in str(exc_info.value)


class TestHelperFunctions:
    def test_escalate(self):
        assert escalate(Ownership.AI) == Ownership.ESCALATED

    def test_operator_take(self):
        assert operator_take(Ownership.ESCALATED) == Ownership.HUMAN

    def test_operator_return(self):
        assert operator_return(Ownership.HUMAN) == Ownership.AI

    def test_can_transition(self):
        assert can_transition(Ownership.AI, Ownership.ESCALATED) is True
        assert can_transition(Ownership.ESCALATED, Ownership.AI) is False

    def test_initial_ownership(self):
        assert initial_ownership(True) == Ownership.AI
        assert initial_ownership(False) == Ownership.HUMAN


class TestDerivedFlags:
    def test_flags_follow_ownership(self):
        from tests.factories import make_conversation

        assert make_conversation(ownership="ai").ai_handled is True
        assert make_conversation(ownership="ai").ai_escalated is False
        assert make_conversation(ownership="escalated").ai_handled is False
        assert make_conversation(ownership="escalated").ai_escalated is True
        assert make_conversation(ownership="human").ai_handled is False
        assert make_conversation(ownership="human").ai_escalated is False
