from app.services.conversation_service import (
    NotFoundError,
    get_or_provision_config,
    resolve_conversation,
)
from app.services.delivery_status_service import apply_status
from app.services.escalation_service import evaluate_escalation
from app.services.normalizer import ClientInputError, normalize_web_chat, normalize_whatsapp_payload
from app.services.result import Result
from app.services.state_machine import (
    InvalidTransitionError,
    Ownership,
    can_transition,
    escalate,
    operator_return,
    operator_take,
    transition,
)
