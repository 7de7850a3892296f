# app/modules/class_requests/state.py
"""
Máquina de estados de una reserva (ClassRequest).

    Created -> PaymentPending -> Paid -> Approved
       |                          |
       v                          v
    Rejected               PaymentRefunded

`ALLOWED_TRANSITIONS` es la única fuente de verdad; todo cambio de estado
pasa por `apply_transition`.
"""
import logging

from app.core.errors import InvalidState
from .models import ClassRequest, ClassRequestState

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS: dict[ClassRequestState, frozenset[ClassRequestState]] = {
    ClassRequestState.CREATED: frozenset({ClassRequestState.PAYMENT_PENDING, ClassRequestState.REJECTED}),
    ClassRequestState.PAYMENT_PENDING: frozenset({ClassRequestState.PAID}),
    ClassRequestState.PAID: frozenset({ClassRequestState.APPROVED, ClassRequestState.PAYMENT_REFUNDED}),
    ClassRequestState.APPROVED: frozenset(),
    ClassRequestState.REJECTED: frozenset(),
    ClassRequestState.PAYMENT_REFUNDED: frozenset(),
}

# lo que el profesor puede fijar a mano: aceptar o rechazar
TEACHER_SETTABLE_STATES = frozenset({ClassRequestState.PAYMENT_PENDING, ClassRequestState.REJECTED})


def can_transition(current: ClassRequestState, target: ClassRequestState) -> bool:
    return target in ALLOWED_TRANSITIONS[current]


def apply_transition(class_request: ClassRequest, target: ClassRequestState) -> None:
    current = class_request.state
    if not can_transition(current, target):
        raise InvalidState(
            f"No se puede pasar la reserva de {current.value} a {target.value}"
        )
    class_request.state = target
    logger.info(
        "class_request %s: %s -> %s", class_request.id, current.value, target.value
    )
