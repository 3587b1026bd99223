"""
Transition rules of the moderation state machine.

    unsubmitted -> pending -> approved | rejected
    rejected -> pending            (re-import, appeal)

These functions are the only writers of the moderation fields on a
UserRecord. They mutate in place and must be called with the store lock held.
"""

from datetime import datetime
from typing import Optional

from flower_market.errors import InvalidTransition
from flower_market.models import ModerationState, UserRecord, utcnow

APPROVE = "approve"
REJECT = "reject"

DECISION_TARGETS = {
    APPROVE: ModerationState.APPROVED,
    REJECT: ModerationState.REJECTED,
}


def enter_pending(record: UserRecord) -> bool:
    """
    Apply a successful contact import to the moderation state.

    Returns True when the record now awaits an operator decision
    and an operator should be asked for one.
    """
    state = record.moderation_state

    if state == ModerationState.APPROVED:
        return False

    if state == ModerationState.REJECTED:
        record.moderation_decided_at = None
        record.moderation_decided_by = None

    record.moderation_state = ModerationState.PENDING
    return True


def apply_decision(
    record: UserRecord,
    decision: str,
    operator_id: str,
    now: Optional[datetime] = None,
) -> bool:
    """
    Apply an operator decision.

    Returns True if the state changed, False for a repeated decision on an
    already decided record (first decision wins).
    """
    target = DECISION_TARGETS[decision]
    state = record.moderation_state

    if record.is_decided:
        return False

    if state != ModerationState.PENDING or not record.has_contacts:
        raise InvalidTransition(record.id, state.value, decision)

    record.moderation_state = target
    record.moderation_decided_at = now or utcnow()
    record.moderation_decided_by = operator_id
    return True
