"""
Publication Gate.

`authorize_publish` is a pure check. The caller publishes and then records
the publish with `record_publish`.
"""

from flower_market.errors import NoContacts, NotApproved, UserNotFound, UserUnknown
from flower_market.models import ModerationState, utcnow
from flower_market.services.user_store import UserStore


def authorize_publish(store: UserStore, user_id: str) -> None:
    """Raise a PublishDenied subclass unless the user may publish."""
    with store.lock:
        record = store.get(user_id)
        if record is None:
            raise UserUnknown(user_id)

        if record.moderation_state != ModerationState.APPROVED:
            raise NotApproved(user_id, record.moderation_state.value)

        # Unreachable while approved implies has_contacts
        if not record.has_contacts or not record.contacts:
            raise NoContacts(user_id)


def record_publish(store: UserStore, user_id: str) -> int:
    """Count a successful publish. Returns the new publish count."""
    with store.lock:
        record = store.get(user_id)
        if record is None:
            raise UserNotFound(user_id)

        record.publish_count += 1
        record.last_publish_at = utcnow()
        store.mark_dirty()
        return record.publish_count
