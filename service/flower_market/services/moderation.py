"""
Moderation Workflow.

Drives a user from contact upload to an operator decision:

1. submit_contacts() imports the list (unsubmitted/rejected -> pending) and
   asks the operator channel for a decision with two inline buttons.
2. decide() applies approve/reject from an authorized operator
   (pending -> approved | rejected) and tells the user.
3. Repeated decisions are successful no-ops; the first one wins.

State changes happen under the store lock. Notifications are sent after the
lock is released, from a snapshot, and a failed delivery never undoes the
transition that caused it.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Iterable, Optional

from flower_market.errors import (
    Forbidden, InvalidUserId, NotificationDeliveryError, UserNotFound, ValidationError
)
from flower_market.logging_config import get_logger
from flower_market.models import ModerationState, UserRecord, UserStatusView
from flower_market.services.contact_import import (
    MIN_CONTACTS, AdminNotificationRequested, ImportSummary, import_contacts, normalize_user_id
)
from flower_market.services.moderation_state import (
    APPROVE, DECISION_TARGETS, REJECT, apply_decision
)
from flower_market.services.notifications import NotificationSender, TemplateKind, web_app_url
from flower_market.services.publication import authorize_publish, record_publish
from flower_market.services.user_store import UserStore

logger = get_logger("moderation")


@dataclass
class DecisionOutcome:
    user_id: str
    decision: str
    state: ModerationState
    changed: bool
    decided_at: Optional[datetime]
    decided_by: Optional[str]
    notified: bool = False


class ModerationWorkflow:
    """Owns the user store and every moderation side effect."""

    def __init__(
        self,
        store: UserStore,
        sender: NotificationSender,
        operator_ids: Iterable[str],
        admin_chat_id: str,
        min_contacts: int = MIN_CONTACTS,
        base_url: str = "",
        publication_channel: str = "",
    ):
        self.store = store
        self.sender = sender
        self.operator_ids = frozenset(str(op) for op in operator_ids)
        self.admin_chat_id = str(admin_chat_id)
        self.min_contacts = min_contacts
        self.base_url = base_url
        self.publication_channel = publication_channel

    # =========================================================================
    # INBOUND
    # =========================================================================

    def register_user(
        self,
        user_id: str,
        channel_id: str,
        display_name: Optional[str] = None,
        username: Optional[str] = None,
        google_email: Optional[str] = None,
    ) -> UserRecord:
        """First inbound interaction: create or refresh the user's profile."""
        user_id = normalize_user_id(user_id)
        if not user_id:
            raise InvalidUserId(user_id)

        with self.store.lock:
            record = self.store.get_or_create(user_id, channel_id, display_name)
            record.contact_channel_id = str(channel_id)
            if display_name:
                record.display_name = display_name
            if username:
                record.username = username
            if google_email:
                record.google_email = google_email
            self.store.mark_dirty()
            return record.model_copy(deep=True)

    async def submit_contacts(
        self,
        user_id: str,
        channel_id: Optional[str],
        contacts: list[Any],
        source: Any,
    ) -> ImportSummary:
        """Import a contact list and ask an operator to review it."""
        summary = import_contacts(
            self.store,
            user_id,
            contacts,
            source,
            channel_id=channel_id,
            min_contacts=self.min_contacts,
        )

        await self._deliver(
            self.admin_chat_id,
            TemplateKind.CONTACTS_RECEIVED,
            self._admin_payload(summary.event),
        )
        return summary

    async def decide(self, user_id: str, operator_id: str, decision: str) -> DecisionOutcome:
        if decision not in DECISION_TARGETS:
            raise ValidationError(f"Unknown decision: {decision!r}")

        user_id = normalize_user_id(user_id)
        operator_id = str(operator_id)
        if not self.is_operator(operator_id):
            logger.warning(f"Forbidden: {operator_id} tried to {decision} user_id={user_id}")
            raise Forbidden(operator_id, decision)

        with self.store.lock:
            record = self.store.get(user_id)
            if record is None:
                raise UserNotFound(user_id)

            changed = apply_decision(record, decision, operator_id)
            if changed:
                self.store.mark_dirty()
            snapshot = record.model_copy(deep=True)

        outcome = DecisionOutcome(
            user_id=user_id,
            decision=decision,
            state=snapshot.moderation_state,
            changed=changed,
            decided_at=snapshot.moderation_decided_at,
            decided_by=snapshot.moderation_decided_by,
        )

        if not changed:
            logger.info(
                f"Repeated {decision} for user_id={user_id} by {operator_id} ignored, "
                f"state stays {snapshot.moderation_state.value}"
            )
            return outcome

        logger.info(f"User user_id={user_id} {snapshot.moderation_state.value} by {operator_id}")

        if snapshot.moderation_state == ModerationState.APPROVED:
            kind = TemplateKind.USER_APPROVED
        else:
            kind = TemplateKind.USER_REJECTED

        outcome.notified = await self._deliver(
            snapshot.contact_channel_id, kind, self._user_payload(snapshot)
        )
        return outcome

    async def approve(self, user_id: str, operator_id: str) -> DecisionOutcome:
        return await self.decide(user_id, operator_id, APPROVE)

    async def reject(self, user_id: str, operator_id: str) -> DecisionOutcome:
        return await self.decide(user_id, operator_id, REJECT)

    def check_status(self, user_id: str) -> UserStatusView:
        user_id = normalize_user_id(user_id)
        record = self.store.snapshot(user_id)
        if record is None:
            return UserStatusView.missing(user_id)
        return UserStatusView.from_record(record)

    def request_publish(self, user_id: str) -> None:
        """Raises PublishDenied unless the user may publish."""
        authorize_publish(self.store, normalize_user_id(user_id))

    def record_publish(self, user_id: str) -> int:
        return record_publish(self.store, normalize_user_id(user_id))

    async def announce_publish(
        self,
        user_id: str,
        listing: dict[str, Any],
        url: Optional[str] = None,
    ) -> tuple[bool, bool]:
        """
        Tell the seller and the operator channel about a published listing.

        Best effort: returns (seller_notified, admin_notified) and never raises
        for delivery failures.
        """
        record = self.get_user(user_id)
        if record is None:
            raise UserNotFound(user_id)

        payload = {
            "user_id": record.id,
            "display_name": record.display_name,
            "username": record.username,
            "publish_count": record.publish_count,
            "listing": listing,
            "listing_url": url,
        }
        seller_notified = await self._deliver(
            record.contact_channel_id, TemplateKind.LISTING_PUBLISHED, payload
        )
        admin_notified = await self._deliver(
            self.admin_chat_id, TemplateKind.LISTING_ANNOUNCED, payload
        )
        return seller_notified, admin_notified

    def get_user(self, user_id: str) -> Optional[UserRecord]:
        return self.store.snapshot(normalize_user_id(user_id))

    def is_operator(self, operator_id: str) -> bool:
        return str(operator_id) in self.operator_ids

    # =========================================================================
    # OUTBOUND
    # =========================================================================

    async def _deliver(self, channel_id: str, kind: TemplateKind, payload: dict[str, Any]) -> bool:
        try:
            await self.sender.notify(channel_id, kind, payload)
        except NotificationDeliveryError as e:
            logger.error(f"Notification {kind.value} for user_id={payload.get('user_id')} failed: {e}", exc_info=True)
            return False

        logger.info(f"Notification {kind.value} sent to {channel_id}")
        return True

    def _admin_payload(self, event: AdminNotificationRequested) -> dict[str, Any]:
        return {
            "user_id": event.user_id,
            "display_name": event.display_name,
            "username": event.username,
            "contacts_count": event.contacts_count,
            "source": event.source.value,
            "previous_state": event.previous_state.value,
            "state": event.state.value,
            "awaiting_decision": event.awaiting_decision,
            "preview": [
                {
                    "name": contact.name,
                    "phone": contact.first_phone,
                    "email": contact.email_addresses[0] if contact.email_addresses else None,
                }
                for contact in event.preview
            ],
            "requested_at": event.requested_at.isoformat(),
        }

    def _user_payload(self, record: UserRecord) -> dict[str, Any]:
        payload = {
            "user_id": record.id,
            "display_name": record.display_name,
            "state": record.moderation_state.value,
            "decided_at": record.moderation_decided_at.isoformat() if record.moderation_decided_at else None,
            "publication_channel": self.publication_channel,
        }
        if self.base_url:
            payload["web_app_url"] = web_app_url(self.base_url, record.id, record.contact_channel_id)
        return payload
