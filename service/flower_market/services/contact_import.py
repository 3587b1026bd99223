"""
Contact Import Handler.

Validates a raw contact list, attaches it to the user's record and moves
the record into moderation. Raw entries come from the web form or from the
Google import and may use several key spellings:

    {"name": "Anna", "phone": "+7 900 000-00-00"}
    {"name": "Anna", "phones": ["+7..."], "emails": ["a@x.ru"]}
    {"name": "Anna", "phoneNumbers": [{"value": "+7..."}], "emailAddresses": [...]}
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Iterable, Optional

from flower_market.errors import InvalidImportSource, InvalidUserId, TooFewContacts
from flower_market.logging_config import get_logger
from flower_market.models import Contact, ContactSource, ModerationState, utcnow
from flower_market.services.moderation_state import enter_pending
from flower_market.services.user_store import UserStore

logger = get_logger("contact_import")

MIN_CONTACTS = 3
PREVIEW_SIZE = 5

PHONE_KEYS = ("phone", "phones", "phoneNumbers", "phone_numbers", "tel")
EMAIL_KEYS = ("email", "emails", "emailAddresses", "email_addresses")

SOURCE_ALIASES = {
    "manual": ContactSource.MANUAL,
    "import-service": ContactSource.IMPORT_SERVICE,
    "import_service": ContactSource.IMPORT_SERVICE,
    "google": ContactSource.IMPORT_SERVICE,
    "test": ContactSource.TEST,
}


@dataclass
class AdminNotificationRequested:
    """Emitted after a successful import for the operator channel."""
    user_id: str
    display_name: Optional[str]
    username: Optional[str]
    contacts_count: int
    source: ContactSource
    previous_state: ModerationState
    state: ModerationState
    awaiting_decision: bool
    preview: list[Contact] = field(default_factory=list)
    requested_at: datetime = field(default_factory=utcnow)


@dataclass
class ImportSummary:
    user_id: str
    received: int
    accepted: int
    skipped: int
    duplicates: int
    source: ContactSource
    previous_state: ModerationState
    state: ModerationState
    event: AdminNotificationRequested


def normalize_user_id(user_id: Any) -> str:
    return str(user_id or "").strip()


def parse_source(value: Any) -> ContactSource:
    if isinstance(value, ContactSource):
        return value
    key = str(value or "").strip().lower()
    if key not in SOURCE_ALIASES:
        raise InvalidImportSource(str(value))
    return SOURCE_ALIASES[key]


def _as_strings(value: Any) -> list[str]:
    """
    Flatten a scalar, a {"value": ...} object, or a list of either into
    stripped strings.
    """
    if value is None:
        return []
    if not isinstance(value, (list, tuple)):
        value = [value]

    result = []
    for item in value:
        if isinstance(item, dict):
            item = item.get("value")
        if item is None:
            continue
        if isinstance(item, float) and item.is_integer():
            item = int(item)
        text = str(item).strip()
        if text:
            result.append(text)
    return result


def _collect(raw: dict, keys: Iterable[str]) -> list[str]:
    values = []
    for key in keys:
        values.extend(_as_strings(raw.get(key)))
    return values


def normalize_contact(raw: Any, source: ContactSource) -> Optional[Contact]:
    """Build a Contact from a raw entry, or None if it has no phone or email."""
    if not isinstance(raw, dict):
        return None

    phones = _collect(raw, PHONE_KEYS)
    emails = [email.lower() for email in _collect(raw, EMAIL_KEYS)]
    if not phones and not emails:
        return None

    name = str(raw.get("name") or "").strip()
    if not name:
        name = phones[0] if phones else emails[0]

    return Contact(
        name=name,
        phone_numbers=phones,
        email_addresses=emails,
        source=source,
    )


def normalize_contacts(
    raw_contacts: Iterable[Any],
    source: ContactSource,
) -> tuple[list[Contact], int, int]:
    """
    Normalize and de-duplicate by (name, first phone number).

    Returns (contacts, skipped_invalid, duplicates).
    """
    contacts: list[Contact] = []
    seen: set[tuple[str, Optional[str]]] = set()
    skipped = 0
    duplicates = 0

    for raw in raw_contacts:
        contact = normalize_contact(raw, source)
        if contact is None:
            skipped += 1
            continue

        key = (contact.name.casefold(), contact.first_phone)
        if key in seen:
            duplicates += 1
            continue

        seen.add(key)
        contacts.append(contact)

    return contacts, skipped, duplicates


def import_contacts(
    store: UserStore,
    user_id: str,
    raw_contacts: list[Any],
    source: Any = ContactSource.MANUAL,
    channel_id: Optional[str] = None,
    min_contacts: int = MIN_CONTACTS,
) -> ImportSummary:
    """
    Validate and attach a contact list to a user.

    Raises InvalidUserId, InvalidImportSource or TooFewContacts; on failure
    no record is created or changed.
    """
    user_id = normalize_user_id(user_id)
    if not user_id:
        raise InvalidUserId(user_id)

    source = parse_source(source)
    raw_contacts = list(raw_contacts or [])
    contacts, skipped, duplicates = normalize_contacts(raw_contacts, source)

    if len(contacts) < min_contacts:
        logger.info(
            f"Rejected import for user_id={user_id}: {len(contacts)} valid of "
            f"{len(raw_contacts)} received, {min_contacts} required"
        )
        raise TooFewContacts(len(raw_contacts), len(contacts), min_contacts)

    with store.lock:
        record = store.get_or_create(user_id, channel_id)
        previous_state = record.moderation_state

        record.contacts = contacts
        record.has_contacts = True
        record.imported_at = utcnow()
        record.import_source = source
        if channel_id:
            record.contact_channel_id = str(channel_id)

        awaiting_decision = enter_pending(record)
        store.mark_dirty()

        event = AdminNotificationRequested(
            user_id=record.id,
            display_name=record.display_name,
            username=record.username,
            contacts_count=len(contacts),
            source=source,
            previous_state=previous_state,
            state=record.moderation_state,
            awaiting_decision=awaiting_decision,
            preview=[c.model_copy() for c in contacts[:PREVIEW_SIZE]],
        )
        state = record.moderation_state

    logger.info(
        f"Imported {len(contacts)} contacts for user_id={user_id} "
        f"(source={source.value}, skipped={skipped}, duplicates={duplicates}, "
        f"state {previous_state.value} -> {state.value})"
    )

    return ImportSummary(
        user_id=user_id,
        received=len(raw_contacts),
        accepted=len(contacts),
        skipped=skipped,
        duplicates=duplicates,
        source=source,
        previous_state=previous_state,
        state=state,
        event=event,
    )
