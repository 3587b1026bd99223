"""
Domain models: user records and contacts.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, field_validator


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ContactSource(str, Enum):
    """Provenance of an imported contact list."""
    MANUAL = "manual"
    IMPORT_SERVICE = "import-service"
    TEST = "test"


class ModerationState(str, Enum):
    UNSUBMITTED = "unsubmitted"
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


DECIDED_STATES = frozenset({ModerationState.APPROVED, ModerationState.REJECTED})


def _unique(values: list[str]) -> list[str]:
    seen = set()
    result = []
    for value in values:
        if value not in seen:
            seen.add(value)
            result.append(value)
    return result


class Contact(BaseModel):
    name: str
    # Ordered sets: duplicates removed, first-seen order kept
    phone_numbers: list[str] = Field(default_factory=list)
    email_addresses: list[str] = Field(default_factory=list)
    source: ContactSource = ContactSource.MANUAL

    @field_validator("phone_numbers", "email_addresses")
    @classmethod
    def dedupe(cls, values: list[str]) -> list[str]:
        return _unique(values)

    @property
    def first_phone(self) -> Optional[str]:
        return self.phone_numbers[0] if self.phone_numbers else None


class UserRecord(BaseModel):
    """One record per external user id."""
    id: str
    contact_channel_id: str
    display_name: Optional[str] = None
    username: Optional[str] = None
    google_email: Optional[str] = None

    contacts: list[Contact] = Field(default_factory=list)
    has_contacts: bool = False
    imported_at: Optional[datetime] = None
    import_source: Optional[ContactSource] = None

    moderation_state: ModerationState = ModerationState.UNSUBMITTED
    moderation_decided_at: Optional[datetime] = None
    moderation_decided_by: Optional[str] = None

    publish_count: int = 0
    last_publish_at: Optional[datetime] = None

    created_at: datetime = Field(default_factory=utcnow)

    @property
    def is_decided(self) -> bool:
        return self.moderation_state in DECIDED_STATES


class UserStatusView(BaseModel):
    """Read-only view returned by status checks."""
    user_id: str
    exists: bool
    has_contacts: bool = False
    contacts_count: int = 0
    imported_at: Optional[datetime] = None
    import_source: Optional[ContactSource] = None
    moderation_state: Optional[ModerationState] = None
    moderation_decided_at: Optional[datetime] = None
    can_publish: bool = False
    publish_count: int = 0
    last_publish_at: Optional[datetime] = None

    @classmethod
    def missing(cls, user_id: str) -> "UserStatusView":
        return cls(user_id=user_id, exists=False)

    @classmethod
    def from_record(cls, record: UserRecord) -> "UserStatusView":
        return cls(
            user_id=record.id,
            exists=True,
            has_contacts=record.has_contacts,
            contacts_count=len(record.contacts),
            imported_at=record.imported_at,
            import_source=record.import_source,
            moderation_state=record.moderation_state,
            moderation_decided_at=record.moderation_decided_at,
            can_publish=(
                record.moderation_state == ModerationState.APPROVED
                and record.has_contacts
            ),
            publish_count=record.publish_count,
            last_publish_at=record.last_publish_at,
        )
