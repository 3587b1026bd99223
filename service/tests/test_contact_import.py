"""
Tests for contact list validation and import.

Run with: pytest tests/test_contact_import.py -v
"""

import pytest

from conftest import make_contacts
from flower_market.errors import InvalidImportSource, InvalidUserId, TooFewContacts
from flower_market.models import ContactSource, ModerationState
from flower_market.services.contact_import import (
    PREVIEW_SIZE,
    import_contacts,
    normalize_contact,
    normalize_contacts,
    parse_source,
)
from flower_market.services.moderation_state import APPROVE, REJECT, apply_decision


class TestNormalizeContact:
    """Tests for normalize_contact function."""

    def test_single_phone_key(self):
        """A plain phone string is trimmed and kept."""
        contact = normalize_contact({"name": "Anna", "phone": " +7 900 "}, ContactSource.MANUAL)
        assert contact.name == "Anna"
        assert contact.phone_numbers == ["+7 900"]
        assert contact.email_addresses == []

    def test_people_api_shape(self):
        """Lists of {"value": ...} objects are unwrapped, emails lowercased."""
        raw = {
            "name": "Boris",
            "phoneNumbers": [{"value": "+1"}, {"value": "+2"}],
            "emailAddresses": [{"value": "Boris@Example.com"}],
        }
        contact = normalize_contact(raw, ContactSource.IMPORT_SERVICE)
        assert contact.phone_numbers == ["+1", "+2"]
        assert contact.email_addresses == ["boris@example.com"]
        assert contact.source == ContactSource.IMPORT_SERVICE

    def test_single_value_object(self):
        """A lone {"value": ...} object is one phone, not its keys."""
        contact = normalize_contact({"name": "A", "phone": {"value": "+7900"}}, ContactSource.MANUAL)
        assert contact.phone_numbers == ["+7900"]

    def test_float_phone(self):
        """Whole-number floats become digits without a trailing .0."""
        contact = normalize_contact({"name": "A", "phone": 79001234567.0}, ContactSource.MANUAL)
        assert contact.phone_numbers == ["79001234567"]

    def test_int_phone(self):
        """Integers are stringified."""
        contact = normalize_contact({"name": "A", "phones": [79001234567]}, ContactSource.MANUAL)
        assert contact.phone_numbers == ["79001234567"]

    def test_duplicate_phones_collapse_keeping_order(self):
        """Repeated numbers keep their first position."""
        contact = normalize_contact(
            {"name": "Vera", "phones": ["+2", "+1", "+2"]}, ContactSource.MANUAL
        )
        assert contact.phone_numbers == ["+2", "+1"]
        assert contact.first_phone == "+2"

    def test_email_only_entry_is_valid(self):
        """An email is enough to count."""
        contact = normalize_contact({"name": "Gleb", "emails": ["g@x.ru"]}, ContactSource.MANUAL)
        assert contact is not None
        assert contact.first_phone is None

    def test_missing_name_falls_back_to_phone(self):
        """Nameless entries are named by their first phone."""
        contact = normalize_contact({"phones": ["+100"]}, ContactSource.MANUAL)
        assert contact.name == "+100"

    def test_no_phone_and_no_email_returns_none(self):
        """Blank values do not make a contact."""
        assert normalize_contact({"name": "Nobody", "phones": ["", "  "]}, ContactSource.MANUAL) is None

    def test_non_dict_returns_none(self):
        """Non-object entries are skipped."""
        assert normalize_contact("Anna +7900", ContactSource.MANUAL) is None


class TestNormalizeContacts:
    """De-duplication by (name, first phone number)."""

    def test_duplicates_dropped(self):
        """Same name ignoring case and same first phone is a duplicate."""
        raw = [
            {"name": "Anna", "phone": "+1"},
            {"name": "anna", "phone": "+1"},
            {"name": "Anna", "phone": "+2"},
        ]
        contacts, skipped, duplicates = normalize_contacts(raw, ContactSource.MANUAL)
        assert [c.first_phone for c in contacts] == ["+1", "+2"]
        assert skipped == 0
        assert duplicates == 1

    def test_invalid_entries_counted_as_skipped(self):
        """Entries without phone or email are counted, not kept."""
        raw = make_contacts(2) + [{"name": "Empty"}, None]
        contacts, skipped, duplicates = normalize_contacts(raw, ContactSource.MANUAL)
        assert len(contacts) == 2
        assert skipped == 2
        assert duplicates == 0


class TestParseSource:
    """Tests for parse_source."""

    def test_known_values(self):
        """Each source name maps to its enum."""
        assert parse_source("manual") == ContactSource.MANUAL
        assert parse_source("import-service") == ContactSource.IMPORT_SERVICE
        assert parse_source("test") == ContactSource.TEST

    def test_google_alias(self):
        """"google" is the import service, case-insensitive."""
        assert parse_source("Google") == ContactSource.IMPORT_SERVICE

    def test_enum_passthrough(self):
        """Enum values pass through."""
        assert parse_source(ContactSource.TEST) == ContactSource.TEST

    def test_unknown_source_raises(self):
        """Anything else is InvalidImportSource."""
        with pytest.raises(InvalidImportSource):
            parse_source("carrier-pigeon")


class TestImportContacts:
    """Tests for import_contacts."""

    @pytest.mark.parametrize("count", [0, 1, 2])
    def test_too_few_contacts_creates_nothing(self, store, count):
        """Below the minimum no record is created and the store stays clean."""
        with pytest.raises(TooFewContacts) as exc:
            import_contacts(store, "u2", make_contacts(count), "manual")

        assert exc.value.valid == count
        assert exc.value.required == 3
        assert store.get("u2") is None
        assert not store.dirty

    def test_too_few_after_dedup(self, store):
        """The minimum counts unique contacts."""
        raw = make_contacts(2) + [make_contacts(1)[0]]
        with pytest.raises(TooFewContacts):
            import_contacts(store, "u2", raw, "manual")

    def test_too_few_leaves_existing_record_untouched(self, store):
        """A short re-upload does not replace the saved list."""
        import_contacts(store, "u1", make_contacts(3), "manual")
        before = store.snapshot("u1")

        with pytest.raises(TooFewContacts):
            import_contacts(store, "u1", make_contacts(1, prefix="New"), "manual")

        assert store.snapshot("u1") == before

    @pytest.mark.parametrize("user_id", ["", "   ", None])
    def test_empty_user_id(self, store, user_id):
        """Blank ids are refused before anything is stored."""
        with pytest.raises(InvalidUserId):
            import_contacts(store, user_id, make_contacts(3), "manual")
        assert store.count() == 0

    def test_padded_user_id_is_trimmed(self, store):
        """Surrounding whitespace does not create a second user."""
        import_contacts(store, " u1 ", make_contacts(3), "manual")
        assert store.exists("u1")

    def test_valid_import_moves_to_pending(self, store):
        """A good list fills the record and asks for review."""
        summary = import_contacts(store, "u1", make_contacts(4), "manual", channel_id="555")

        record = store.get("u1")
        assert record.has_contacts is True
        assert len(record.contacts) == 4
        assert record.imported_at is not None
        assert record.import_source == ContactSource.MANUAL
        assert record.contact_channel_id == "555"
        assert record.moderation_state == ModerationState.PENDING
        assert record.moderation_decided_at is None

        assert summary.accepted == 4
        assert summary.previous_state == ModerationState.UNSUBMITTED
        assert summary.state == ModerationState.PENDING
        assert summary.event.awaiting_decision is True

    def test_channel_defaults_to_user_id(self, store):
        """Without a chat id, replies go to the user id."""
        import_contacts(store, "u1", make_contacts(3), "manual")
        assert store.get("u1").contact_channel_id == "u1"

    def test_preview_is_capped(self, store):
        """The admin preview is short, the count is full."""
        summary = import_contacts(store, "u1", make_contacts(12), "manual")
        assert len(summary.event.preview) == PREVIEW_SIZE
        assert summary.event.contacts_count == 12

    def test_reimport_while_pending_is_idempotent(self, store):
        """Pending stays pending and the newest list wins."""
        import_contacts(store, "u1", make_contacts(3), "manual")
        summary = import_contacts(store, "u1", make_contacts(5, prefix="Other"), "test")

        record = store.get("u1")
        assert record.moderation_state == ModerationState.PENDING
        assert len(record.contacts) == 5
        assert record.import_source == ContactSource.TEST
        assert summary.event.awaiting_decision is True

    def test_reimport_keeps_approval(self, store):
        """Approved users stay approved with the original decision time."""
        import_contacts(store, "u1", make_contacts(3), "manual")
        apply_decision(store.get("u1"), APPROVE, "admin1")
        decided_at = store.get("u1").moderation_decided_at

        summary = import_contacts(store, "u1", make_contacts(6), "manual")

        record = store.get("u1")
        assert record.moderation_state == ModerationState.APPROVED
        assert record.moderation_decided_at == decided_at
        assert len(record.contacts) == 6
        assert summary.event.awaiting_decision is False

    def test_reimport_after_rejection_reopens_review(self, store):
        """Rejected users go back to pending with the decision cleared."""
        import_contacts(store, "u1", make_contacts(3), "manual")
        apply_decision(store.get("u1"), REJECT, "admin1")

        summary = import_contacts(store, "u1", make_contacts(3), "manual")

        record = store.get("u1")
        assert summary.previous_state == ModerationState.REJECTED
        assert record.moderation_state == ModerationState.PENDING
        assert record.moderation_decided_at is None
        assert record.moderation_decided_by is None
        assert summary.event.awaiting_decision is True

    def test_one_record_per_user(self, store):
        """Repeated imports reuse the record."""
        import_contacts(store, "u1", make_contacts(3), "manual")
        import_contacts(store, "u1", make_contacts(3), "manual")
        assert store.count() == 1
