"""
Tests for notification rendering and Telegram delivery.

Delivery tests mock the Bot API with pytest-httpx.
"""

import json

import httpx
import pytest

from flower_market.errors import NotificationDeliveryError
from flower_market.services.notifications import (
    TelegramNotificationSender,
    TemplateKind,
    listing_url,
    render_contacts_received,
    render_listing_announced,
    render_listing_published,
    render_user_approved,
    render_user_rejected,
    web_app_url,
)

SEND_MESSAGE_URL = "https://api.telegram.org/bottest-token/sendMessage"


def admin_payload(**overrides):
    payload = {
        "user_id": "42",
        "display_name": "Anna <Roses>",
        "username": "anna",
        "contacts_count": 7,
        "source": "manual",
        "state": "pending",
        "awaiting_decision": True,
        "preview": [
            {"name": "Boris", "phone": "+1", "email": None},
            {"name": "Vera", "phone": None, "email": "vera@example.com"},
        ],
    }
    payload.update(overrides)
    return payload


def publish_payload(**overrides):
    payload = {
        "user_id": "42",
        "display_name": "Anna",
        "username": None,
        "publish_count": 3,
        "listing": {"description": "Red roses", "city": "Kazan", "price": None, "freshness": "today"},
        "listing_url": "https://t.me/flowers/9",
    }
    payload.update(overrides)
    return payload


class TestRenderers:
    """Tests for the message templates."""

    def test_contacts_received_text(self):
        """Admin text escapes the name and lists the preview."""
        text, _ = render_contacts_received(admin_payload())

        assert "NEW CONTACTS FROM USER" in text
        assert "Anna &lt;Roses&gt; (@anna)" in text
        assert "<code>42</code>" in text
        assert "Contacts: 7" in text
        assert "1. Boris: +1" in text
        assert "2. Vera: vera@example.com" in text

    def test_contacts_received_buttons(self):
        """Decision row first, then view and info."""
        _, buttons = render_contacts_received(admin_payload())

        assert [b["callback_data"] for b in buttons[0]] == ["approve_user:42", "reject_user:42"]
        assert [b["callback_data"] for b in buttons[1]] == ["view_contacts:42", "user_info:42"]

    def test_update_without_decision(self):
        """Informational updates drop the decision row."""
        text, buttons = render_contacts_received(admin_payload(awaiting_decision=False, state="approved"))

        assert "CONTACTS UPDATED" in text
        assert len(buttons) == 1
        assert "approve_user:42" not in [b["callback_data"] for b in buttons[0]]

    def test_user_approved_with_web_app(self):
        """Approval carries a web app button and the channel name."""
        url = web_app_url("https://market.example/", "42", "555")
        text, buttons = render_user_approved({
            "user_id": "42", "publication_channel": "@flowers", "web_app_url": url,
        })

        assert "APPROVED" in text
        assert "@flowers" in text
        assert buttons == [[{"text": "📝 Create listing", "web_app": {"url": url}}]]

    def test_user_approved_without_web_app(self):
        """No base URL, no button."""
        _, buttons = render_user_approved({"user_id": "42"})
        assert buttons == []

    def test_user_rejected(self):
        """Rejection is plain text."""
        text, buttons = render_user_rejected({"user_id": "42"})
        assert "REJECTED" in text
        assert buttons == []

    def test_listing_published(self):
        """Seller text shows the listing, the count and the link."""
        text, buttons = render_listing_published(publish_payload())

        assert "YOUR LISTING IS PUBLISHED" in text
        assert "City: Kazan" in text
        assert "Price: Negotiable" in text
        assert "Freshness: today" in text
        assert "Listings published: 3" in text
        assert 'href="https://t.me/flowers/9"' in text
        assert buttons == []

    def test_listing_published_without_url(self):
        """Private channels get no link."""
        text, _ = render_listing_published(publish_payload(listing_url=None))
        assert "href" not in text

    def test_listing_announced_buttons(self):
        """Admin copy links to the post and to the seller's info."""
        text, buttons = render_listing_announced(publish_payload())

        assert "NEW LISTING PUBLISHED" in text
        assert "Red roses" in text
        assert buttons == [
            [{"text": "👁️ View listing", "url": "https://t.me/flowers/9"}],
            [{"text": "👤 User info", "callback_data": "user_info:42"}],
        ]

    def test_listing_announced_truncates_description(self):
        """Long descriptions are cut at 200 characters."""
        listing = {"description": "x" * 250, "city": "Kazan"}
        text, buttons = render_listing_announced(publish_payload(listing=listing, listing_url=None))

        assert "x" * 200 + "..." in text
        assert "x" * 201 not in text
        assert len(buttons) == 1


def test_web_app_url():
    """Web app link carries the user and chat ids."""
    assert web_app_url("https://market.example/", "42", "555") == (
        "https://market.example/index.html?userId=42&chatId=555"
    )


@pytest.mark.parametrize("channel_id,message_id,expected", [
    ("@flowers", 7, "https://t.me/flowers/7"),
    ("@flowers", None, None),
    ("-1001234567890", 7, None),
])
def test_listing_url(channel_id, message_id, expected):
    """Only public channels with a message id have a link."""
    assert listing_url(channel_id, message_id) == expected


class TestTelegramNotificationSender:
    """Tests for delivery through the Bot API."""

    @pytest.mark.asyncio
    async def test_sends_keyboard_as_html(self, httpx_mock):
        """Buttons go out as an inline keyboard with HTML parse mode."""
        httpx_mock.add_response(
            method="POST", url=SEND_MESSAGE_URL, json={"ok": True, "result": {"message_id": 1}}
        )

        await TelegramNotificationSender().notify("100", TemplateKind.CONTACTS_RECEIVED, admin_payload())

        body = json.loads(httpx_mock.get_request().content)
        assert body["chat_id"] == "100"
        assert body["parse_mode"] == "HTML"
        assert body["reply_markup"]["inline_keyboard"][0][0]["callback_data"] == "approve_user:42"

    @pytest.mark.asyncio
    async def test_plain_message_without_buttons(self, httpx_mock):
        """Templates without buttons send no reply_markup."""
        httpx_mock.add_response(method="POST", url=SEND_MESSAGE_URL, json={"ok": True, "result": {}})

        await TelegramNotificationSender().notify("555", TemplateKind.USER_REJECTED, {"user_id": "42"})

        body = json.loads(httpx_mock.get_request().content)
        assert "reply_markup" not in body

    @pytest.mark.asyncio
    async def test_api_error_becomes_delivery_error(self, httpx_mock):
        """ok=false from Telegram is a NotificationDeliveryError."""
        httpx_mock.add_response(
            method="POST", url=SEND_MESSAGE_URL,
            json={"ok": False, "description": "Forbidden: bot was blocked by the user"},
        )

        with pytest.raises(NotificationDeliveryError) as exc:
            await TelegramNotificationSender().notify("555", TemplateKind.USER_REJECTED, {"user_id": "42"})
        assert exc.value.channel_id == "555"

    @pytest.mark.asyncio
    async def test_network_error_becomes_delivery_error(self, httpx_mock):
        """Connection failures are a NotificationDeliveryError."""
        httpx_mock.add_exception(httpx.ConnectError("connection refused"))

        with pytest.raises(NotificationDeliveryError):
            await TelegramNotificationSender().notify("555", TemplateKind.USER_REJECTED, {"user_id": "42"})
