"""
Notification Sender.

Renders moderation notifications and delivers them through the
Telegram Bot API. Delivery errors surface as NotificationDeliveryError;
the moderation workflow logs and swallows them.
"""

import html
from enum import Enum
from typing import Any, Optional, Protocol

from flower_market.errors import NotificationDeliveryError
from flower_market.services.actions import (
    APPROVE_USER, REJECT_USER, USER_INFO, VIEW_CONTACTS, encode_action
)
from flower_market.telegram_bot import telegram_api
from flower_market.telegram_bot.telegram_api import TelegramAPIError


class TemplateKind(str, Enum):
    CONTACTS_RECEIVED = "contacts_received"  # admin-facing, with decision buttons
    USER_APPROVED = "user_approved"
    USER_REJECTED = "user_rejected"
    LISTING_PUBLISHED = "listing_published"  # to the seller
    LISTING_ANNOUNCED = "listing_announced"  # admin-facing copy of a new listing


class NotificationSender(Protocol):
    async def notify(self, channel_id: str, kind: TemplateKind, payload: dict[str, Any]) -> None: ...


def web_app_url(base_url: str, user_id: str, chat_id: str) -> str:
    return f"{base_url.rstrip('/')}/index.html?userId={user_id}&chatId={chat_id}"


def listing_url(channel_id: str, message_id: Optional[int]) -> Optional[str]:
    """Public link to a channel post; only @username channels have one."""
    if not message_id or not channel_id.startswith("@"):
        return None
    return f"https://t.me/{channel_id[1:]}/{message_id}"


def _user_label(payload: dict[str, Any]) -> str:
    label = html.escape(payload.get("display_name") or payload["user_id"])
    if payload.get("username"):
        label += f" (@{html.escape(payload['username'])})"
    return label


def render_contacts_received(payload: dict[str, Any]) -> tuple[str, list[list[dict]]]:
    """Admin message for a new contact list, plus its keyboard."""
    user_id = payload["user_id"]
    awaiting = payload.get("awaiting_decision", True)

    title = "📞 <b>NEW CONTACTS FROM USER</b>" if awaiting else "📞 <b>CONTACTS UPDATED</b>"
    lines = [
        title,
        "",
        f"👤 User: {_user_label(payload)}",
        f"🆔 ID: <code>{html.escape(user_id)}</code>",
        f"📊 Contacts: {payload['contacts_count']}",
        f"📱 Source: {payload['source']}",
        f"📌 State: {payload['state']}",
    ]

    preview = payload.get("preview") or []
    if preview:
        lines += ["", "Sample contacts:"]
        for i, contact in enumerate(preview, start=1):
            detail = contact.get("phone") or contact.get("email") or "no phone"
            lines.append(f"{i}. {html.escape(contact['name'])}: {html.escape(detail)}")

    buttons = []
    if awaiting:
        buttons.append([
            {"text": "✅ Approve", "callback_data": encode_action(APPROVE_USER, user_id)},
            {"text": "❌ Reject", "callback_data": encode_action(REJECT_USER, user_id)},
        ])
    buttons.append([
        {"text": "👀 View all contacts", "callback_data": encode_action(VIEW_CONTACTS, user_id)},
        {"text": "👤 User info", "callback_data": encode_action(USER_INFO, user_id)},
    ])

    return "\n".join(lines), buttons


def render_user_approved(payload: dict[str, Any]) -> tuple[str, list[list[dict]]]:
    channel = html.escape(payload.get("publication_channel", ""))
    text = (
        "🎉 <b>YOUR ACCOUNT HAS BEEN APPROVED!</b>\n\n"
        "You can now create flower listings.\n\n"
        "📋 <b>What's next?</b>\n"
        "1. Press the button below\n"
        "2. Fill in your listing\n"
        "3. Publish it to the channel\n"
    )
    if channel:
        text += f"\n<i>Listings are posted in {channel}</i>"

    buttons = []
    if payload.get("web_app_url"):
        buttons.append([{"text": "📝 Create listing", "web_app": {"url": payload["web_app_url"]}}])
    return text, buttons


def render_user_rejected(payload: dict[str, Any]) -> tuple[str, list[list[dict]]]:
    text = (
        "❌ <b>YOUR APPLICATION WAS REJECTED</b>\n\n"
        "An administrator declined your request to publish listings.\n\n"
        "<b>Possible reasons:</b>\n"
        "• Not enough contacts\n"
        "• Suspicious activity\n"
        "• Rules violation\n\n"
        "You can import your contacts again to ask for another review."
    )
    return text, []


def _listing_lines(payload: dict[str, Any]) -> list[str]:
    listing = payload.get("listing") or {}
    return [
        f"📍 City: {html.escape(listing.get('city') or '')}",
        f"💰 Price: {html.escape(listing.get('price') or 'Negotiable')}",
        f"🌺 Freshness: {html.escape(listing.get('freshness') or 'not specified')}",
    ]


def render_listing_published(payload: dict[str, Any]) -> tuple[str, list[list[dict]]]:
    """Seller confirmation after a successful channel post."""
    lines = ["✅ <b>YOUR LISTING IS PUBLISHED!</b>", "", *_listing_lines(payload)]
    lines.append(f"📊 Listings published: {payload.get('publish_count', 0)}")
    if payload.get("listing_url"):
        lines += ["", f"<a href=\"{html.escape(payload['listing_url'])}\">↗️ Open the listing</a>"]
    lines += ["", "<i>To edit the listing, contact the administrator.</i>"]
    return "\n".join(lines), []


def render_listing_announced(payload: dict[str, Any]) -> tuple[str, list[list[dict]]]:
    """Admin copy of a new listing, with a link to the post and the seller's info."""
    user_id = payload["user_id"]
    description = (payload.get("listing") or {}).get("description") or ""
    if len(description) > 200:
        description = description[:200] + "..."

    lines = [
        "📢 <b>NEW LISTING PUBLISHED</b>",
        "",
        f"👤 User: {_user_label(payload)}",
        *_listing_lines(payload),
        "",
        "📝 Description:",
        html.escape(description),
    ]

    buttons = []
    if payload.get("listing_url"):
        buttons.append([{"text": "👁️ View listing", "url": payload["listing_url"]}])
    buttons.append([{"text": "👤 User info", "callback_data": encode_action(USER_INFO, user_id)}])
    return "\n".join(lines), buttons


RENDERERS = {
    TemplateKind.CONTACTS_RECEIVED: render_contacts_received,
    TemplateKind.USER_APPROVED: render_user_approved,
    TemplateKind.USER_REJECTED: render_user_rejected,
    TemplateKind.LISTING_PUBLISHED: render_listing_published,
    TemplateKind.LISTING_ANNOUNCED: render_listing_announced,
}


class TelegramNotificationSender:
    """Delivers notifications as Telegram messages."""

    async def notify(self, channel_id: str, kind: TemplateKind, payload: dict[str, Any]) -> None:
        text, buttons = RENDERERS[kind](payload)

        try:
            if buttons:
                await telegram_api.send_message_with_buttons(
                    channel_id, text, buttons, parse_mode="HTML"
                )
            else:
                await telegram_api.send_message(channel_id, text, parse_mode="HTML")
        except TelegramAPIError as e:
            raise NotificationDeliveryError(str(channel_id), str(e)) from e
