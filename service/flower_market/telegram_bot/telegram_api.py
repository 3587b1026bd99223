"""
Telegram Bot API client for sending messages.

Simple wrapper used for messages that originate outside a bot update:
moderation notifications and channel announcements.
"""

import httpx
from typing import Optional

from flower_market.config import get_settings

TELEGRAM_API_URL = "https://api.telegram.org"
REQUEST_TIMEOUT = 15.0


class TelegramAPIError(Exception):
    """Telegram returned an error or could not be reached."""


async def _call(method: str, payload: dict) -> dict:
    """
    Call a Bot API method.

    Raises TelegramAPIError on transport errors and on ok=false replies.
    """
    settings = get_settings()

    url = f"{TELEGRAM_API_URL}/bot{settings.telegram_bot_token}/{method}"

    try:
        async with httpx.AsyncClient(timeout=REQUEST_TIMEOUT) as client:
            response = await client.post(url, json=payload)
            response.raise_for_status()
            data = response.json()
    except httpx.HTTPError as e:
        raise TelegramAPIError(f"{method} failed: {e}") from e

    if not data.get("ok", False):
        raise TelegramAPIError(f"{method} failed: {data.get('description', 'unknown error')}")

    return data


async def send_message(chat_id: int | str, text: str, parse_mode: Optional[str] = None) -> dict:
    """
    Post text to a chat or an @channel.

    Args:
        chat_id: Telegram chat ID or @channel username
        text: Message text
        parse_mode: Optional parse mode (Markdown, HTML)

    Returns:
        Response dict; result.message_id identifies the post
    """
    payload = {
        "chat_id": chat_id,
        "text": text
    }

    if parse_mode:
        payload["parse_mode"] = parse_mode

    return await _call("sendMessage", payload)


async def send_message_with_buttons(
    chat_id: int | str,
    text: str,
    buttons: list[list[dict]],
    parse_mode: Optional[str] = None
) -> dict:
    """
    Post text with an inline keyboard.

    Args:
        chat_id: Telegram chat ID
        text: Message text
        buttons: Rows of Bot API button dicts, callback, url or web_app
                 Example: [[{"text": "Approve", "callback_data": "approve_user:42"}]]
        parse_mode: Optional parse mode (Markdown, HTML)

    Returns:
        Response dict with message_id
    """
    payload = {
        "chat_id": chat_id,
        "text": text,
        "reply_markup": {
            "inline_keyboard": buttons
        }
    }

    if parse_mode:
        payload["parse_mode"] = parse_mode

    return await _call("sendMessage", payload)
