"""
Opaque action tokens carried by inline keyboard buttons.

Format: "action:user_id". Telegram limits callback_data to 64 bytes.
"""

from flower_market.errors import InvalidActionToken

APPROVE_USER = "approve_user"
REJECT_USER = "reject_user"
VIEW_CONTACTS = "view_contacts"
USER_INFO = "user_info"

ACTIONS = frozenset({APPROVE_USER, REJECT_USER, VIEW_CONTACTS, USER_INFO})

MAX_TOKEN_BYTES = 64


def encode_action(action: str, user_id: str) -> str:
    token = f"{action}:{user_id}"
    if action not in ACTIONS or not user_id or len(token.encode()) > MAX_TOKEN_BYTES:
        raise InvalidActionToken(token)
    return token


def parse_action(token: str) -> tuple[str, str]:
    action, sep, user_id = (token or "").partition(":")
    if not sep or action not in ACTIONS or not user_id:
        raise InvalidActionToken(token)
    return action, user_id
