"""
Telegram Bot module for Flower Market.

ARCHITECTURE: Thin routing layer - NO business logic duplication!
- Receives webhook from Telegram (POST /telegram/webhook)
- /start, /help, /status for sellers
- Inline buttons for operators: approve, reject, view contacts, user info
- Every state change goes through the ModerationWorkflow in bot_data

Import submodules directly (bot, handlers, telegram_api); services import
telegram_api, so this package does not import anything eagerly.
"""
