"""
Bot application lifecycle.

One python-telegram-bot Application per process, fed by the FastAPI webhook
route. The moderation workflow is handed to handlers through bot_data.
"""

from typing import Optional

from telegram import BotCommand, Update
from telegram.error import TelegramError
from telegram.ext import Application, CallbackQueryHandler, CommandHandler

from flower_market.config import get_settings
from flower_market.logging_config import get_logger
from flower_market.services.moderation import ModerationWorkflow
from .handlers import (
    WORKFLOW_KEY,
    handle_callback_query,
    handle_error,
    handle_help_command,
    handle_start_command,
    handle_status_command,
)

logger = get_logger("telegram_bot")

WEBHOOK_PATH = "/telegram/webhook"

BOT_COMMANDS = [
    BotCommand("start", "Start and open the market"),
    BotCommand("status", "Check your account status"),
    BotCommand("help", "How to publish a listing"),
]

_application: Optional[Application] = None


def build_application(token: str) -> Application:
    application = Application.builder().token(token).build()

    application.add_handler(CommandHandler("start", handle_start_command))
    application.add_handler(CommandHandler("help", handle_help_command))
    application.add_handler(CommandHandler("status", handle_status_command))
    # Operator buttons on moderation requests
    application.add_handler(CallbackQueryHandler(handle_callback_query))
    application.add_error_handler(handle_error)
    return application


def get_bot_application() -> Application:
    global _application

    if _application is None:
        _application = build_application(get_settings().telegram_bot_token)
        logger.info("Telegram application built")
    return _application


async def handle_telegram_update(update_data: dict) -> None:
    """Run one webhook update through the handlers. Errors are logged, never raised."""
    application = get_bot_application()
    try:
        update = Update.de_json(update_data, application.bot)
        if update is None:
            logger.warning("Webhook payload is not an update")
            return
        await application.process_update(update)
    except Exception as e:
        logger.error(f"Update {update_data.get('update_id')} failed: {e}", exc_info=True)


async def initialize_bot(workflow: ModerationWorkflow) -> None:
    """
    Attach the workflow, initialize the application and, for public
    https deployments, point Telegram's webhook at this service.
    """
    settings = get_settings()
    application = get_bot_application()
    application.bot_data[WORKFLOW_KEY] = workflow
    await application.initialize()

    if not settings.base_url.startswith("https://"):
        logger.info(f"Webhook not set, {settings.base_url} is not public https")
        return

    webhook_url = settings.base_url.rstrip("/") + WEBHOOK_PATH
    try:
        await application.bot.set_my_commands(BOT_COMMANDS)
        await application.bot.set_webhook(
            webhook_url,
            secret_token=settings.telegram_webhook_secret or None,
            allowed_updates=["message", "callback_query"],
        )
    except TelegramError as e:
        # Updates keep working if the webhook was registered earlier
        logger.error(f"Webhook registration failed: {e}")
        return
    logger.info(f"Webhook set to {webhook_url}")


async def shutdown_bot() -> None:
    global _application

    if _application is None:
        return
    await _application.shutdown()
    _application = None
    logger.info("Telegram application stopped")
