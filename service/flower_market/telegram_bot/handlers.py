"""
Telegram command and callback handlers.

ARCHITECTURE: Direct function calls - NO HTTP overhead!
- Handlers call the ModerationWorkflow stored in context.bot_data
- The workflow owns the user store; handlers never touch records directly

OPERATOR CALLBACKS:
===================
Admin notifications carry buttons with "action:user_id" tokens:
- approve_user / reject_user: moderation decision
- view_contacts: list the first contacts of the user
- user_info: profile summary, with decision buttons while pending

Only configured operators may use them. Decisions are idempotent, so a
double tap on "Approve" just reports that the user is already approved.
"""

import html

from telegram import InlineKeyboardButton, InlineKeyboardMarkup, Update, WebAppInfo
from telegram.ext import ContextTypes

from flower_market.config import get_settings
from flower_market.errors import (
    Forbidden, InvalidActionToken, InvalidTransition, UserNotFound
)
from flower_market.logging_config import get_logger
from flower_market.models import ModerationState, UserRecord
from flower_market.services.actions import (
    APPROVE_USER, REJECT_USER, USER_INFO, VIEW_CONTACTS, encode_action, parse_action
)
from flower_market.services.moderation import DecisionOutcome, ModerationWorkflow
from flower_market.services.moderation_state import APPROVE, REJECT
from flower_market.services.notifications import web_app_url

logger = get_logger("telegram_bot.handlers")

WORKFLOW_KEY = "workflow"
CONTACTS_PAGE_SIZE = 10

STATE_LABELS = {
    ModerationState.UNSUBMITTED: "❌ Contacts not uploaded",
    ModerationState.PENDING: "⏳ Waiting for approval",
    ModerationState.APPROVED: "✅ Approved by administrator",
    ModerationState.REJECTED: "🚫 Rejected",
}


def get_workflow(context: ContextTypes.DEFAULT_TYPE) -> ModerationWorkflow:
    return context.bot_data[WORKFLOW_KEY]


def _format_date(value) -> str:
    return value.strftime("%d.%m.%Y %H:%M") if value else "unknown"


def _full_name(user) -> str:
    return " ".join(part for part in [user.first_name, user.last_name] if part)


async def handle_start_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /start command: register the seller and offer the web app."""
    user = update.effective_user
    chat_id = str(update.effective_chat.id)
    workflow = get_workflow(context)

    logger.info(f"/start from user_id={user.id}, username={user.username}")

    workflow.register_user(
        str(user.id),
        chat_id,
        display_name=_full_name(user) or None,
        username=user.username,
    )

    settings = get_settings()
    welcome_text = f"""🌸 <b>Welcome to Flower Market, {html.escape(user.first_name or '')}!</b>

Here you can publish a listing for selling flowers.

<b>📋 Before your first listing:</b>
1. Sign in with Google
2. Import your contacts (at least {settings.min_contacts})
3. Wait for administrator approval
4. Create your listing

<i>Contacts are only used to check that sellers are real people.</i>"""

    keyboard = InlineKeyboardMarkup([
        [InlineKeyboardButton(
            "🌐 Open the site",
            web_app=WebAppInfo(url=web_app_url(settings.base_url, str(user.id), chat_id))
        )]
    ])

    await update.message.reply_text(welcome_text, parse_mode="HTML", reply_markup=keyboard)


async def handle_help_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /help command."""
    help_text = """🆘 <b>How to use Flower Market</b>

<b>Commands:</b>
/start - start working with the bot
/status - check your account status
/help - this help

<b>Publishing:</b>
1. Press "Open the site"
2. Sign in with Google
3. Import your contacts
4. Wait for approval
5. Create your listing"""

    await update.message.reply_text(help_text, parse_mode="HTML")


def format_status(record: UserRecord) -> str:
    lines = [
        "📊 <b>Your account status</b>",
        "",
        f"👤 <b>User:</b> {html.escape(record.display_name or '')}",
        f"🆔 <b>ID:</b> {html.escape(record.id)}",
    ]
    if record.google_email:
        lines.append(f"🔐 <b>Google:</b> {html.escape(record.google_email)}")

    lines.append("")
    if record.has_contacts:
        lines.append(f"📞 <b>Contacts:</b> ✅ uploaded ({len(record.contacts)})")
        lines.append(f"📅 <b>Imported:</b> {_format_date(record.imported_at)}")
    else:
        lines.append("📞 <b>Contacts:</b> ❌ not uploaded")

    lines.append("")
    lines.append(f"✅ <b>Approval:</b> {STATE_LABELS[record.moderation_state]}")
    if record.moderation_state == ModerationState.APPROVED:
        lines.append(f"📅 <b>Approved:</b> {_format_date(record.moderation_decided_at)}")
        lines.append(f"📊 <b>Listings published:</b> {record.publish_count}")
    elif record.moderation_state == ModerationState.PENDING:
        lines.append("<i>The administrator has your contacts and will decide soon.</i>")
    elif record.moderation_state == ModerationState.REJECTED:
        lines.append("<i>Import your contacts again to ask for another review.</i>")

    return "\n".join(lines)


async def handle_status_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /status command."""
    user_id = str(update.effective_user.id)
    record = get_workflow(context).get_user(user_id)

    if record is None:
        await update.message.reply_text(
            "❌ You have not started yet. Use /start to begin."
        )
        return

    status_text = format_status(record)

    if not record.has_contacts:
        settings = get_settings()
        status_text += "\n\n🔗 <b>Next step:</b> open the site to upload your contacts."
        keyboard = InlineKeyboardMarkup([
            [InlineKeyboardButton(
                "🌐 Upload contacts",
                web_app=WebAppInfo(url=web_app_url(settings.base_url, user_id, record.contact_channel_id))
            )]
        ])
        await update.message.reply_text(status_text, parse_mode="HTML", reply_markup=keyboard)
    else:
        await update.message.reply_text(status_text, parse_mode="HTML")


def format_decision(outcome: DecisionOutcome, operator_name: str) -> str:
    if not outcome.changed:
        return (
            f"ℹ️ <b>ALREADY DECIDED</b>\n\n"
            f"👤 User: {html.escape(outcome.user_id)}\n"
            f"📌 State: {outcome.state.value}\n"
            f"📅 Decided: {_format_date(outcome.decided_at)}"
        )

    title = "✅ <b>USER APPROVED</b>" if outcome.state == ModerationState.APPROVED else "❌ <b>USER REJECTED</b>"
    text = (
        f"{title}\n\n"
        f"👤 User: {html.escape(outcome.user_id)}\n"
        f"📅 Decided: {_format_date(outcome.decided_at)}\n"
        f"👮 By: {html.escape(operator_name)}"
    )
    if not outcome.notified:
        text += "\n\n⚠️ The user could not be notified."
    return text


def format_contacts(record: UserRecord, limit: int = CONTACTS_PAGE_SIZE) -> str:
    lines = [
        f"📞 <b>CONTACTS OF USER {html.escape(record.id)}</b>",
        "",
        f"📊 Total: {len(record.contacts)}",
        f"📱 Source: {record.import_source.value if record.import_source else 'unknown'}",
        f"📅 Date: {_format_date(record.imported_at)}",
        "",
    ]
    for index, contact in enumerate(record.contacts[:limit], start=1):
        lines.append(f"<b>{index}.</b> {html.escape(contact.name)}")
        lines += [f"   📱 {html.escape(phone)}" for phone in contact.phone_numbers]
        lines += [f"   📧 {html.escape(email)}" for email in contact.email_addresses]

    if len(record.contacts) > limit:
        lines.append(f"\n... and {len(record.contacts) - limit} more")

    return "\n".join(lines)


def format_user_info(record: UserRecord) -> str:
    lines = [
        "👤 <b>USER INFO</b>",
        "",
        f"🆔 <b>ID:</b> {html.escape(record.id)}",
        f"💬 <b>Chat ID:</b> {html.escape(record.contact_channel_id)}",
    ]
    if record.username:
        lines.append(f"👤 <b>Username:</b> @{html.escape(record.username)}")
    if record.display_name:
        lines.append(f"👥 <b>Name:</b> {html.escape(record.display_name)}")
    if record.google_email:
        lines.append(f"🔐 <b>Google:</b> {html.escape(record.google_email)}")

    lines += [
        "",
        f"📅 <b>Registered:</b> {_format_date(record.created_at)}",
        "",
        "📊 <b>Stats:</b>",
        f"• Contacts: {len(record.contacts)}",
        f"• Published: {record.publish_count}",
        f"• State: {record.moderation_state.value}",
    ]
    if record.moderation_decided_at:
        lines.append(f"• Decided: {_format_date(record.moderation_decided_at)}")
    if record.last_publish_at:
        lines.append(f"• Last listing: {_format_date(record.last_publish_at)}")

    return "\n".join(lines)


def user_info_keyboard(record: UserRecord) -> InlineKeyboardMarkup:
    rows = [[InlineKeyboardButton("📞 View contacts", callback_data=encode_action(VIEW_CONTACTS, record.id))]]
    if record.moderation_state == ModerationState.PENDING:
        rows.append([
            InlineKeyboardButton("✅ Approve", callback_data=encode_action(APPROVE_USER, record.id)),
            InlineKeyboardButton("❌ Reject", callback_data=encode_action(REJECT_USER, record.id)),
        ])
    return InlineKeyboardMarkup(rows)


async def handle_callback_query(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """
    Handle operator inline keyboard callbacks.

    Callback data format: "action:user_id"
    """
    query = update.callback_query
    operator = update.effective_user
    workflow = get_workflow(context)

    logger.info(f"Callback from user_id={operator.id}: {query.data}")

    try:
        action, user_id = parse_action(query.data)
    except InvalidActionToken:
        await query.answer("❌ Unknown action")
        return

    if not workflow.is_operator(str(operator.id)):
        logger.warning(f"Non-operator {operator.id} pressed {action} for user_id={user_id}")
        await query.answer("⛔ Not allowed", show_alert=True)
        return

    if action in (APPROVE_USER, REJECT_USER):
        decision = APPROVE if action == APPROVE_USER else REJECT
        try:
            outcome = await workflow.decide(user_id, str(operator.id), decision)
        except Forbidden:
            await query.answer("⛔ Not allowed", show_alert=True)
            return
        except UserNotFound:
            await query.answer("❌ User not found")
            return
        except InvalidTransition:
            await query.answer("❌ User has not uploaded contacts", show_alert=True)
            return

        operator_name = f"@{operator.username}" if operator.username else operator.first_name
        await query.edit_message_text(format_decision(outcome, operator_name), parse_mode="HTML")

        if not outcome.changed:
            await query.answer(f"ℹ️ Already {outcome.state.value}")
        elif outcome.state == ModerationState.APPROVED:
            await query.answer("✅ User approved")
        else:
            await query.answer("❌ User rejected")
        return

    record = workflow.get_user(user_id)
    if record is None:
        await query.answer("❌ User not found")
        return

    if action == VIEW_CONTACTS:
        if not record.contacts:
            await query.answer("❌ User has no contacts")
            return
        await query.message.reply_text(format_contacts(record), parse_mode="HTML")
        await query.answer("📞 Contacts shown")

    elif action == USER_INFO:
        await query.message.reply_text(
            format_user_info(record),
            parse_mode="HTML",
            reply_markup=user_info_keyboard(record)
        )
        await query.answer("👤 User info")


async def handle_error(update: object, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle errors in handlers."""
    logger.error(f"Bot error: {context.error}", exc_info=context.error)

    if isinstance(update, Update) and update.effective_message:
        await update.effective_message.reply_text(
            "❌ Something went wrong.\n"
            "Try again or use /help"
        )
