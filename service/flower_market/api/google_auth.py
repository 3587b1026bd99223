"""
Google OAuth routes for the contacts import.

/auth/google starts the consent flow for a Telegram user,
/auth/google/callback imports the user's Google contacts.
"""

import html

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import HTMLResponse, RedirectResponse

from flower_market.api.deps import get_google_client, get_oauth_states, get_workflow
from flower_market.errors import GoogleAPIError, ValidationError
from flower_market.logging_config import get_logger
from flower_market.models import ContactSource
from flower_market.services.google_contacts import GoogleContactsClient, OAuthStateStore
from flower_market.services.moderation import ModerationWorkflow

router = APIRouter(prefix="/auth", tags=["auth"])

logger = get_logger("api.google_auth")


def _result_page(title: str, message: str, status_code: int = 200) -> HTMLResponse:
    body = (
        "<!DOCTYPE html><html><head><meta charset=\"utf-8\">"
        f"<title>{html.escape(title)}</title></head>"
        f"<body><h1>{html.escape(title)}</h1><p>{html.escape(message)}</p>"
        "<p>You can return to Telegram now.</p></body></html>"
    )
    return HTMLResponse(body, status_code=status_code)


@router.get("/google")
async def start_google_auth(
    user_id: str = Query(..., alias="userId"),
    chat_id: str = Query(..., alias="chatId"),
    google: GoogleContactsClient = Depends(get_google_client),
    states: OAuthStateStore = Depends(get_oauth_states)
):
    """Redirect the user to Google's consent screen."""
    if not user_id.strip() or not chat_id.strip():
        raise HTTPException(status_code=400, detail="userId and chatId are required")

    state = states.issue(user_id, chat_id)
    logger.info(f"Starting Google authorization for user_id={user_id}")
    return RedirectResponse(google.authorization_url(state))


@router.get("/google/callback")
async def google_auth_callback(
    state: str = "",
    code: str = "",
    error: str = "",
    workflow: ModerationWorkflow = Depends(get_workflow),
    google: GoogleContactsClient = Depends(get_google_client),
    states: OAuthStateStore = Depends(get_oauth_states)
):
    """Exchange the code, register the user and import their contacts."""
    if error:
        logger.warning(f"Google authorization error: {error}")
        return _result_page("Authorization failed", f"Google returned: {error}", 400)

    pending = states.consume(state) if state else None
    if pending is None or not code:
        return _result_page("Authorization failed", "The session has expired, please try again.", 400)

    try:
        tokens = await google.exchange_code(code)
        access_token = tokens["access_token"]
        user_info = await google.get_user_info(access_token)
        contacts = await google.fetch_contacts(access_token)
    except GoogleAPIError as e:
        logger.error(f"Google import failed for user_id={pending.user_id}: {e}")
        return _result_page("Import failed", "Could not read your Google contacts.", 502)

    workflow.register_user(
        pending.user_id,
        pending.chat_id,
        google_email=user_info.get("email"),
    )

    try:
        summary = await workflow.submit_contacts(
            pending.user_id, pending.chat_id, contacts, ContactSource.IMPORT_SERVICE
        )
    except ValidationError as e:
        return _result_page("Import failed", str(e), 400)

    return _result_page(
        "Contacts imported",
        f"{summary.accepted} contacts were sent to the administrator for review."
    )
