"""
Contacts API.

Upload a contact list from the web form, import from Google with an
access token, and check a user's moderation status.
"""

from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, ConfigDict, Field, field_validator

from flower_market.api.deps import get_google_client, get_workflow
from flower_market.errors import GoogleAPIError, ValidationError
from flower_market.logging_config import get_logger
from flower_market.models import ContactSource, UserStatusView
from flower_market.services.google_contacts import GoogleContactsClient
from flower_market.services.moderation import ModerationWorkflow

router = APIRouter(prefix="/api", tags=["contacts"])

logger = get_logger("api.contacts")


def _to_str(value: Any) -> Any:
    return str(value) if isinstance(value, int) else value


class UploadContactsRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    user_id: str = Field(alias="userId")
    chat_id: Optional[str] = Field(default=None, alias="chatId")
    contacts: list[dict[str, Any]]
    import_source: str = Field(default=ContactSource.MANUAL.value, alias="importSource")

    @field_validator("user_id", "chat_id", mode="before")
    @classmethod
    def coerce_ids(cls, value: Any) -> Any:
        return _to_str(value)


class GoogleContactsRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    user_id: str = Field(alias="userId")
    access_token: str = Field(alias="accessToken")

    @field_validator("user_id", mode="before")
    @classmethod
    def coerce_ids(cls, value: Any) -> Any:
        return _to_str(value)


class ImportResponse(BaseModel):
    success: bool = True
    message: str
    user_id: str
    count: int
    skipped: int
    duplicates: int
    state: str


async def _submit(
    workflow: ModerationWorkflow,
    user_id: str,
    chat_id: Optional[str],
    contacts: list[dict[str, Any]],
    source: str,
) -> ImportResponse:
    try:
        summary = await workflow.submit_contacts(user_id, chat_id, contacts, source)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return ImportResponse(
        message=f"Contacts saved ({summary.accepted} contacts)",
        user_id=summary.user_id,
        count=summary.accepted,
        skipped=summary.skipped,
        duplicates=summary.duplicates,
        state=summary.state.value,
    )


@router.post("/upload-contacts", response_model=ImportResponse)
async def upload_contacts(
    request: UploadContactsRequest,
    workflow: ModerationWorkflow = Depends(get_workflow)
):
    """
    Save a contact list for a user and send it to an operator for review.

    Requires at least the configured minimum of valid contacts.
    """
    logger.info(
        f"Contacts from user_id={request.user_id}, source={request.import_source}, "
        f"count={len(request.contacts)}"
    )
    return await _submit(
        workflow, request.user_id, request.chat_id, request.contacts, request.import_source
    )


@router.post("/get-google-contacts", response_model=ImportResponse)
async def get_google_contacts(
    request: GoogleContactsRequest,
    workflow: ModerationWorkflow = Depends(get_workflow),
    google: GoogleContactsClient = Depends(get_google_client)
):
    """Import contacts from Google with an access token the frontend already holds."""
    user = workflow.get_user(request.user_id)
    if user is None:
        raise HTTPException(status_code=404, detail="User not found")

    try:
        contacts = await google.fetch_contacts(request.access_token)
    except GoogleAPIError as e:
        logger.error(f"Google contacts fetch failed for user_id={request.user_id}: {e}")
        raise HTTPException(status_code=502, detail="Failed to fetch contacts from Google")

    return await _submit(
        workflow, request.user_id, user.contact_channel_id, contacts,
        ContactSource.IMPORT_SERVICE.value
    )


@router.get("/user/{user_id}/status", response_model=UserStatusView)
async def get_user_status(
    user_id: str,
    workflow: ModerationWorkflow = Depends(get_workflow)
):
    """Contacts and moderation status. Unknown users come back with exists=false."""
    return workflow.check_status(user_id)
