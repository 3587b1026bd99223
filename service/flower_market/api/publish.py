"""
Listing publication API.

Only approved users with imported contacts may publish. The listing is
posted to the publication channel as a text announcement; the seller and
the operator channel are told about it afterwards.
"""

from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel, ConfigDict, Field, field_validator
from slowapi import Limiter
from slowapi.util import get_remote_address

from flower_market.api.deps import get_workflow
from flower_market.config import get_settings
from flower_market.errors import PublishDenied, UserUnknown
from flower_market.logging_config import get_logger
from flower_market.services.moderation import ModerationWorkflow
from flower_market.services.notifications import listing_url
from flower_market.telegram_bot import telegram_api
from flower_market.telegram_bot.telegram_api import TelegramAPIError

router = APIRouter(prefix="/api", tags=["publish"])

logger = get_logger("api.publish")

# Rate limiter for channel posts
limiter = Limiter(key_func=get_remote_address)


class PublishRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    user_id: str = Field(alias="userId")
    description: str
    city: str
    price: Optional[str] = None
    contacts: Optional[str] = None
    freshness: Optional[str] = None
    district: Optional[str] = None
    address: Optional[str] = None
    hashtags: Optional[str] = None

    @field_validator("user_id", mode="before")
    @classmethod
    def coerce_user_id(cls, value: Any) -> Any:
        return str(value) if isinstance(value, int) else value


class PublishResponse(BaseModel):
    success: bool = True
    message: str
    publish_count: int


def format_listing(listing: PublishRequest) -> str:
    """Plain-text announcement for the channel."""
    lines = ["🌺 Flowers for sale", ""]

    if listing.description:
        lines += ["📝 Description:", listing.description, ""]
    if listing.freshness:
        lines.append(f"🕒 Freshness: {listing.freshness}")

    lines.append(f"💰 Price: {listing.price or 'Negotiable'}")

    location = listing.city
    if listing.district:
        location += f", {listing.district}"
    lines.append(f"📍 Location: {location}")
    if listing.address:
        lines.append(f"🏠 Address: {listing.address}")

    lines += ["", f"📞 Contacts: {listing.contacts or 'See comments'}"]
    if listing.hashtags:
        lines += ["", listing.hashtags]

    lines += ["", "──────────────", f"ID: {listing.user_id[:8]}... | Flower Market 🌸"]
    return "\n".join(lines)


@router.post("/publish", response_model=PublishResponse)
@limiter.limit("10/minute")  # Rate limit: 10 listings per minute per IP
async def publish_listing(
    request: Request,  # Required for rate limiter
    listing: PublishRequest,
    workflow: ModerationWorkflow = Depends(get_workflow)
):
    """
    Publish a listing to the channel.

    404 if the user is unknown, 403 until an operator approved the user.
    """
    logger.info(f"Publish request from user_id={listing.user_id}")

    try:
        workflow.request_publish(listing.user_id)
    except UserUnknown as e:
        raise HTTPException(status_code=404, detail=str(e))
    except PublishDenied as e:
        raise HTTPException(status_code=403, detail=str(e))

    settings = get_settings()
    try:
        sent = await telegram_api.send_message(settings.channel_id, format_listing(listing))
    except TelegramAPIError as e:
        logger.error(f"Posting listing for user_id={listing.user_id} failed: {e}")
        raise HTTPException(status_code=502, detail="Failed to post the listing to the channel")

    publish_count = workflow.record_publish(listing.user_id)
    logger.info(f"Listing published for user_id={listing.user_id}, total={publish_count}")

    message_id = (sent.get("result") or {}).get("message_id")
    await workflow.announce_publish(
        listing.user_id,
        listing.model_dump(include={"description", "city", "price", "freshness"}),
        url=listing_url(settings.channel_id, message_id),
    )

    return PublishResponse(
        message="Listing published",
        publish_count=publish_count,
    )
