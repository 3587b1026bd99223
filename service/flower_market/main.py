import asyncio
from datetime import datetime, timezone

from fastapi import FastAPI, Header, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from flower_market.api.contacts import router as contacts_router
from flower_market.api.google_auth import router as google_auth_router
from flower_market.api.publish import limiter, router as publish_router
from flower_market.config import get_settings
from flower_market.errors import PersistenceError
from flower_market.logging_config import get_logger
from flower_market.services.google_contacts import GoogleContactsClient, OAuthStateStore
from flower_market.services.moderation import ModerationWorkflow
from flower_market.services.notifications import TelegramNotificationSender
from flower_market.services.persistence import JsonFilePersistence
from flower_market.services.user_store import UserStore
from flower_market.telegram_bot.bot import (
    WEBHOOK_PATH, handle_telegram_update, initialize_bot, shutdown_bot
)

logger = get_logger("main")

VERSION = "0.1.0"

# Web app origins: Telegram clients and the local frontend
ALLOWED_ORIGINS = [
    "https://telegram.me",
    "https://web.telegram.org",
    "http://localhost:3000",
]

app = FastAPI(
    title="Flower Market API",
    description="Seller onboarding and moderation for a Telegram flower market",
    version=VERSION
)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def build_workflow() -> ModerationWorkflow:
    """Wire the store, persistence and notification sender from settings."""
    settings = get_settings()
    store = UserStore(JsonFilePersistence(settings.data_file))
    try:
        store.load()
    except PersistenceError as e:
        # Starting empty would overwrite the file on the next flush
        logger.error(f"Could not load users: {e}")
        raise

    return ModerationWorkflow(
        store=store,
        sender=TelegramNotificationSender(),
        operator_ids=settings.operator_set,
        admin_chat_id=settings.admin_chat_id,
        min_contacts=settings.min_contacts,
        base_url=settings.base_url,
        publication_channel=settings.channel_id,
    )


@app.on_event("startup")
async def startup_event():
    settings = get_settings()

    workflow = build_workflow()
    app.state.workflow = workflow
    app.state.google_client = GoogleContactsClient(
        settings.google_client_id,
        settings.google_client_secret,
        settings.google_redirect_uri,
    )
    app.state.oauth_states = OAuthStateStore()
    app.state.flush_task = asyncio.create_task(
        workflow.store.run_periodic_flush(settings.save_interval_seconds)
    )
    logger.info(f"[STARTUP] {workflow.store.count()} users loaded, {len(workflow.operator_ids)} operators")

    await initialize_bot(workflow)
    logger.info("[STARTUP] Bot ready")


@app.on_event("shutdown")
async def shutdown_event():
    """Stop the bot, then write pending changes even if the bot fails to stop."""
    try:
        await shutdown_bot()
    finally:
        flush_task = getattr(app.state, "flush_task", None)
        if flush_task:
            flush_task.cancel()

        workflow = getattr(app.state, "workflow", None)
        if workflow and workflow.store.flush(force=True):
            logger.info(f"[SHUTDOWN] {workflow.store.count()} users saved")


@app.get("/health")
async def health_check():
    settings = get_settings()
    return {
        "status": "ok",
        "environment": settings.environment,
        "version": VERSION
    }


@app.get("/")
async def root():
    return {
        "service": "Flower Market API",
        "docs": "/docs"
    }


@app.get("/api/status")
async def api_status(request: Request):
    """Liveness plus the number of known users."""
    workflow = getattr(request.app.state, "workflow", None)
    return {
        "status": "ok",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "users": workflow.store.count() if workflow else 0
    }


@app.post(WEBHOOK_PATH)
async def telegram_webhook(
    request: Request,
    x_telegram_bot_api_secret_token: str = Header(None)
):
    """Accept a Telegram update and process it after responding."""
    settings = get_settings()

    if settings.telegram_webhook_secret and (
        x_telegram_bot_api_secret_token != settings.telegram_webhook_secret
    ):
        logger.warning("Webhook call with a wrong secret token")
        raise HTTPException(status_code=403, detail="Invalid secret token")

    update_data = await request.json()
    asyncio.create_task(handle_telegram_update(update_data))
    return {"ok": True}


app.include_router(contacts_router)
app.include_router(publish_router)
app.include_router(google_auth_router)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
