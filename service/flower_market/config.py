from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    # Telegram
    telegram_bot_token: str
    telegram_webhook_secret: str = ""  # Optional: for webhook verification
    channel_id: str  # Publication channel, e.g. "@flower_market"
    admin_chat_id: str  # Operator chat that receives moderation requests

    # Comma separated Telegram ids allowed to approve/reject.
    # The admin chat id is always an operator.
    operator_ids: str = ""

    # Google OAuth (contacts import)
    google_client_id: str = ""
    google_client_secret: str = ""

    # Public URL of this service (OAuth redirect, web app links)
    base_url: str = "http://localhost:8000"

    # Storage
    data_file: str = "data/users.json"
    save_interval_seconds: int = 30

    # Moderation
    min_contacts: int = 3

    # Environment
    environment: str = "development"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"

    @property
    def operator_set(self) -> frozenset[str]:
        ids = {part.strip() for part in self.operator_ids.split(",") if part.strip()}
        ids.add(self.admin_chat_id.strip())
        return frozenset(ids)

    @property
    def google_redirect_uri(self) -> str:
        return f"{self.base_url.rstrip('/')}/auth/google/callback"


@lru_cache()
def get_settings() -> Settings:
    return Settings()
