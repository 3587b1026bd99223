import pytest

from flower_market.config import get_settings
from flower_market.errors import NotificationDeliveryError
from flower_market.services.moderation import ModerationWorkflow
from flower_market.services.user_store import UserStore

ADMIN_CHAT_ID = "100"
OPERATOR_ID = "admin1"


@pytest.fixture(autouse=True)
def settings_env(monkeypatch, tmp_path):
    """Minimal environment for Settings; cache cleared around each test."""
    monkeypatch.setenv("TELEGRAM_BOT_TOKEN", "test-token")
    monkeypatch.setenv("CHANNEL_ID", "@flowers")
    monkeypatch.setenv("ADMIN_CHAT_ID", ADMIN_CHAT_ID)
    monkeypatch.setenv("OPERATOR_IDS", OPERATOR_ID)
    monkeypatch.setenv("BASE_URL", "https://market.example")
    monkeypatch.setenv("DATA_FILE", str(tmp_path / "users.json"))
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


class FakeSender:
    """Records notifications instead of sending them."""

    def __init__(self):
        self.sent: list[tuple[str, object, dict]] = []
        self.fail = False

    async def notify(self, channel_id, kind, payload):
        if self.fail:
            raise NotificationDeliveryError(channel_id, "network down")
        self.sent.append((channel_id, kind, payload))


def make_contacts(count: int, prefix: str = "Contact") -> list[dict]:
    return [
        {"name": f"{prefix} {i}", "phones": [f"+7900000{i:04d}"]}
        for i in range(count)
    ]


@pytest.fixture
def sender():
    return FakeSender()


@pytest.fixture
def store():
    return UserStore()


@pytest.fixture
def workflow(store, sender):
    return ModerationWorkflow(
        store=store,
        sender=sender,
        operator_ids={OPERATOR_ID, ADMIN_CHAT_ID},
        admin_chat_id=ADMIN_CHAT_ID,
        min_contacts=3,
        base_url="https://market.example",
        publication_channel="@flowers",
    )
