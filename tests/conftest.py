import pytest
from fastapi.testclient import TestClient
from loguru import logger

from locks import KeyLockManager
from main import create_app
from repo_days import DayRepo
from repo_interactions import InteractionRepo
from service_days import DayService
from service_interactions import InteractionService
from settings import Settings


class RecordingPublisher:
    """Publisher fake: remembers what would have been committed."""

    def __init__(self):
        self.calls = []

    def publish(self, paths, message):
        self.calls.append(([str(p) for p in paths], message))

    async def drain(self):
        return None


@pytest.fixture
def cfg(tmp_path):
    return Settings(repo_dir=tmp_path, admin_token="", git_publish=False, immich_url="", immich_album_id="")


@pytest.fixture
def publisher():
    return RecordingPublisher()


@pytest.fixture
def interaction_service(cfg, publisher):
    return InteractionService(InteractionRepo(cfg.interactions_dir), KeyLockManager(), publisher)


@pytest.fixture
def day_service(cfg, publisher):
    return DayService(DayRepo(cfg.days_dir), KeyLockManager(), publisher)


@pytest.fixture
def client(cfg, publisher):
    app = create_app(cfg, publisher=publisher)
    with TestClient(app) as c:
        yield c


@pytest.fixture
def log_messages():
    """Messages loguru emits during the test."""

    messages = []
    sink_id = logger.add(lambda m: messages.append(str(m)), level="DEBUG")
    yield messages
    logger.remove(sink_id)
