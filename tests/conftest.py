import os

os.environ.setdefault("KQ_ENVIRONMENT", "test")

import pytest  # noqa: E402

from kartqueue.enterprise.config.settings import get_settings  # noqa: E402
from kartqueue.persistence import InMemoryDocumentStore  # noqa: E402
from kartqueue.services import DispatchPlatform, RecordingPushGateway  # noqa: E402


FLOOR = {
    "cases": [
        {"id": "case-drill", "name": "Cordless Drill Kit", "last_location": "A1"},
        {"id": "case-meter", "name": "Digital Multimeter", "last_location": "B3"},
    ],
    "karts": [
        {"id": "kart-a2", "current_location": "A2"},
        {"id": "kart-b2", "current_location": "B2"},
    ],
    "users": [
        {"user_id": "alice", "device_token": "device-alice", "pickup_location": "C1"},
        {"user_id": "bob", "device_token": "device-bob", "pickup_location": "A3"},
        {"user_id": "carol", "pickup_location": "B1"},
    ],
}


@pytest.fixture(autouse=True)
def _fresh_settings():
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def floor() -> dict:
    return FLOOR


@pytest.fixture
def store() -> InMemoryDocumentStore:
    return InMemoryDocumentStore()


@pytest.fixture
def push() -> RecordingPushGateway:
    return RecordingPushGateway()


@pytest.fixture
def platform(store, push) -> DispatchPlatform:
    return DispatchPlatform(store, push, get_settings())
