import pytest
from fastapi.testclient import TestClient

from auth import TokenService
from config import Settings
from database import MemoryStore
from main import create_app

SECRET = "test-secret"

SERVICES = [
    {
        "service_id": "01",
        "title": "Oil Change",
        "img": "https://img.cardoctor.io/oil.jpg",
        "price": 20.0,
        "description": "Full synthetic oil change",
        "facility": [{"name": "Filter", "details": "New filter included"}],
    },
    {
        "service_id": "02",
        "title": "Brake Repair",
        "img": "https://img.cardoctor.io/brakes.jpg",
        "price": 150.5,
        "description": "Pads and rotors",
    },
]


@pytest.fixture
def settings():
    return Settings(secret_key=SECRET, store_backend="memory", log_level="WARNING")


@pytest.fixture
def store():
    return MemoryStore(seed={"services": SERVICES})


@pytest.fixture
def client(store, settings):
    with TestClient(create_app(store=store, settings=settings)) as test_client:
        yield test_client


@pytest.fixture
def login(client):
    def _login(email):
        response = client.post("/jwt", json={"email": email})
        assert response.status_code == 200
        return response

    return _login


@pytest.fixture
def tokens():
    return TokenService(SECRET)
