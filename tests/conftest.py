import pytest
from fastapi.testclient import TestClient

from aptitude.core.config import Settings
from aptitude.main import Platform
from fake_backend import Store, create_app

BASE = "http://testserver/api"

@pytest.fixture
def settings():
    return Settings(API_BASE_URL=BASE, ENVIRONMENT="testing", RETRY_WAIT_SECONDS=0, TICK_INTERVAL_SECONDS=0.001)

@pytest.fixture
def store():
    return Store()

@pytest.fixture
def http(store):
    with TestClient(create_app(store), base_url=BASE) as client:
        yield client

@pytest.fixture
def platform(settings, http):
    return Platform(settings, client=http)

@pytest.fixture
def student(platform):
    platform.auth.login("student@example.com", "secret")
    return platform

@pytest.fixture
def admin(settings, http):
    p = Platform(settings, client=http)
    p.auth.login("admin@example.com", "admin123")
    return p

@pytest.fixture
def session(student):
    s = student.test_session()
    yield s
    s.close()
