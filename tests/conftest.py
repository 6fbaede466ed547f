import pytest
from fastapi.testclient import TestClient

from helpers import ADMIN_HEADERS, FakeGateway, RecordingMailer, make_settings
from shopfront.server import create_app


@pytest.fixture()
def settings():
    return make_settings()


@pytest.fixture()
def gateway():
    return FakeGateway()


@pytest.fixture()
def mailer():
    return RecordingMailer()


@pytest.fixture()
def client(settings, gateway, mailer):
    """Runs the app's lifespan, so each test gets a fresh in-memory database."""
    app = create_app(settings, gateway=gateway, mailer=mailer)
    with TestClient(app) as c:
        yield c


@pytest.fixture()
def admin_headers():
    return dict(ADMIN_HEADERS)
