# tests/api/conftest.py
import pytest
from starlette.testclient import TestClient

from app.main import app
from app.core.jwt_auth import JWTAuth
from app.db.session import get_db
from app.services import (
    get_campaign_processor,
    get_campaign_runner,
    get_credential_service,
    get_recipient_source,
)
from app.services.continuation import CampaignRunner, RunnerConfig
from tests.conftest import make_recipients
from tests.fakes import FakeRecipientSource


@pytest.fixture
def api_recipients():
    return make_recipients(5)


@pytest.fixture
def sheet_source(api_recipients):
    return FakeRecipientSource(api_recipients)


@pytest.fixture
def engine_parts(build_processor, api_recipients, session_factory, clock):
    processor, source, transport = build_processor(recipients=api_recipients, batch_size=3)
    runner = CampaignRunner(
        processor,
        RunnerConfig(batch_size=3, batch_pause_ms=0, auto_continue=False),
        session_factory=session_factory,
        clock=clock.monotonic,
        sleep=clock.sleep,
    )
    return processor, runner, source, transport


@pytest.fixture(scope="function")
def client(db, credential_service, sheet_source, engine_parts):
    """
    TestClient bound to the test database, with Google-facing services
    replaced by fakes.
    """
    processor, runner, _, _ = engine_parts

    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_credential_service] = lambda: credential_service
    app.dependency_overrides[get_recipient_source] = lambda: sheet_source
    app.dependency_overrides[get_campaign_processor] = lambda: processor
    app.dependency_overrides[get_campaign_runner] = lambda: runner

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


def bearer(user):
    return {"Authorization": f"Bearer {JWTAuth.create_token(user.id, user.email)}"}


@pytest.fixture
def auth_headers(user):
    return bearer(user)


@pytest.fixture
def other_headers(other_user):
    return bearer(other_user)


@pytest.fixture
def connected_gmail(db, user, credential_service):
    return credential_service.save(db, user.id, "owner@gmail.com", "access-1", "refresh-1")
