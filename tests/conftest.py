# tests/conftest.py
import os

# Settings are read at import time; point them at throwaway values first
os.environ["DATABASE_URL"] = "sqlite://"
os.environ.setdefault("JWT_SECRET_KEY", "test-jwt-secret")
os.environ.setdefault("ENCRYPTION_KEY", "test-encryption-key")
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.pop("VERCEL", None)

from contextlib import contextmanager

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.db.base import Base
from app.db.session import enable_sqlite_foreign_keys
from app.core.security import TokenCipher
from app.models.campaign import Campaign, CampaignStatus
from app.models.user import User
from app.services.campaign_mailer import CampaignMailer
from app.services.campaign_processor import CampaignProcessor, ProcessingConfig
from app.services.credential_service import CredentialService
from app.services.recipient_source import RecipientRecord
from app.services.throttle import RetryPolicy, SendThrottle

from tests.fakes import FakeClock, FakeRecipientSource, FakeTransportFactory, StubCredentialService

SHEET_URL = "https://docs.google.com/spreadsheets/d/1AbC-def_123/edit#gid=0"


# --- Database ---
@pytest.fixture(scope="function")
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    enable_sqlite_foreign_keys(engine)
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture(scope="function")
def session_local(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture(scope="function")
def db(session_local):
    session = session_local()
    yield session
    session.close()


@pytest.fixture(scope="function")
def session_factory(session_local):
    """Same contract as app.db.session.get_db_session, bound to the test engine"""

    @contextmanager
    def factory():
        session = session_local()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    return factory


# --- Domain objects ---
@pytest.fixture
def user(db):
    user = User(email="owner@example.com", name="Owner")
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def other_user(db):
    user = User(email="someone@example.com", name="Someone")
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def make_campaign(db, user):
    def factory(**overrides):
        values = dict(
            user_id=user.id,
            name="Spring launch",
            subject="Hello {{name}}",
            body="Hi {{name}}, your code is {{code}}",
            sender_email="owner@example.com",
            google_sheet_url=SHEET_URL,
            status=CampaignStatus.CREATED,
        )
        values.update(overrides)
        campaign = Campaign(**values)
        db.add(campaign)
        db.commit()
        db.refresh(campaign)
        return campaign

    return factory


def make_recipients(count):
    headers = ["Email", "Name", "Code"]
    return [
        RecipientRecord(
            email=f"r{i}@example.com",
            name=f"Recipient {i}",
            row_values=[f"r{i}@example.com", f"Recipient {i}", f"C{i}"],
            header_row=headers,
        )
        for i in range(1, count + 1)
    ]


# --- Batch engine ---
@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cipher():
    return TokenCipher("unit-test-key")


@pytest.fixture
def credential_service(cipher):
    return CredentialService(cipher=cipher)


@pytest.fixture
def build_processor(clock):
    """
    Build a CampaignProcessor around fakes.
    Returns (processor, recipient_source, transport_factory).
    """

    def factory(recipients=None, senders=(), transport_error=None, source_error=None,
                batch_size=3, max_attempts=2, interval=1.0):
        source = FakeRecipientSource(recipients if recipients is not None else make_recipients(5), source_error)
        transport = FakeTransportFactory(*senders, error=transport_error)
        processor = CampaignProcessor(
            credential_service=StubCredentialService(),
            recipient_source=source,
            transport_factory=transport,
            mailer=CampaignMailer(RetryPolicy(max_attempts=max_attempts, backoff_seconds=2.0, sleep=clock.sleep)),
            config=ProcessingConfig(batch_size=batch_size, send_interval_seconds=interval),
            throttle_factory=lambda seconds: SendThrottle(seconds, clock=clock.monotonic, sleep=clock.sleep),
        )
        return processor, source, transport

    return factory
