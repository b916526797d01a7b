"""
Shared fixtures.

Environment is set before chatdesk is imported so the engine binds to an
in-memory SQLite database and log files are not written.
"""
import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["JWT_SECRET_KEY"] = "test-jwt-secret-key-for-chatdesk-0123456789"
os.environ["WIDGET_TOKEN_SECRET"] = "test-widget-secret-for-chatdesk-0123456789"
os.environ["LOG_TO_FILES"] = "false"
os.environ["WIDGET_TOKEN_REQUIRED"] = "true"
os.environ["OPENAI_API_KEY"] = ""

import pytest
from fastapi.testclient import TestClient

from chatdesk import services
from chatdesk.core import config
from chatdesk.db.base import Base
from chatdesk.db.session import SessionLocal, engine
from chatdesk.services.agent_selector import RecentActivitySelector
from chatdesk.services.ai_gate import AIResponseGate
from chatdesk.services.handoff_service import HandoffCoordinator
from chatdesk.services.visitor_service import VisitorService
from chatdesk.ws.notifier import RecordingNotifier

from helpers import ScriptedAIEngine


@pytest.fixture
def db():
    """Fresh schema per test"""
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def notifier():
    recording = RecordingNotifier()
    previous = services.get_notifier()
    services.set_notifier(recording)
    yield recording
    services.set_notifier(previous)


@pytest.fixture
def ai_engine():
    engine_ = ScriptedAIEngine(reply="Our store opens at 9am.", tokens=42)
    previous = services.get_ai_engine()
    services.set_ai_engine(engine_)
    yield engine_
    services.set_ai_engine(previous)


@pytest.fixture
def visitor_service(notifier):
    return VisitorService(notifier)


@pytest.fixture
def coordinator(notifier):
    return HandoffCoordinator(notifier, RecentActivitySelector())


@pytest.fixture
def gate(ai_engine, coordinator, notifier):
    return AIResponseGate(ai_engine, coordinator, notifier)


@pytest.fixture
def token_required(monkeypatch):
    monkeypatch.setattr(config, "WIDGET_TOKEN_REQUIRED", True)


@pytest.fixture
def token_optional(monkeypatch):
    monkeypatch.setattr(config, "WIDGET_TOKEN_REQUIRED", False)


@pytest.fixture
def client(db, notifier, ai_engine):
    from chatdesk.main import app
    with TestClient(app) as test_client:
        yield test_client
