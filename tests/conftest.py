"""
Shared test configuration and fixtures for the property analyzer.
"""

import base64
from types import SimpleNamespace

import anthropic
import pytest
from fastapi.testclient import TestClient

from property_analyzer.main import app

ENV_VARS = (
    "ANTHROPIC_API_KEY",
    "CLAUDE_MODEL",
    "CLAUDE_MAX_TOKENS",
    "FLOOR_PLAN_TIMEOUT_SECONDS",
    "BASIC_AUTH_USERNAME",
    "BASIC_AUTH_PASSWORD",
)


def text_message(text):
    """A Messages API reply whose only block is text."""
    return SimpleNamespace(content=[SimpleNamespace(type="text", text=text)])


def basic_header(user, password):
    token = base64.b64encode(f"{user}:{password}".encode()).decode()
    return {"Authorization": f"Basic {token}"}


class FakeMessages:
    def __init__(self, reply):
        self.reply = reply
        self.calls = []

    def create(self, **kwargs):
        self.calls.append(kwargs)
        if isinstance(self.reply, Exception):
            raise self.reply
        return self.reply


class FakeAnthropic:
    def __init__(self, reply, **options):
        self.options = options
        self.messages = FakeMessages(reply)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    """Start every test unconfigured, whatever a local .env file provides."""
    for var in ENV_VARS:
        monkeypatch.delenv(var, raising=False)


@pytest.fixture
def client():
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def fake_analyser(monkeypatch):
    """
    Configures an API key and replaces the Anthropic client with a fake.
    Call the returned function with the reply (a message or an exception); it returns
    the list of clients created, so tests can inspect what was sent.
    """
    monkeypatch.setenv("ANTHROPIC_API_KEY", "test-key")
    created = []

    def install(reply):
        if isinstance(reply, str):
            reply = text_message(reply)

        def factory(**options):
            fake = FakeAnthropic(reply, **options)
            created.append(fake)
            return fake

        monkeypatch.setattr(anthropic, "Anthropic", factory)
        return created

    return install
