"""Shared pytest configuration and fixtures."""

from collections.abc import Callable, Generator
from typing import Any
from unittest.mock import patch

import pytest

from src.config import Settings, get_settings
from src.memory.store import IncidentStore, get_connection, init_schema
from tests.fakes import ScriptedChatModel, debate_responder


def pytest_addoption(parser: pytest.Parser) -> None:
    parser.addoption(
        "--run-e2e",
        action="store_true",
        default=False,
        help="Run e2e tests that hit a real LLM provider (requires .env with valid credentials)",
    )


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    if config.getoption("--run-e2e"):
        return
    skip_e2e = pytest.mark.skip(reason="Need --run-e2e flag to run")
    for item in items:
        if "e2e" in item.keywords:
            item.add_marker(skip_e2e)


@pytest.fixture(autouse=True)
def _no_dotenv(request: pytest.FixtureRequest) -> Generator[None]:
    """Block .env loading so tests that forget mock_settings fail locally, not just in CI.

    Sets Settings.model_config['env_file'] = None before each test (except e2e).
    Tests that use mock_settings bypass Settings() entirely, so this is transparent.
    """
    if "e2e" in request.keywords:
        yield
        return

    get_settings.cache_clear()
    original = Settings.model_config.get("env_file")
    Settings.model_config["env_file"] = None

    try:
        yield
    finally:
        Settings.model_config["env_file"] = original
        get_settings.cache_clear()


@pytest.fixture
def mock_settings() -> Generator[Any]:
    """Provide fake settings so tests don't need a .env file.

    Patches get_settings at every import site so cached references are overridden.
    """
    fake_settings = type(
        "FakeSettings",
        (),
        {
            "llm_provider": "openai",
            "openai_api_key": "sk-proj-test-fake",
            "openai_model": "gpt-4o-mini",
            "openai_base_url": "",
            "anthropic_api_key": "",
            "anthropic_model": "claude-3-5-haiku-latest",
            "llm_temperature": 0.2,
            "active_model": "gpt-4o-mini",
            "perspective_timeout_seconds": 5.0,
            # Incident store
            "memory_db_path": ":memory:",
            # Conversation history
            "conversation_history_dir": "",
            "default_context": "default",
        },
    )()
    with (
        patch("src.config.get_settings", return_value=fake_settings),
        patch("src.memory.store.get_settings", return_value=fake_settings),
        patch("src.debate.coordinator.get_settings", return_value=fake_settings),
        patch("src.api.main.get_settings", return_value=fake_settings),
        patch("src.cli.get_settings", return_value=fake_settings),
    ):
        yield fake_settings


@pytest.fixture
def store() -> Generator[IncidentStore]:
    """An incident store over a fresh in-memory database."""
    conn = get_connection(":memory:")
    init_schema(conn)
    incident_store = IncidentStore(conn, context="test")
    try:
        yield incident_store
    finally:
        incident_store.close()


@pytest.fixture
def make_llm() -> Callable[..., ScriptedChatModel]:
    """Factory for scripted chat models.

    make_llm(delay=0.0, fail_stream_after=None, **debate_responder_kwargs)
    """

    def _make(delay: float = 0.0, fail_stream_after: int | None = None, **kwargs: Any) -> ScriptedChatModel:
        return ScriptedChatModel(debate_responder(**kwargs), delay=delay, fail_stream_after=fail_stream_after)

    return _make
