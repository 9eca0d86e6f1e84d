"""Pytest configuration and shared fixtures."""

import pytest
import os
import logging
from datetime import datetime, timedelta

from tabletop_assistant.entity_store import InMemoryEntityStore
from tabletop_assistant.permissions import PermissionLevel, PermissionStore
from tabletop_assistant.services.entity_service import EntityService
from tabletop_assistant.services.queue import OperationQueue
from tabletop_assistant.storage import MemorySettingsStore

# Disable logging during tests to reduce noise
logging.disable(logging.CRITICAL)


@pytest.fixture(autouse=True)
def clean_env():
    """Clean environment variables before each test."""
    env_vars_to_clean = [
        "TABLETOP_COMMAND_PREFIX",
        "TABLETOP_MENTION_TOKEN",
        "TABLETOP_RESPOND_TO_MENTIONS",
        "TABLETOP_HISTORY_LIMIT",
        "TABLETOP_PERMISSION_LEVEL",
        "TABLETOP_LLM_PROVIDER",
        "TABLETOP_SETTINGS_FILE",
        "OPENAI_API_KEY",
        "ANTHROPIC_API_KEY",
        "DEFAULT_MODEL",
        "LOG_LEVEL",
    ]

    # Store original values
    original_values = {}
    for var in env_vars_to_clean:
        original_values[var] = os.environ.get(var)
        if var in os.environ:
            del os.environ[var]

    yield

    # Restore original values
    for var, value in original_values.items():
        if value is not None:
            os.environ[var] = value
        elif var in os.environ:
            del os.environ[var]


class FakeClock:
    """Manually advanced clock for expiry tests."""

    def __init__(self, start=None):
        self.now = start or datetime(2024, 1, 1, 12, 0, 0)

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += timedelta(seconds=seconds)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def settings():
    return MemorySettingsStore()


@pytest.fixture
def permissions(settings):
    """Permission store loaded at the BASIC tier."""
    return PermissionStore(settings).load()


@pytest.fixture
def full_permissions(settings):
    store = PermissionStore(settings).load()
    store.set_level(PermissionLevel.FULL)
    return store


@pytest.fixture
def entity_store():
    return InMemoryEntityStore(
        {
            "actors": [{"id": "goblin-1", "name": "Goblin Scout", "type": "npc", "level": 1}],
            "scenes": [
                {"id": "tavern", "name": "Golden Boar Tavern", "active": True},
                {"id": "forest", "name": "Dark Forest", "active": False},
            ],
            "macros": [{"id": "macro-1", "name": "Torch", "command": "light torch"}],
        }
    )


@pytest.fixture
def queue():
    return OperationQueue()


@pytest.fixture
def entity_service(entity_store, permissions, queue):
    return EntityService(entity_store, permissions, queue)
