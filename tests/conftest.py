"""
Shared fixtures: a fully migrated in-memory LuckyPay system and signed-up identities
"""

import pytest

from luckypay.config import LuckyPayConfig
from luckypay.system import LuckyPaySystem
from luckypay.storage import InMemoryStorage


def make_config(**overrides) -> LuckyPayConfig:
    settings = {
        "database_url": "memory://",
        "jwt_secret": "test-secret",
        "log_format": "text",
    }
    settings.update(overrides)
    return LuckyPayConfig(**settings)


@pytest.fixture
def config():
    return make_config()


@pytest.fixture
def system(config):
    """Migrated system on in-memory storage"""
    system = LuckyPaySystem(config=config, storage=InMemoryStorage())
    yield system
    system.close()


@pytest.fixture
def database(system):
    return system.database


@pytest.fixture
def alice(system):
    return system.identity.sign_up("+2348011111111", "password1", "Alice Okafor")


@pytest.fixture
def bob(system):
    return system.identity.sign_up("+2348022222222", "password2", "Bob Bello")
