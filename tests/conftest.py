"""
Shared test fixtures and configuration.
"""

import textwrap
from pathlib import Path

import pytest

from stackfix.adapters.mock import MockExecutor
from stackfix.core.config.loader import parse_stack_config
from stackfix.core.models.stack import StackConfig
from stackfix.core.secrets.store import MemorySecretStore


STACK_YML = textwrap.dedent("""\
    name: shop
    dev: {}
    staging:
      domain: staging.shop.example.org
      host: 10.0.0.5
    prod:
      domain: shop.example.org
      host: 203.0.113.10
      os: ubuntu
""")


@pytest.fixture
def stack_file(tmp_path: Path) -> Path:
    """A stack.yml with dev, staging and prod environments."""
    path = tmp_path / "stack.yml"
    path.write_text(STACK_YML)
    return path


@pytest.fixture
def stack_config() -> StackConfig:
    return parse_stack_config({
        "name": "shop",
        "dev": {},
        "staging": {"domain": "staging.shop.example.org", "host": "10.0.0.5"},
        "prod": {"domain": "shop.example.org", "host": "203.0.113.10", "os": "ubuntu"},
    })


@pytest.fixture
def secrets() -> MemorySecretStore:
    return MemorySecretStore({"PROD_SSH": "-----BEGIN KEY-----\nabc\n-----END KEY-----"})


@pytest.fixture
def mock_executor() -> MockExecutor:
    return MockExecutor()


@pytest.fixture
def executor_factory(mock_executor: MockExecutor):
    """Executor factory handing the same MockExecutor to every stage."""

    def factory(stage, env, secrets, root_dir=None):
        return mock_executor

    return factory
