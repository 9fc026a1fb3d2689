"""
Pytest configuration and fixtures for Ghii tests.
"""

import asyncio
import sys
from pathlib import Path

import pytest
from pydantic import BaseModel, Field

# Add the repository root to path for imports
# This allows `from ghii import ...` to work
repo_root = Path(__file__).parent.parent
if str(repo_root) not in sys.path:
    sys.path.insert(0, str(repo_root))

from ghii import ConfigSchema, GhiiSettings, LoaderPolicy  # noqa: E402


class FooConfig(BaseModel):
    prop: str


class ServerConfig(BaseModel):
    host: str = "localhost"
    port: int = Field(8080, ge=1, le=65535)


def _delayed_loader(value, delay: float):
    async def load():
        load.calls += 1
        await asyncio.sleep(delay)
        return value

    load.calls = 0
    return load


def _failing_loader(message: str = "boom"):
    async def load():
        load.calls += 1
        raise RuntimeError(message)

    load.calls = 0
    return load


@pytest.fixture
def delayed_loader():
    """Factory: loader resolving to `value` after `delay` seconds; counts its calls."""
    return _delayed_loader


@pytest.fixture
def failing_loader():
    """Factory: loader raising RuntimeError; counts its calls."""
    return _failing_loader


@pytest.fixture
def settings():
    """Engine settings independent of the environment."""
    return GhiiSettings(wait_timeout=30.0, loader_policy=LoaderPolicy.STRICT)


@pytest.fixture
def foo_schema():
    """Single required section `foo` with a default."""
    return ConfigSchema().section("foo", FooConfig, defaults={"prop": "ciao"})


@pytest.fixture
def server_schema():
    """Section `server` whose defaults come from the model."""
    return ConfigSchema().section("server", ServerConfig)


@pytest.fixture
def free_schema():
    """Optional integer sections a, b and c."""
    return (
        ConfigSchema()
        .section("a", int, required=False)
        .section("b", int, required=False)
        .section("c", int, required=False)
    )
