"""
Shared pytest fixtures. Factories and fakes live in ``factories.py``.
"""

import sys
from pathlib import Path

# Add project root and this directory to Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))
sys.path.insert(0, str(Path(__file__).parent))

import pytest
import pytest_asyncio

from archlog.config import Settings
from archlog.services.store import InMemoryStore

from factories import NOW, make_repo


@pytest.fixture
def settings():
    """Settings isolated from any local .env file."""
    return Settings(_env_file=None, github_per_page=10, fetch_max_pages=3)


@pytest.fixture
def store():
    return InMemoryStore()


@pytest.fixture
def clock():
    return lambda: NOW


@pytest_asyncio.fixture
async def repo(store):
    return await store.add_repo(make_repo())
