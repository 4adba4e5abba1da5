"""Shared fixtures: a fresh SQLite catalog per test."""

import itertools

import pytest
import pytest_asyncio

from trendi_tools.config import SearchConfig
from trendi_tools.search.aggregator import SearchAggregator
from trendi_tools.storage.bookmark_repo import BookmarkRepository
from trendi_tools.storage.chat_repo import ChatRepository
from trendi_tools.storage.database import Database
from trendi_tools.storage.models import ToolRecord
from trendi_tools.storage.tool_repo import ToolRepository

SITE_URL = "https://trendi.test"


@pytest_asyncio.fixture
async def db(tmp_path):
    database = Database(str(tmp_path / "catalog.db"))
    await database.initialize()
    yield database
    await database.close()


@pytest.fixture
def tool_repo(db):
    return ToolRepository(db)


@pytest.fixture
def bookmark_repo(db):
    return BookmarkRepository(db)


@pytest.fixture
def chat_repo(db):
    return ChatRepository(db)


@pytest.fixture
def search_config():
    return SearchConfig(site_url=SITE_URL, field_fetch_cap=20, default_page_size=10)


@pytest.fixture
def aggregator(tool_repo, bookmark_repo, search_config):
    return SearchAggregator(tool_repo, bookmark_repo, search_config)


@pytest.fixture
def make_tool(tool_repo):
    """Factory that inserts a tool and returns it with its id set."""
    counter = itertools.count(1)

    async def _make(name: str, **fields) -> ToolRecord:
        fields.setdefault("url", f"https://tool-{next(counter)}.example.com")
        tool = ToolRecord(name=name, **fields)
        tool.id = await tool_repo.create(tool)
        return tool

    return _make
