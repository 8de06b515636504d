import pytest
import pytest_asyncio

from database import Database
from rooms import RoomRegistry


@pytest_asyncio.fixture
async def db(tmp_path):
    database = Database(str(tmp_path / "test.db"), timeout=5.0)
    await database.init_db()
    return database


@pytest.fixture
def registry():
    return RoomRegistry()
