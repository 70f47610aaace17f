import pytest
import pytest_asyncio

from aibot.core.database import create_engine, init_db
from aibot.core.exceptions import StorageError
from aibot.services.storage import InMemoryStorage, SqlStorage, Storage


class BrokenStorage(Storage):
    """Every call fails like an unreachable database."""

    async def _fail(self, *args, **kwargs):
        raise StorageError("database is unavailable")

    get_user_settings = _fail
    save_user_settings = _fail
    count_users_by_style = _fail
    count_users = _fail
    append_message = _fail
    get_messages = _fail
    delete_messages = _fail
    trim_messages = _fail
    count_messages_by_user = _fail

    async def close(self):
        pass


@pytest_asyncio.fixture
async def sql_storage():
    engine = create_engine("sqlite+aiosqlite://")
    await init_db(engine)
    storage = SqlStorage(engine)
    yield storage
    await storage.close()


@pytest_asyncio.fixture(params=["memory", "sql"])
async def storage(request):
    """Both storage backends; store tests must pass on each."""
    if request.param == "memory":
        yield InMemoryStorage()
        return

    engine = create_engine("sqlite+aiosqlite://")
    await init_db(engine)
    sql = SqlStorage(engine)
    yield sql
    await sql.close()


@pytest.fixture
def broken_storage():
    return BrokenStorage()
