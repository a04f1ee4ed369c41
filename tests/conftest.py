import pytest
import pytest_asyncio

from deliveryline.database import Database
from deliveryline.repository import CallRepository
from deliveryline.session import CallSession
from deliveryline.state_machine import StateMachine

MEMORY_DB = "sqlite+aiosqlite:///:memory:"


@pytest.fixture
def session():
    return CallSession(call_id="CA_test", caller_number="+15125551234")


@pytest.fixture
def machine():
    return StateMachine()


@pytest_asyncio.fixture
async def database():
    db = Database(MEMORY_DB)
    await db.create_all()
    yield db
    await db.close()


@pytest_asyncio.fixture
async def repository(database):
    return CallRepository(database)
