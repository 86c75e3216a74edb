import asyncio
from datetime import datetime, timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest

from infrastructure.database.record_store import FlushPolicy, RecordStore
from infrastructure.database.session import Database


class SteppingClock:
    """
    Часы и sleep для таймеров: sleep мгновенно сдвигает время вперёд.

    После max_steps вызовов sleep засыпает навсегда, чтобы таймер не крутился бесконечно.
    """

    def __init__(self, start: datetime, max_steps: int = 1):
        self.now = start
        self.max_steps = max_steps
        self.steps = 0

    def __call__(self) -> datetime:
        return self.now

    async def sleep(self, seconds: float) -> None:
        if self.steps >= self.max_steps:
            await asyncio.Event().wait()
        self.steps += 1
        self.now += timedelta(seconds=seconds)


@pytest.fixture
def stepping_clock():
    return SteppingClock


@pytest.fixture
def db():
    database = Database("sqlite:///:memory:")
    database.init_schema()
    yield database
    database.dispose()


@pytest.fixture
def store(db):
    record_store = RecordStore(db, FlushPolicy(window_seconds=0))
    yield record_store
    record_store.session.close()


@pytest.fixture
def repo(store):
    return store.repo


@pytest.fixture
def telegram():
    client = MagicMock()
    client.send = AsyncMock(return_value=True)
    client.send_chat_action = AsyncMock(return_value=True)
    client.edit_message_text = AsyncMock(return_value=True)
    client.answer_callback_query = AsyncMock(return_value=True)
    client.get_updates = AsyncMock(return_value=[])
    client.close = AsyncMock()
    return client


@pytest.fixture
def llm():
    client = MagicMock()
    client.generate_tip = AsyncMock(return_value="Хвалите щенка сразу после успеха.")
    client.answer_question = AsyncMock(return_value="Дайте щенку игрушку вместо руки.")
    return client
