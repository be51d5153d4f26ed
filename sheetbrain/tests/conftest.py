from __future__ import annotations

import pytest
from sqlalchemy.ext.asyncio import create_async_engine

from sheetbrain.core.config import get_settings
from sheetbrain.domain.models import Base
from sheetbrain.persistence.db import build_session_factory
from sheetbrain.services.telemetry import reset_telemetry


@pytest.fixture(autouse=True)
def _reset_process_state() -> None:
    # Clear settings cache and in-process counters so tests never leak state.
    get_settings.cache_clear()
    reset_telemetry()
    yield
    get_settings.cache_clear()
    reset_telemetry()


@pytest.fixture
async def session_factory(tmp_path):
    # File-backed SQLite so separate sessions share one database within a test.
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'sheetbrain.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield build_session_factory(engine)
    await engine.dispose()
