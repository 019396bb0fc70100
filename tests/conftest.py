"""
Pytest configuration and shared fixtures.
"""

import asyncio
from collections.abc import AsyncGenerator, Awaitable, Callable, Generator
from typing import Any

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession

from queuectl.config import Settings, get_settings
from queuectl.constants import JobState
from queuectl.core.queue import JobQueue
from queuectl.db import close_db, get_session_context, init_db
from queuectl.types.job import JobRecord


@pytest.fixture
def database_url(tmp_path) -> str:
    """A fresh SQLite database file per test."""
    return f"sqlite+aiosqlite:///{tmp_path / 'queue.db'}"


@pytest.fixture(autouse=True)
def test_settings(
    monkeypatch: pytest.MonkeyPatch,
    database_url: str,
    tmp_path,
) -> Generator[Settings]:
    """Point the settings at the test database and shorten intervals."""
    monkeypatch.setenv("QUEUECTL_DATABASE_URL", database_url)
    monkeypatch.setenv("QUEUECTL_WORKER_POLL_INTERVAL_SECONDS", "0.05")
    monkeypatch.setenv("QUEUECTL_LOG_FORMAT", "console")
    monkeypatch.setenv("QUEUECTL_WORKER_PID_FILE", str(tmp_path / "workers.pid"))
    get_settings.cache_clear()

    yield get_settings()

    get_settings.cache_clear()


@pytest_asyncio.fixture
async def db(test_settings: Settings) -> AsyncGenerator[None]:
    """Initialize the schema and connection for a test."""
    await init_db()
    yield
    await close_db()


@pytest_asyncio.fixture
async def queue(db) -> JobQueue:
    """Create a queue bound to the test database."""
    return JobQueue()


@pytest.fixture
def sample_payload() -> dict[str, Any]:
    """Create a sample job payload."""
    return {"command": "echo hello", "max_retries": 3}


WaitForState = Callable[[str, JobState], Awaitable[JobRecord]]


@pytest.fixture
def wait_for_state(queue: JobQueue) -> WaitForState:
    """Poll the store until a job reaches a state, failing after a deadline."""

    async def _wait(job_id: str, state: JobState, timeout: float = 5.0) -> JobRecord:
        deadline = asyncio.get_running_loop().time() + timeout
        while True:
            job = await queue.get_job(job_id)
            if job is not None and job.state == state:
                return job
            if asyncio.get_running_loop().time() > deadline:
                raise AssertionError(f"Job {job_id} did not reach {state}: {job}")
            await asyncio.sleep(0.05)

    return _wait


@pytest_asyncio.fixture
async def db_session(db) -> AsyncGenerator[AsyncSession]:
    """Create a session that commits when the test finishes."""
    async with get_session_context() as session:
        yield session
