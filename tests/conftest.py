"""
Pytest configuration and fixtures for the PDF tools backend tests.
"""

import pytest
import pytest_asyncio
from fastapi.testclient import TestClient

from app.config import Settings
from app.jobs.in_process_queue import InProcessQueue
from app.main import create_app
from app.processors.registry import ProcessorRegistry


def pytest_configure(config):
    """Add custom markers"""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "api: API tests")


@pytest.fixture
def settings(tmp_path):
    """Settings rooted in the test's tmp dir, with the sweeper effectively idle."""
    return Settings(
        tmp_dir=str(tmp_path / "tmp"),
        job_root=str(tmp_path / "jobs"),
        cleanup_interval_seconds=3600,
        log_level="WARNING",
    )


@pytest_asyncio.fixture
async def make_queue(settings):
    """Factory for queues over a custom processor table; stops every queue it made."""
    queues = []

    def _make(processors, **overrides):
        queue = InProcessQueue(
            settings=settings.model_copy(update=overrides),
            registry=ProcessorRegistry(processors),
        )
        queues.append(queue)
        return queue

    yield _make

    for queue in queues:
        await queue.stop()


@pytest.fixture
def client(settings):
    """Test client with the lifespan running, so the job queue is live."""
    app = create_app(settings=settings)
    with TestClient(app) as test_client:
        yield test_client
