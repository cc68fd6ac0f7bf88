"""
Integration Test Fixtures
"""

import pytest
from httpx import ASGITransport, AsyncClient

from notify_outbox.api.outbox.main import create_app
from notify_outbox.core.outbox.service import reset_outbox_service, set_outbox_service


@pytest.fixture
def app(outbox):
    """API app wired to the in-memory outbox from the shared fixtures."""
    set_outbox_service(outbox)
    yield create_app()
    reset_outbox_service()


@pytest.fixture
async def client(app):
    """Create async test client."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
