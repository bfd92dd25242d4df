"""Integration test fixtures: the API bound to the per-test database."""

from collections.abc import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tutor_payroll.api.app import create_app
from tutor_payroll.api.dependencies import get_db_session
from tutor_payroll.models import AuditLog


@pytest_asyncio.fixture
async def client(session: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """Create async HTTP client whose requests share the test session."""
    app = create_app()

    async def _override_db_session() -> AsyncGenerator[AsyncSession, None]:
        yield session

    app.dependency_overrides[get_db_session] = _override_db_session
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()


@pytest.fixture
def admin_headers(admin) -> dict[str, str]:
    return {"X-Admin-ID": str(admin.id), "X-Request-ID": "req-test-1"}


@pytest.fixture
def audit_actions(session: AsyncSession):
    """Audit actions in insertion order, optionally for one entity."""

    async def _actions(entity_id=None) -> list[str]:
        query = select(AuditLog).order_by(AuditLog.created_at, AuditLog.id)
        if entity_id is not None:
            query = query.where(AuditLog.entity_id == str(entity_id))
        result = await session.execute(query)
        return [entry.action for entry in result.scalars().all()]

    return _actions
