import pytest
from httpx import ASGITransport, AsyncClient

from backend.main import app
from backend.srs.session import SessionEngine


@pytest.mark.asyncio
async def test_health_check(engine: SessionEngine) -> None:
    app.state.engine = engine
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        response = await client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}
