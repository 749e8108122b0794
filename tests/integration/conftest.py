import pytest
from fastapi.testclient import TestClient
from typing import Generator

from rfq_messaging.main import app
from shared.settings import settings

# The full application stack runs in-process on the in-memory object store, so
# these tests need no database. Each test gets fresh buckets.

@pytest.fixture(scope="function")
def http_client(monkeypatch) -> Generator[TestClient, None, None]:
    monkeypatch.setattr(settings, "STORE_BACKEND", "memory")
    monkeypatch.setattr(settings, "NOTIFY_BACKEND", "log")
    app.dependency_overrides.clear()
    # Entering the client runs the lifespan, which wires services onto app.state
    with TestClient(app) as client:
        yield client


@pytest.fixture
def manufacturer_id(http_client: TestClient) -> str:
    response = http_client.post(
        "/v1/manufacturers",
        json={
            "id": "mfg_ABC12345",
            "tenant_id": "t1",
            "name": "Acme Machining",
            "location": {"city": "Dayton", "state": "OH"},
            "categories": ["machining"],
            "contact_email": "sales@acme.com",
        },
        headers={"Authorization": "Bearer test-token"},
    )
    assert response.status_code == 201
    return response.json()["id"]
