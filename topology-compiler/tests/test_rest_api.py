import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from api.models import Base
from api.rest_api_server import app, get_db

# Local test DB, shared across the client's threads
engine = create_engine(
    "sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def override_get_db():
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


app.dependency_overrides[get_db] = override_get_db
client = TestClient(app)


@pytest.fixture(autouse=True)
def clean_db():
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


def test_health():
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


def test_create_plan_rest(config_data):
    response = client.post("/plans", json=config_data)
    assert response.status_code == 201
    data = response.json()
    assert data["id"].startswith("plan-")
    assert data["naming_prefix"] == "shop"
    assert data["rule_count"] == 7
    assert [s["name"] for s in data["plan"]["services"]] == ["db", "cache", "app", "ui"]


def test_resubmitted_topology_returns_existing_plan(config_data):
    first = client.post("/plans", json=config_data)
    second = client.post("/plans", json=config_data)

    assert first.status_code == 201
    assert second.status_code == 200
    assert first.json()["id"] == second.json()["id"]
    assert len(client.get("/plans").json()) == 1


def test_cyclic_topology_rejected(config_data):
    config_data["services"][0]["depends_on"] = ["ui"]
    response = client.post("/plans", json=config_data)

    assert response.status_code == 422
    detail = response.json()["detail"]
    assert detail["error"] == "cyclic_dependency"
    assert set(detail["cycle"]) == {"db", "app", "ui"}


def test_inconsistent_topology_rejected(config_data):
    config_data["services"].append({"name": "search", "tier": "search"})
    response = client.post("/plans", json=config_data)

    assert response.status_code == 422
    assert response.json()["detail"]["error"] == "inconsistent_topology"


def test_malformed_config_rejected(config_data):
    config_data["cidr"] = "10.0.0.1/16"
    response = client.post("/plans", json=config_data)
    assert response.status_code == 422


def test_list_plans_rest(config_data):
    client.post("/plans", json=config_data)
    config_data["naming_prefix"] = "blog"
    client.post("/plans", json=config_data)

    response = client.get("/plans")
    assert response.status_code == 200
    assert {p["naming_prefix"] for p in response.json()} == {"shop", "blog"}
    assert "plan" not in response.json()[0]


def test_get_plan_not_found():
    response = client.get("/plans/plan-nonexistent")
    assert response.status_code == 404


def test_delete_plan_rest(config_data):
    plan_id = client.post("/plans", json=config_data).json()["id"]

    response = client.delete(f"/plans/{plan_id}")
    assert response.status_code == 200
    assert "deleted" in response.json()["message"]
    assert client.get(f"/plans/{plan_id}").status_code == 404
    assert client.delete(f"/plans/{plan_id}").status_code == 404


def test_render_plan_rest(config_data):
    plan_id = client.post("/plans", json=config_data).json()["id"]

    nftables = client.get(f"/plans/{plan_id}/nftables")
    assert nftables.status_code == 200
    assert nftables.headers["content-type"].startswith("text/plain")
    assert "table inet shop_security_groups" in nftables.text

    manifest = client.get(f"/plans/{plan_id}/manifest")
    assert manifest.status_code == 200
    assert "namespace: shop.local" in manifest.text


def test_validate_plan_rest(config_data):
    plan_id = client.post("/plans", json=config_data).json()["id"]

    response = client.get(f"/plans/{plan_id}/validation")
    assert response.status_code == 200
    assert response.json()["passed"] is True
    assert response.json()["errors"] == 0


def test_diff_plans_rest(config_data):
    current = client.post("/plans", json=config_data).json()["id"]
    config_data["services"][2]["replicas"] = 3
    desired = client.post("/plans", json=config_data).json()["id"]

    response = client.get(f"/plans/{current}/diff/{desired}")
    assert response.status_code == 200
    data = response.json()
    assert data["from"] == current
    assert data["to"] == desired
    assert "+  replicas: 3" in data["diff"]

    assert client.get(f"/plans/{current}/diff/plan-missing").status_code == 404


def test_metrics_endpoint():
    client.get("/health")
    response = client.get("/metrics")
    assert response.status_code == 200
    assert "topology_api_requests_total" in response.text
