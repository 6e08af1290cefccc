import pytest
from prometheus_client import REGISTRY
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from api import shared_api_logic as services
from api.models import Base
from topology.config import TopologyConfig
from topology.errors import CyclicDependency

# Setup in-memory database
engine = create_engine(
    "sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db():
    Base.metadata.create_all(bind=engine)
    database = TestingSessionLocal()
    try:
        yield database
    finally:
        database.close()
        Base.metadata.drop_all(bind=engine)


def test_create_plan(db, config):
    record, created = services.create_plan_logic(db, config)

    assert created
    assert record.id.startswith("plan-")
    assert record.naming_prefix == "shop"
    assert record.cidr == "10.0.0.0/16"
    assert (record.subnet_count, record.rule_count, record.service_count) == (2, 7, 4)
    assert record.status == "compiled"
    assert record.plan["namespace"] == "shop.local"
    assert REGISTRY.get_sample_value("topology_plans_stored") == 1


def test_create_plan_is_idempotent(db, config):
    first, created = services.create_plan_logic(db, config)
    second, created_again = services.create_plan_logic(db, config)

    assert created and not created_again
    assert first.id == second.id
    assert len(services.list_plans(db)) == 1


def test_invalid_topology_not_stored(db, config_data):
    config_data["services"][0]["depends_on"] = ["ui"]
    with pytest.raises(CyclicDependency):
        services.create_plan_logic(db, TopologyConfig.model_validate(config_data))
    assert services.list_plans(db) == []


def test_get_and_delete(db, config):
    record, _ = services.create_plan_logic(db, config)

    assert services.get_plan_logic(db, record.id) is record
    assert services.delete_plan_logic(db, record.id) is not None
    assert services.get_plan_logic(db, record.id) is None
    assert services.delete_plan_logic(db, record.id) is None
    assert REGISTRY.get_sample_value("topology_plans_stored") == 0


def test_stored_plan_reloads(db, config):
    record, _ = services.create_plan_logic(db, config)
    plan = services.load_plan(record)

    assert plan.fingerprint() == record.fingerprint
    assert plan.to_dict() == record.plan


def test_renderers(db, config):
    record, _ = services.create_plan_logic(db, config)

    assert "table inet shop_security_groups" in services.render_nftables_logic(record)
    assert record.fingerprint in services.render_manifest_logic(record)
    assert services.validate_plan_logic(record).passed


def test_diff_plans(db, config_data):
    current, _ = services.create_plan_logic(db, TopologyConfig.model_validate(config_data))
    config_data["cidr"] = "10.1.0.0/16"
    desired, _ = services.create_plan_logic(db, TopologyConfig.model_validate(config_data))

    diff = services.diff_plans_logic(current, desired)
    assert "-vpc_cidr: 10.0.0.0/16" in diff
    assert "+vpc_cidr: 10.1.0.0/16" in diff
    assert services.diff_plans_logic(current, current) == []


def test_concurrent_insert_returns_existing(db, config, monkeypatch):
    stored, _ = services.create_plan_logic(db, config)
    real_lookup = services._get_by_fingerprint
    calls = []

    def racing_lookup(session, fingerprint):
        # First lookup misses, as if another request inserted right after it
        calls.append(fingerprint)
        return None if len(calls) == 1 else real_lookup(session, fingerprint)

    monkeypatch.setattr(services, "_get_by_fingerprint", racing_lookup)
    record, created = services.create_plan_logic(db, config)

    assert not created
    assert record.id == stored.id
    assert len(calls) == 2
    assert len(services.list_plans(db)) == 1


def test_reading_stored_plans_does_not_count_compilations(db, config):
    record, _ = services.create_plan_logic(db, config)
    compiled = REGISTRY.get_sample_value("topology_plans_compiled_total")

    services.render_nftables_logic(record)
    services.render_manifest_logic(record)
    services.validate_plan_logic(record)
    services.diff_plans_logic(record, record)

    assert REGISTRY.get_sample_value("topology_plans_compiled_total") == compiled
