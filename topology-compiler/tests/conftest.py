import os
import sys

import pytest

# Keep the API's default database out of /tmp during tests.
# Set these BEFORE importing any project modules
os.environ["DB_DIR"] = "."
os.environ["DB_PATH"] = "./plans_test.db"

# Add the topology-compiler directory to sys.path
base_dir = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
sys.path.append(base_dir)

from topology.config import TopologyConfig
from topology.models import AccessEdge, DependencyGraph, ServiceNode, Tier


@pytest.fixture
def tiers():
    return [
        Tier("ui", 80),
        Tier("app", 4567),
        Tier("db", 5432),
        Tier("cache", 6379),
    ]


@pytest.fixture
def edges():
    return [
        AccessEdge("ui", "app", 4567),
        AccessEdge("app", "db", 5432),
        AccessEdge("app", "cache", 6379),
    ]


@pytest.fixture
def service_graph():
    return DependencyGraph((
        ServiceNode("db", "db", "db"),
        ServiceNode("cache", "cache", "cache"),
        ServiceNode("app", "app", "app", depends_on=("db", "cache")),
        ServiceNode("ui", "ui", "ui", depends_on=("app",)),
    ))


@pytest.fixture
def config_data():
    """Plain four-tier topology, as it would be read from YAML."""
    return {
        "naming_prefix": "shop",
        "cidr": "10.0.0.0/16",
        "subnet_host_bits": 8,
        "subnet_count": 256,
        "zones": ["us-east-1a", "us-east-1b"],
        "tiers": [
            {"name": "ui", "port": 80, "external": True},
            {"name": "app", "port": 4567},
            {"name": "db", "port": 5432},
            {"name": "cache", "port": 6379},
        ],
        "edges": [
            {"source": "ui", "destination": "app"},
            {"source": "app", "destination": "db"},
            {"source": "app", "destination": "cache"},
        ],
        "services": [
            {"name": "db", "tier": "db"},
            {"name": "cache", "tier": "cache"},
            {"name": "app", "tier": "app", "depends_on": ["db", "cache"], "replicas": 2},
            {"name": "ui", "tier": "ui", "depends_on": ["app"]},
        ],
    }


@pytest.fixture
def config(config_data):
    return TopologyConfig.model_validate(config_data)
