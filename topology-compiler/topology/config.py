"""
Topology Configuration

Declarative input to the compiler: naming, address space, tiers, access
edges and services. Shape and field-level checks live here; cross-entity
consistency is checked by the assembler.
"""

import ipaddress
import os
import re
from typing import List, Optional

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator

# Alphanumeric, dash and underscore only; names end up in resource names,
# DNS aliases and nftables identifiers.
SAFE_NAME_REGEX = re.compile(r"^[a-zA-Z0-9_-]+$")
PROTOCOLS = ("tcp", "udp")


def _safe_name(value: str) -> str:
    if not SAFE_NAME_REGEX.fullmatch(value):
        raise ValueError(f"invalid name: {value!r}")
    return value


def _protocol(value: str) -> str:
    value = value.lower()
    if value not in PROTOCOLS:
        raise ValueError(f"unsupported protocol: {value!r}")
    return value


def _cidr(value: str) -> str:
    try:
        ipaddress.IPv4Network(value)
    except ValueError as e:
        raise ValueError(f"invalid IPv4 CIDR {value!r}: {e}")
    return value


class EgressConfig(BaseModel):
    cidr: str
    port: int = Field(..., gt=0, le=65535)
    protocol: str = "tcp"

    check_cidr = field_validator("cidr")(_cidr)
    check_protocol = field_validator("protocol")(_protocol)


class TierConfig(BaseModel):
    name: str = Field(..., min_length=1, max_length=64)
    port: int = Field(..., gt=0, le=65535)
    protocol: str = "tcp"
    external: bool = False
    app_protocol: Optional[str] = None
    calls: List[str] = Field(default_factory=list)
    egress: List[EgressConfig] = Field(default_factory=list)
    zones: List[str] = Field(default_factory=list)

    check_name = field_validator("name")(_safe_name)
    check_protocol = field_validator("protocol")(_protocol)


class EdgeConfig(BaseModel):
    """A flow between tiers. Port and protocol default to the destination tier's."""

    source: str
    destination: str
    port: Optional[int] = Field(default=None, gt=0, le=65535)
    protocol: Optional[str] = None

    @field_validator("protocol")
    @classmethod
    def check_protocol(cls, value):
        return None if value is None else _protocol(value)


class ServiceConfig(BaseModel):
    name: str = Field(..., min_length=1, max_length=64)
    tier: str
    discovery_alias: Optional[str] = None
    replicas: int = Field(default=1, ge=1)
    depends_on: List[str] = Field(default_factory=list)
    cluster: Optional[str] = None
    port: Optional[int] = Field(default=None, gt=0, le=65535)

    check_name = field_validator("name")(_safe_name)

    @field_validator("discovery_alias", "cluster")
    @classmethod
    def check_optional_names(cls, value):
        return None if value is None else _safe_name(value)


class TopologyConfig(BaseModel):
    naming_prefix: str = Field(default="app", min_length=1, max_length=32)
    cidr: str = "10.0.0.0/16"
    subnet_host_bits: int = Field(default=8, ge=0, le=32)
    subnet_count: int = Field(default=256, ge=1)
    region: str = "us-east-1"
    zones: List[str] = Field(default_factory=list)
    launch_type: str = "FARGATE"
    tiers: List[TierConfig] = Field(default_factory=list)
    edges: List[EdgeConfig] = Field(default_factory=list)
    services: List[ServiceConfig] = Field(default_factory=list)

    check_prefix = field_validator("naming_prefix")(_safe_name)
    check_cidr = field_validator("cidr")(_cidr)

    @model_validator(mode="after")
    def default_zones_and_unique_names(self):
        if not self.zones:
            self.zones = [f"{self.region}a", f"{self.region}b"]
        for label, names in (
            ("zone", self.zones),
            ("tier", [t.name for t in self.tiers]),
            ("service", [s.name for s in self.services]),
        ):
            duplicates = sorted({n for n in names if names.count(n) > 1})
            if duplicates:
                raise ValueError(f"duplicate {label} names: {duplicates}")
        return self


def load_config(path: str) -> TopologyConfig:
    """Load a topology from a YAML (or JSON) file."""
    with open(path, "r") as f:
        data = yaml.safe_load(f) or {}
    return TopologyConfig.model_validate(data)


def default_config() -> TopologyConfig:
    """
    The sample three-tier application: a public UI, an application server,
    a Postgres database and a Redis cache. Top-level parameters may be
    overridden from the environment.
    """
    https_out = [{"cidr": "0.0.0.0/0", "port": 443}]
    return TopologyConfig.model_validate({
        "naming_prefix": os.getenv("NAMING_PREFIX", "app"),
        "cidr": os.getenv("VPC_CIDR", "10.0.0.0/16"),
        "subnet_host_bits": int(os.getenv("SUBNET_HOST_BITS", 8)),
        "subnet_count": int(os.getenv("SUBNET_COUNT", 256)),
        "region": os.getenv("AWS_REGION", "us-east-1"),
        "launch_type": os.getenv("LAUNCH_TYPE", "FARGATE"),
        "tiers": [
            {"name": "ui", "port": 80, "app_protocol": "http", "external": True,
             "calls": ["app-server"], "egress": https_out},
            {"name": "app-server", "port": 4567, "app_protocol": "http",
             "calls": ["db", "redis"], "egress": https_out},
            {"name": "db", "port": 5432, "egress": https_out},
            {"name": "redis", "port": 6379, "egress": https_out},
        ],
        "services": [
            {"name": "db", "tier": "db", "discovery_alias": "yelb-db", "cluster": "storage"},
            {"name": "redis", "tier": "redis", "discovery_alias": "redis-server", "cluster": "storage"},
            {"name": "app-server", "tier": "app-server", "discovery_alias": "yelb-appserver",
             "replicas": int(os.getenv("APPSERVER_TASK_COUNT", 1)),
             "depends_on": ["redis", "db"], "cluster": "ui"},
            {"name": "ui", "tier": "ui", "discovery_alias": "yelb-ui",
             "replicas": int(os.getenv("UI_TASK_COUNT", 1)),
             "depends_on": ["app-server"], "cluster": "ui"},
        ],
    })
