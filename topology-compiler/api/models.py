# file: models.py

import uuid

from sqlalchemy import JSON, Column, DateTime, Integer, String
from sqlalchemy.orm import declarative_base
from sqlalchemy.sql import func

Base = declarative_base()


class CompiledPlan(Base):
    __tablename__ = "compiled_plans"
    id = Column(String, primary_key=True, default=lambda: f"plan-{uuid.uuid4().hex[:8]}")
    naming_prefix = Column(String, nullable=False)
    cidr = Column(String, nullable=False)
    fingerprint = Column(String, unique=True, nullable=False, index=True)
    config = Column(JSON, nullable=False)   # TopologyConfig as submitted, with defaults applied
    plan = Column(JSON, nullable=False)     # DeploymentPlan.to_dict()
    subnet_count = Column(Integer, nullable=False)
    rule_count = Column(Integer, nullable=False)
    service_count = Column(Integer, nullable=False)
    status = Column(String, default="compiled")
    created_at = Column(DateTime, server_default=func.now())
