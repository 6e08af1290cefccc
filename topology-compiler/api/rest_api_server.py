# File: topology-compiler/api/rest_api_server.py
#!/usr/bin/env python3
"""
Topology Compiler REST API Server

FastAPI-based REST API in front of the topology compiler:
- Compile and store deployment plans
- Render stored plans for the provisioning engine
- Validate and diff stored plans
"""

import logging
import os
import time
from datetime import datetime
from typing import Any, Dict, List

from fastapi import Depends, FastAPI, HTTPException, Request, Response
from fastapi.responses import PlainTextResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from pydantic import BaseModel, ConfigDict
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from metrics import METRICS
from topology.config import TopologyConfig
from topology.errors import TopologyError

from . import shared_api_logic as services
from .models import Base, CompiledPlan as PlanModel

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Topology Compiler API",
    description="Compiles multi-tier application topologies into deployment plans",
    version="1.0.0",
)

DB_DIR = os.getenv("DB_DIR", "/tmp")
DB_PATH = os.getenv("DB_PATH", f"{DB_DIR}/plans.db")
if not DB_PATH.startswith(":memory:"):
    os.makedirs(os.path.dirname(DB_PATH) or ".", exist_ok=True)
SQLALCHEMY_DATABASE_URL = f"sqlite:///{DB_PATH}"
engine = create_engine(SQLALCHEMY_DATABASE_URL, connect_args={"check_same_thread": False})
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base.metadata.create_all(bind=engine)


@app.on_event("startup")
def initialize_metrics():
    db = SessionLocal()
    try:
        METRICS["plans_stored"].set(db.query(PlanModel).count())
    except Exception as e:
        logger.warning(f"Could not initialize metrics: {e}")
    finally:
        db.close()


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


class PlanSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    naming_prefix: str
    cidr: str
    fingerprint: str
    subnet_count: int
    rule_count: int
    service_count: int
    status: str
    created_at: datetime


class Plan(PlanSummary):
    plan: Dict[str, Any]


def _get_or_404(db: Session, plan_id: str) -> PlanModel:
    record = services.get_plan_logic(db, plan_id)
    if not record:
        raise HTTPException(status_code=404, detail="Plan not found")
    return record


@app.get("/health")
def health():
    return {"status": "healthy"}


@app.get("/metrics")
def metrics():
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


@app.middleware("http")
async def prometheus_middleware(request: Request, call_next):
    METRICS["api_requests"].labels(method=request.method, endpoint=request.url.path).inc()
    start = time.time()
    response = await call_next(request)
    logger.debug(f"{request.method} {request.url.path} took {(time.time() - start) * 1000:.1f} ms")
    return response


@app.post("/plans", response_model=Plan, status_code=201)
def create_plan(config: TopologyConfig, response: Response, db: Session = Depends(get_db)):
    try:
        record, created = services.create_plan_logic(db, config)
    except TopologyError as e:
        raise HTTPException(status_code=422, detail=e.to_dict())
    if not created:
        response.status_code = 200
    return record


@app.get("/plans", response_model=List[PlanSummary])
def list_plans(db: Session = Depends(get_db)):
    return services.list_plans(db)


@app.get("/plans/{plan_id}", response_model=Plan)
def get_plan(plan_id: str, db: Session = Depends(get_db)):
    return _get_or_404(db, plan_id)


@app.delete("/plans/{plan_id}")
def delete_plan(plan_id: str, db: Session = Depends(get_db)):
    record = services.delete_plan_logic(db, plan_id)
    if not record:
        raise HTTPException(status_code=404, detail="Plan not found")
    return {"message": f"Plan {plan_id} deleted"}


@app.get("/plans/{plan_id}/nftables", response_class=PlainTextResponse)
def get_plan_nftables(plan_id: str, db: Session = Depends(get_db)):
    return services.render_nftables_logic(_get_or_404(db, plan_id))


@app.get("/plans/{plan_id}/manifest", response_class=PlainTextResponse)
def get_plan_manifest(plan_id: str, db: Session = Depends(get_db)):
    return services.render_manifest_logic(_get_or_404(db, plan_id))


@app.get("/plans/{plan_id}/validation")
def get_plan_validation(plan_id: str, db: Session = Depends(get_db)):
    return services.validate_plan_logic(_get_or_404(db, plan_id)).to_dict()


@app.get("/plans/{plan_id}/diff/{other_id}")
def diff_plans(plan_id: str, other_id: str, db: Session = Depends(get_db)):
    current = _get_or_404(db, plan_id)
    desired = _get_or_404(db, other_id)
    return {"from": plan_id, "to": other_id, "diff": services.diff_plans_logic(current, desired)}
