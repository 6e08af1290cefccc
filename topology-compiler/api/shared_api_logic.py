# api/shared_api_logic.py
from typing import List, Optional, Tuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from metrics import METRICS
from renderer.config_generator import get_config_generator
from topology.assembler import assemble, compile_plan
from topology.config import TopologyConfig
from topology.models import DeploymentPlan
from topology.validate import PlanValidator, ValidationReport

from .models import CompiledPlan as PlanModel


def _update_plan_count(db: Session):
    METRICS["plans_stored"].set(db.query(PlanModel).count())


def _get_by_fingerprint(db: Session, fingerprint: str) -> Optional[PlanModel]:
    return db.query(PlanModel).filter(PlanModel.fingerprint == fingerprint).first()


# Plan Services
def create_plan_logic(db: Session, config: TopologyConfig) -> Tuple[PlanModel, bool]:
    """
    Compile ``config`` and store the result.

    Compilation is deterministic, so a config that compiles to an already
    stored plan returns the existing record instead of a new one. The second
    element of the result tells whether a record was created.
    """
    plan = assemble(config)
    fingerprint = plan.fingerprint()

    existing = _get_by_fingerprint(db, fingerprint)
    if existing:
        return existing, False

    new_plan = PlanModel(
        naming_prefix=plan.naming_prefix,
        cidr=plan.vpc_cidr,
        fingerprint=fingerprint,
        config=config.model_dump(mode="json"),
        plan=plan.to_dict(),
        subnet_count=len(plan.subnets),
        rule_count=len(plan.rules),
        service_count=len(plan.services),
        status="compiled",
    )
    db.add(new_plan)
    try:
        db.commit()
    except IntegrityError:
        # Stored concurrently by another request
        db.rollback()
        return _get_by_fingerprint(db, fingerprint), False
    db.refresh(new_plan)
    _update_plan_count(db)
    return new_plan, True


def list_plans(db: Session) -> List[PlanModel]:
    return db.query(PlanModel).order_by(PlanModel.created_at).all()


def get_plan_logic(db: Session, plan_id: str) -> Optional[PlanModel]:
    return db.query(PlanModel).filter(PlanModel.id == plan_id).first()


def delete_plan_logic(db: Session, plan_id: str) -> Optional[PlanModel]:
    record = get_plan_logic(db, plan_id)
    if record:
        db.delete(record)
        db.commit()
        _update_plan_count(db)
    return record


def load_plan(record: PlanModel) -> DeploymentPlan:
    """Rebuild the DeploymentPlan of a stored record from its stored config."""
    return compile_plan(TopologyConfig.model_validate(record.config))


# Rendering Services
def render_nftables_logic(record: PlanModel) -> str:
    return get_config_generator().generate_nftables(load_plan(record))


def render_manifest_logic(record: PlanModel) -> str:
    return get_config_generator().generate_manifest(load_plan(record))


def validate_plan_logic(record: PlanModel) -> ValidationReport:
    return PlanValidator().validate_all(load_plan(record))


def diff_plans_logic(current: PlanModel, desired: PlanModel) -> List[str]:
    generator = get_config_generator()
    return generator.diff_configs(
        generator.generate_manifest(load_plan(current)),
        generator.generate_manifest(load_plan(desired)),
    )
