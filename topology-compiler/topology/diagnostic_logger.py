"""
Diagnostic Logger for the Topology Compiler

Records compilation outcomes with enough context to troubleshoot a
rejected topology: plan summaries, compiler errors and validation warnings.
"""

import json
import logging
import os
import sys
from datetime import datetime
from typing import Any, Dict, Optional

from .errors import TopologyError
from .models import DeploymentPlan
from .validate import ValidationReport

logger = logging.getLogger("diagnostic")


def configure_logging(level: int = logging.INFO, stream=sys.stdout):
    """Log to ``stream``, and to $TOPOLOGY_LOG_DIR/diagnostic.log when set."""
    handlers = [logging.StreamHandler(stream)]

    log_dir = os.getenv("TOPOLOGY_LOG_DIR")
    if log_dir:
        os.makedirs(log_dir, exist_ok=True)
        handlers.append(logging.FileHandler(os.path.join(log_dir, "diagnostic.log")))

    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=handlers,
    )


class DiagnosticLogger:
    """Collects errors and warnings across one or more compilations."""

    def __init__(self):
        self.start_time = datetime.now()
        self.errors = []
        self.warnings = []

    def log_plan(self, plan: DeploymentPlan):
        """Log a summary of a compiled plan."""
        logger.info("=" * 60)
        logger.info(f"PLAN {plan.naming_prefix} ({plan.fingerprint()[:12]})")
        logger.info("=" * 60)
        logger.info(f"VPC: {plan.vpc_cidr} in {plan.region}, namespace {plan.namespace}")
        for subnet in plan.subnets:
            logger.info(f"Subnet {subnet.name}: {subnet.cidr} ({subnet.zone})")
        for tier in plan.tiers:
            logger.info(f"Tier {tier.tier}: {tier.security_group}, {len(plan.rules_for(tier.tier))} rules")
        for service in plan.services:
            logger.info(f"Stage {service.stage}: {service.name} as {service.fqdn} x{service.replicas}")

    def log_compile_error(self, error: TopologyError, context: Optional[Dict[str, Any]] = None):
        """Log a compiler error with its structured payload."""
        self.log_error(str(error), dict(error.to_dict(), **(context or {})))

    def log_report(self, report: ValidationReport):
        """Log every failed or noteworthy validation result."""
        for result in report.results:
            if not result.passed:
                self.log_error(f"{result.name}: {result.message}", result.details)
            elif result.severity.value == "warning":
                self.log_warning(f"{result.name}: {result.message}", result.details)
        if report.passed:
            self.log_success(f"Plan validation passed ({len(report.results)} checks)")

    def log_error(self, error_msg: str, context: Optional[Dict[str, Any]] = None):
        """Log an error with context."""
        self.errors.append({
            'timestamp': datetime.now().isoformat(),
            'error': error_msg,
            'context': context or {}
        })
        logger.error(f"ERROR: {error_msg}")
        if context:
            logger.error(f"Context: {json.dumps(context, indent=2)}")

    def log_warning(self, warning_msg: str, context: Optional[Dict[str, Any]] = None):
        """Log a warning with context."""
        self.warnings.append({
            'timestamp': datetime.now().isoformat(),
            'warning': warning_msg,
            'context': context or {}
        })
        logger.warning(f"WARNING: {warning_msg}")
        if context:
            logger.warning(f"Context: {json.dumps(context, indent=2)}")

    def log_success(self, success_msg: str):
        logger.info(f"SUCCESS: {success_msg}")

    def generate_report(self) -> Dict[str, Any]:
        """Summarize everything recorded so far."""
        report = {
            'start_time': self.start_time.isoformat(),
            'end_time': datetime.now().isoformat(),
            'errors': self.errors,
            'warnings': self.warnings,
            'total_errors': len(self.errors),
            'total_warnings': len(self.warnings)
        }
        logger.info(f"Total Errors: {len(self.errors)}, Total Warnings: {len(self.warnings)}")
        return report
