"""
Plan Validation

Static verification of a compiled DeploymentPlan before it is handed to the
provisioning engine:
- Subnet layout (ascending, non-overlapping, inside the VPC block)
- Ingress/egress rule pairing
- CIDR rule scope
- Launch order and activation stages
- Discovery alias uniqueness
"""

import ipaddress
import json
import sys
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List

from .models import DeploymentPlan, PeerType, RuleDirection


class ValidationSeverity(Enum):
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"


@dataclass
class ValidationResult:
    """Result of a single validation check."""
    name: str
    passed: bool
    severity: ValidationSeverity
    message: str
    details: Dict[str, Any] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "passed": self.passed,
            "severity": self.severity.value,
            "message": self.message,
            "details": self.details or {},
        }


@dataclass
class ValidationReport:
    """Full validation report."""
    passed: bool
    errors: int
    warnings: int
    results: List[ValidationResult]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "passed": self.passed,
            "errors": self.errors,
            "warnings": self.warnings,
            "results": [r.to_dict() for r in self.results],
        }


def _result(name: str, issues: List[str], ok_message: str, details: Dict[str, Any] = None) -> ValidationResult:
    return ValidationResult(
        name=name,
        passed=not issues,
        severity=ValidationSeverity.ERROR if issues else ValidationSeverity.INFO,
        message=ok_message if not issues else f"Issues: {issues}",
        details=details,
    )


class PlanValidator:
    """
    Validates a DeploymentPlan.

    Each check is independent; a check that raises is reported as a failed
    ERROR result instead of aborting the report.
    """

    def __init__(self):
        self.validators = [
            self._validate_subnet_layout,
            self._validate_rule_pairing,
            self._validate_cidr_scope,
            self._validate_launch_order,
            self._validate_stages,
            self._validate_aliases,
        ]

    def validate_all(self, plan: DeploymentPlan) -> ValidationReport:
        """Run all validators on the plan."""
        results = []

        for validator in self.validators:
            try:
                results.append(validator(plan))
            except Exception as e:
                results.append(ValidationResult(
                    name=validator.__name__,
                    passed=False,
                    severity=ValidationSeverity.ERROR,
                    message=f"Validator exception: {e}",
                ))

        errors = sum(1 for r in results if not r.passed and r.severity == ValidationSeverity.ERROR)
        warnings = sum(1 for r in results if r.severity == ValidationSeverity.WARNING)

        return ValidationReport(passed=errors == 0, errors=errors, warnings=warnings, results=results)

    def _validate_subnet_layout(self, plan: DeploymentPlan) -> ValidationResult:
        """Subnets must be ascending, disjoint and inside the VPC block."""
        vpc = ipaddress.IPv4Network(plan.vpc_cidr)
        issues = []
        previous = None

        for subnet in sorted(plan.subnets, key=lambda s: s.index):
            network = ipaddress.IPv4Network(subnet.cidr)
            if not network.subnet_of(vpc):
                issues.append(f"{subnet.name} ({subnet.cidr}) outside {plan.vpc_cidr}")
            if previous is not None:
                if network.overlaps(previous):
                    issues.append(f"{subnet.name} overlaps {previous}")
                elif network.network_address < previous.network_address:
                    issues.append(f"{subnet.name} out of address order")
            previous = network

        return _result("subnet_layout", issues, "Subnets ascending and disjoint", {"subnet_count": len(plan.subnets)})

    def _validate_rule_pairing(self, plan: DeploymentPlan) -> ValidationResult:
        """Every tier-to-tier ingress rule needs its egress counterpart and vice versa."""
        ingress = set()
        egress = set()
        for rule in plan.rules:
            if rule.peer_type is not PeerType.TIER:
                continue
            if rule.direction is RuleDirection.INGRESS:
                ingress.add((rule.peer, rule.tier, rule.protocol, rule.from_port, rule.to_port))
            else:
                egress.add((rule.tier, rule.peer, rule.protocol, rule.from_port, rule.to_port))

        issues = [f"ingress without egress: {flow}" for flow in sorted(ingress - egress)]
        issues += [f"egress without ingress: {flow}" for flow in sorted(egress - ingress)]
        return _result("rule_pairing", issues, "Ingress and egress rules paired", {"edge_count": len(ingress & egress)})

    def _validate_cidr_scope(self, plan: DeploymentPlan) -> ValidationResult:
        """CIDR ingress only on public entrypoints; CIDR egress is reported for review."""
        entrypoints = {(e.tier, e.port) for e in plan.entrypoints}
        issues = []
        cidr_egress = []

        for rule in plan.rules:
            if rule.peer_type is not PeerType.CIDR:
                continue
            if rule.direction is RuleDirection.INGRESS:
                if rule.from_port != rule.to_port or (rule.tier, rule.from_port) not in entrypoints:
                    issues.append(f"{rule.tier} open to {rule.peer} on {rule.protocol}/{rule.from_port}")
            else:
                cidr_egress.append(f"{rule.tier} -> {rule.peer} {rule.protocol}/{rule.from_port}")

        if issues:
            return _result("cidr_scope", issues, "")
        return ValidationResult(
            name="cidr_scope",
            passed=True,
            severity=ValidationSeverity.WARNING if cidr_egress else ValidationSeverity.INFO,
            message="CIDR ingress limited to public entrypoints" if not cidr_egress
            else f"Declared CIDR egress: {cidr_egress}",
            details={"cidr_egress": len(cidr_egress)},
        )

    def _validate_launch_order(self, plan: DeploymentPlan) -> ValidationResult:
        """Every dependency must be launched before its dependents."""
        position = {s.name: i for i, s in enumerate(plan.services)}
        issues = []

        for service in plan.services:
            for dep in service.depends_on:
                if dep not in position:
                    issues.append(f"{service.name} depends on missing {dep}")
                elif position[dep] >= position[service.name]:
                    issues.append(f"{service.name} launched before {dep}")

        return _result("launch_order", issues, "Launch order respects dependencies")

    def _validate_stages(self, plan: DeploymentPlan) -> ValidationResult:
        stage = {s.name: s.stage for s in plan.services}
        issues = []

        for service in plan.services:
            expected = max((stage[d] + 1 for d in service.depends_on if d in stage), default=0)
            if service.stage != expected:
                issues.append(f"{service.name} in stage {service.stage}, expected {expected}")

        return _result("activation_stages", issues, "Activation stages consistent",
                       {"stages": max(stage.values(), default=-1) + 1})

    def _validate_aliases(self, plan: DeploymentPlan) -> ValidationResult:
        seen = {}
        issues = []
        for service in plan.services:
            if service.fqdn in seen:
                issues.append(f"{service.fqdn} registered by {seen[service.fqdn]} and {service.name}")
            seen.setdefault(service.fqdn, service.name)
        return _result("discovery_aliases", issues, "Discovery aliases unique")


if __name__ == "__main__":
    from .assembler import assemble
    from .config import load_config

    if len(sys.argv) < 2:
        print("Usage: python -m topology.validate <topology.yaml>")
        sys.exit(1)

    report = PlanValidator().validate_all(assemble(load_config(sys.argv[1])))
    print(json.dumps(report.to_dict(), indent=2))
    sys.exit(0 if report.passed else 1)
