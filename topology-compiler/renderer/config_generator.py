#!/usr/bin/env python3
"""
Plan Configuration Generator

Renders a compiled DeploymentPlan into the formats the provisioning engine
consumes:
- YAML manifest of the whole plan
- nftables ruleset realizing the tier security groups

Each tier gets an empty address set that the engine fills with task
addresses as tasks are scheduled. A flow between two tiers is accepted only
by a single rule naming both sets, so the source's egress and the
destination's ingress must both allow it. Declared CIDR rules never match
addresses of another tier.
"""

import difflib
import re
from typing import Any, Dict, List

import yaml
from jinja2 import Template

from topology.models import DeploymentPlan, FirewallRule, PeerType, RuleDirection, ANY_IPV4

NFTABLES_TEMPLATE = """#!/usr/sbin/nft -f
# plan {{ prefix }} {{ fingerprint }}
# tier sets hold task addresses and are populated by the provisioning engine
table inet {{ table }} {
{% for tier in tiers %}
    set {{ tier.set }} {
        type ipv4_addr
        flags interval
    }
{% endfor %}
{% for tier in tiers %}
    chain {{ tier.chain }}_ingress {
{% for rule in tier.ingress %}
        {{ rule }}
{% endfor %}
    }
    chain {{ tier.chain }}_egress {
{% for rule in tier.egress %}
        {{ rule }}
{% endfor %}
    }
{% endfor %}
    chain forward {
        type filter hook forward priority filter; policy drop;
        ct state established,related accept
{% for tier in tiers %}
        ip daddr @{{ tier.set }} jump {{ tier.chain }}_ingress
        ip saddr @{{ tier.set }} jump {{ tier.chain }}_egress
{% endfor %}
    }
}
"""


def nft_identifier(name: str) -> str:
    """nftables identifiers: letters, digits and underscores."""
    return re.sub(r"[^a-zA-Z0-9_]", "_", name)


def tier_set(tier: str) -> str:
    return f"@tier_{nft_identifier(tier)}"


class ConfigGenerator:
    """Generates engine-facing configuration from a DeploymentPlan."""

    def __init__(self):
        self.nftables_template = Template(NFTABLES_TEMPLATE, trim_blocks=True, lstrip_blocks=False)

    def _nft_rule(self, rule: FirewallRule, tiers: List[str]) -> str:
        """
        Render one rule as seen from ``rule.tier``.

        Tier-peer ingress matches both tier sets. CIDR rules exclude every tier
        set, so they never open a path between tiers.
        """
        ports = str(rule.from_port) if rule.from_port == rule.to_port else f"{rule.from_port}-{rule.to_port}"
        own, peer = ("daddr", "saddr") if rule.direction is RuleDirection.INGRESS else ("saddr", "daddr")

        nft_rule = f"ip {own} {tier_set(rule.tier)} "
        if rule.peer_type is PeerType.TIER:
            nft_rule += f"ip {peer} {tier_set(rule.peer)} "
        else:
            nft_rule += "".join(f"ip {peer} != {tier_set(t)} " for t in tiers)
            if rule.peer != ANY_IPV4:
                nft_rule += f"ip {peer} {rule.peer} "

        return nft_rule + f"{rule.protocol} dport {ports} accept"

    def _tier_flows(self, plan: DeploymentPlan) -> set:
        """(source, destination, protocol, from_port, to_port) allowed by both sides."""
        ingress = set()
        egress = set()
        for rule in plan.rules:
            if rule.peer_type is not PeerType.TIER:
                continue
            if rule.direction is RuleDirection.INGRESS:
                ingress.add((rule.peer, rule.tier, rule.protocol, rule.from_port, rule.to_port))
            else:
                egress.add((rule.tier, rule.peer, rule.protocol, rule.from_port, rule.to_port))
        return ingress & egress

    def generate_nftables(self, plan: DeploymentPlan) -> str:
        """Render the plan's firewall rules as an nftables script."""
        flows = self._tier_flows(plan)
        tier_names = [assignment.tier for assignment in plan.tiers]
        tiers = []

        for assignment in plan.tiers:
            ingress = []
            egress = []
            for rule in plan.rules_for(assignment.tier):
                if rule.peer_type is PeerType.CIDR:
                    target = ingress if rule.direction is RuleDirection.INGRESS else egress
                    target.append(self._nft_rule(rule, tier_names))
                elif rule.direction is RuleDirection.INGRESS:
                    # The source's egress counterpart is required; it is not rendered on its own.
                    if (rule.peer, rule.tier, rule.protocol, rule.from_port, rule.to_port) in flows:
                        ingress.append(self._nft_rule(rule, tier_names))
            tiers.append({
                "set": f"tier_{nft_identifier(assignment.tier)}",
                "chain": nft_identifier(assignment.tier),
                "ingress": ingress,
                "egress": egress,
            })

        return self.nftables_template.render(
            prefix=plan.naming_prefix,
            fingerprint=plan.fingerprint(),
            table=f"{nft_identifier(plan.naming_prefix)}_security_groups",
            tiers=tiers,
        )

    def generate_manifest(self, plan: DeploymentPlan) -> str:
        """Render the whole plan as a YAML document."""
        document: Dict[str, Any] = {"fingerprint": plan.fingerprint()}
        document.update(plan.to_dict())
        return yaml.safe_dump(document, sort_keys=False, default_flow_style=False)

    def diff_configs(self, current: str, desired: str) -> List[str]:
        """Unified diff between two rendered configurations."""
        return list(difflib.unified_diff(
            current.splitlines(),
            desired.splitlines(),
            fromfile="current",
            tofile="desired",
            lineterm="",
        ))


_config_generator = None


def get_config_generator() -> ConfigGenerator:
    global _config_generator
    if _config_generator is None:
        _config_generator = ConfigGenerator()
    return _config_generator
