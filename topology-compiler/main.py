#!/usr/bin/env python3
"""
Topology Compiler - Main Entry Point

Compiles a multi-tier application topology into a deployment plan:
- Subnet partitioning across zones
- Least-privilege security group rules
- Service launch order and discovery aliases

Usage:
    python main.py compile [config.yaml] [yaml|json|nftables]
    python main.py validate [config.yaml]
    python main.py serve

Without a config path the built-in sample topology is compiled.
"""

import json
import os
import sys

from pydantic import ValidationError

from renderer.config_generator import get_config_generator
from topology.assembler import assemble
from topology.config import default_config, load_config
from topology.diagnostic_logger import DiagnosticLogger, configure_logging
from topology.errors import TopologyError
from topology.validate import PlanValidator

FORMATS = ("yaml", "json", "nftables")
USAGE = "Usage: python main.py compile|validate [config.yaml] [yaml|json|nftables] | serve"


def _load(path):
    return load_config(path) if path else default_config()


def compile_command(path=None, output_format="yaml") -> int:
    diagnostics = DiagnosticLogger()
    try:
        plan = assemble(_load(path))
    except TopologyError as e:
        diagnostics.log_compile_error(e, {"config": path or "default"})
        return 1
    except ValidationError as e:
        diagnostics.log_error(f"Invalid configuration: {e}", {"config": path or "default"})
        return 1

    generator = get_config_generator()
    if output_format == "json":
        print(json.dumps(dict(fingerprint=plan.fingerprint(), **plan.to_dict()), indent=2))
    elif output_format == "nftables":
        print(generator.generate_nftables(plan))
    else:
        print(generator.generate_manifest(plan))
    return 0


def validate_command(path=None) -> int:
    diagnostics = DiagnosticLogger()
    try:
        plan = assemble(_load(path))
    except TopologyError as e:
        diagnostics.log_compile_error(e, {"config": path or "default"})
        return 1
    except ValidationError as e:
        diagnostics.log_error(f"Invalid configuration: {e}", {"config": path or "default"})
        return 1

    diagnostics.log_plan(plan)
    report = PlanValidator().validate_all(plan)
    diagnostics.log_report(report)

    print(f"\n{'='*60}")
    print("Plan Validation Report")
    print(f"{'='*60}")
    print(f"Status: {'PASSED' if report.passed else 'FAILED'}")
    print(f"Errors: {report.errors}")
    print(f"Warnings: {report.warnings}")
    for result in report.results:
        status = "✓" if result.passed else "✗"
        print(f"  {status} {result.name}: {result.message}")

    return 0 if report.passed else 1


def serve_command() -> int:
    import uvicorn
    from api.rest_api_server import app

    port = int(os.getenv("REST_PORT", 8000))
    print(f"Starting REST API on port {port}...")
    uvicorn.run(app, host="0.0.0.0", port=port, log_level="info")
    return 0


def main(argv=None) -> int:
    argv = sys.argv[1:] if argv is None else argv
    if not argv:
        print(USAGE)
        return 1

    # Plans go to stdout; keep log lines out of them.
    configure_logging(stream=sys.stderr)
    command, args = argv[0], argv[1:]

    if command == "compile":
        output_format = "yaml"
        if args and args[-1] in FORMATS:
            output_format = args.pop()
        return compile_command(args[0] if args else None, output_format)
    if command == "validate":
        return validate_command(args[0] if args else None)
    if command == "serve":
        return serve_command()

    print(USAGE)
    return 1


if __name__ == "__main__":
    sys.exit(main())
