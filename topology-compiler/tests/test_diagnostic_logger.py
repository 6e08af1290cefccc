"""Tests for diagnostic logger functionality"""

import logging

from topology.assembler import assemble
from topology.config import default_config
from topology.diagnostic_logger import DiagnosticLogger
from topology.errors import UnknownDependency
from topology.validate import PlanValidator


class TestDiagnosticLogger:
    """Test suite for DiagnosticLogger class"""

    def test_initialization(self):
        logger = DiagnosticLogger()

        assert logger.start_time is not None
        assert logger.errors == []
        assert logger.warnings == []

    def test_log_with_context(self, caplog):
        logger = DiagnosticLogger()
        with caplog.at_level(logging.ERROR, logger="diagnostic"):
            logger.log_error("Plan rejected", {"config": "shop.yaml"})

        assert logger.errors[0]["error"] == "Plan rejected"
        assert logger.errors[0]["context"] == {"config": "shop.yaml"}
        assert "ERROR: Plan rejected" in caplog.text
        assert "shop.yaml" in caplog.text

    def test_log_compile_error(self):
        logger = DiagnosticLogger()
        logger.log_compile_error(UnknownDependency("app", "queue"), {"config": "default"})

        context = logger.errors[0]["context"]
        assert context["error"] == "unknown_dependency"
        assert context["config"] == "default"
        assert "queue" in context["message"]

    def test_log_plan(self, caplog):
        with caplog.at_level(logging.INFO, logger="diagnostic"):
            DiagnosticLogger().log_plan(assemble(default_config()))

        assert "Subnet app-subnet-a: 10.0.0.0/24 (us-east-1a)" in caplog.text
        assert "Stage 0: db as yelb-db.app.local x1" in caplog.text

    def test_log_report_records_warnings(self):
        logger = DiagnosticLogger()
        logger.log_report(PlanValidator().validate_all(assemble(default_config())))

        assert logger.errors == []
        assert len(logger.warnings) == 1
        assert logger.warnings[0]["warning"].startswith("cidr_scope")

    def test_generate_report(self):
        logger = DiagnosticLogger()
        logger.log_error("Error message", {})
        logger.log_warning("Warning message", {})
        logger.log_success("Success message")

        report = logger.generate_report()
        assert report["total_errors"] == 1
        assert report["total_warnings"] == 1
        assert report["start_time"] <= report["end_time"]
