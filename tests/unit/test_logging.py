"""
Unit tests for the logging processors.
"""

import structlog

from boxsync.observability.logging import (
    add_trace_context,
    component_adder,
    job_log_context,
    redact_account_fields,
)
from boxsync.observability.tracing import job_span


class TestProcessors:
    """Tests for the structlog processors."""

    def test_redacts_account_details(self):
        event = {"event": "Registering", "meta": {"upi": "a@bank"}, "api_key": "k", "queue": "registration"}

        result = redact_account_fields(None, "info", event)

        assert result["meta"] == "[redacted]"
        assert result["api_key"] == "[redacted]"
        assert result["queue"] == "registration"

    def test_component_does_not_override_bound_value(self):
        add_component = component_adder("worker")

        assert add_component(None, "info", {"event": "x"})["component"] == "worker"
        assert add_component(None, "info", {"event": "x", "component": "client"})["component"] == "client"

    def test_trace_ids_inside_span(self):
        with job_span("test.span", "registration", "acct-1"):
            event = add_trace_context(None, "info", {"event": "x"})

        assert len(event["trace_id"]) == 32
        assert len(event["span_id"]) == 16


class TestJobLogContext:
    """Tests for job_log_context."""

    def test_binds_and_restores(self):
        structlog.contextvars.clear_contextvars()

        with job_log_context("registration", "acct-1", "w:0", 2):
            bound = structlog.contextvars.get_contextvars()
            assert bound == {
                "queue": "registration",
                "job_key": "acct-1",
                "worker_id": "w:0",
                "attempt": 2,
            }

        assert structlog.contextvars.get_contextvars() == {}
