"""
Unit tests for the metrics collector.
"""

from prometheus_client import CollectorRegistry

from boxsync.observability.metrics import MetricsCollector


class TestMetricsCollector:
    """Tests for MetricsCollector."""

    def test_records_job_lifecycle(self):
        registry = CollectorRegistry()
        metrics = MetricsCollector(registry=registry)

        metrics.record_job_enqueued("registration")
        metrics.record_job_completed("registration", "done", 0.2)
        metrics.record_job_completed("registration", "failed", 1.5)
        metrics.record_lease_expired(2)
        metrics.update_queue_depth("registration", 4)

        value = registry.get_sample_value
        assert value("boxsync_jobs_enqueued_total", {"queue": "registration"}) == 1
        assert value("boxsync_jobs_completed_total", {"queue": "registration", "status": "done"}) == 1
        assert value("boxsync_job_duration_seconds_count", {"queue": "registration", "status": "failed"}) == 1
        assert value("boxsync_lease_expired_total") == 2
        assert value("boxsync_queue_depth", {"queue": "registration"}) == 4

    def test_exposition(self):
        metrics = MetricsCollector(registry=CollectorRegistry())
        metrics.record_account_verified("already_verified")

        body = metrics.get_metrics().decode()

        assert 'boxsync_account_verifications_total{outcome="already_verified"} 1.0' in body
        assert metrics.get_content_type().startswith("text/plain")
