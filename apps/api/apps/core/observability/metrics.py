"""
Metrics instrumentation.

Prometheus counters and histograms for the appointment engine.
"""
import time
from functools import wraps

from prometheus_client import Counter, Histogram


class MetricsRegistry:
    """
    Central metrics registry.

    Provides typed access to all application metrics.
    """

    def __init__(self):
        self._setup_metrics()

    def _create_counter(self, name, description, labels=None):
        return Counter(name, description, labels or [])

    def _create_histogram(self, name, description, labels=None, buckets=None):
        if buckets:
            return Histogram(name, description, labels or [], buckets=buckets)
        return Histogram(name, description, labels or [])

    def _setup_metrics(self):
        # ===================================================================
        # HTTP Metrics
        # ===================================================================
        self.http_requests_total = self._create_counter(
            'http_requests_total',
            'Total HTTP requests',
            ['path', 'method', 'status']
        )

        self.http_request_duration_seconds = self._create_histogram(
            'http_request_duration_seconds',
            'HTTP request duration in seconds',
            ['path', 'method'],
            buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0]
        )

        # ===================================================================
        # Appointment Metrics
        # ===================================================================
        self.appointment_transitions_total = self._create_counter(
            'appointment_transitions_total',
            'Appointment status transitions',
            ['from_status', 'to_status', 'result']  # result: success|noop|rejected
        )

        self.concurrency_conflicts_total = self._create_counter(
            'concurrency_conflicts_total',
            'Optimistic concurrency conflicts detected on write',
            ['entity']  # Appointment, PhysioTreatmentPlan
        )

        # ===================================================================
        # Department Dispatch Metrics
        # ===================================================================
        self.department_code_fallback_total = self._create_counter(
            'department_code_fallback_total',
            'Department resolutions that fell back to general medicine',
            ['reason']  # unmapped_appointment_type, unknown_department_code
        )

        self.department_payload_rejections_total = self._create_counter(
            'department_payload_rejections_total',
            'Department payloads rejected by validation',
            ['variant']
        )

        self.department_payload_validation_duration_seconds = self._create_histogram(
            'department_payload_validation_duration_seconds',
            'Duration of department payload normalization',
            buckets=[0.0005, 0.001, 0.0025, 0.005, 0.01, 0.025, 0.05]
        )

        # ===================================================================
        # Physiotherapy Metrics
        # ===================================================================
        self.treatment_plans_created_total = self._create_counter(
            'treatment_plans_created_total',
            'Treatment plans created from evaluations',
            ['result']  # success, consent_required, already_linked
        )

        self.treatment_plan_sessions_total = self._create_counter(
            'treatment_plan_sessions_total',
            'Completed appointments evaluated against treatment plans',
            ['result']  # counted, skipped, plan_completed
        )

    def track_duration(self, histogram_metric):
        """
        Decorator to track function duration.

        Usage:
            @metrics.track_duration(metrics.department_payload_validation_duration_seconds)
            def normalize(...):
                ...
        """
        def decorator(func):
            @wraps(func)
            def wrapper(*args, **kwargs):
                start_time = time.time()
                try:
                    return func(*args, **kwargs)
                finally:
                    histogram_metric.observe(time.time() - start_time)
            return wrapper
        return decorator


# Global metrics instance
metrics = MetricsRegistry()
