"""
Tests for observability layer.

Validates that metrics, logs, and events are emitted correctly
without logging PHI/PII.
"""
import json
import logging
from unittest.mock import MagicMock, Mock, patch

import pytest
from django.db import DatabaseError
from django.http import HttpResponse
from django.test import RequestFactory
from prometheus_client import REGISTRY

from apps.core.observability.correlation import (
    RequestCorrelationMiddleware,
    clear_request_context,
    get_request_id,
)
from apps.core.observability.events import (
    log_appointment_transition,
    log_consistency_checkpoint,
    log_deletion_warning,
    log_department_fallback,
    log_domain_event,
)
from apps.core.observability.logging import (
    SanitizedJSONFormatter,
    get_sanitized_logger,
    sanitize_dict,
)
from apps.core.observability.metrics import metrics


@pytest.fixture
def rf():
    return RequestFactory()


class TestRequestCorrelation:
    """Test request correlation middleware."""

    def setup_method(self):
        clear_request_context()

    def _middleware(self):
        return RequestCorrelationMiddleware(lambda r: HttpResponse(status=200))

    def test_generates_request_id_if_missing(self, rf):
        """Middleware generates request ID if not in headers."""
        request = rf.get('/api/v1/clinical/appointments/')
        request.user = Mock(is_authenticated=False)

        self._middleware().process_request(request)

        assert request.request_id
        assert get_request_id() == request.request_id

    def test_propagates_existing_request_id(self, rf):
        """Middleware uses existing request ID from headers."""
        request = rf.get('/api/v1/clinical/appointments/', HTTP_X_REQUEST_ID='test-request-123')
        request.user = Mock(is_authenticated=False)

        self._middleware().process_request(request)

        assert request.request_id == 'test-request-123'

    def test_response_headers_and_context_cleared(self, rf):
        """Middleware echoes correlation headers and clears thread-local context."""
        middleware = self._middleware()
        request = rf.get('/healthz', HTTP_X_REQUEST_ID='req-1', HTTP_X_TRACE_ID='trace-1')
        request.user = Mock(is_authenticated=False)

        middleware.process_request(request)
        response = middleware.process_response(request, HttpResponse(status=200))

        assert response['X-Request-ID'] == 'req-1'
        assert response['X-Trace-ID'] == 'trace-1'
        assert get_request_id() is None

    def test_unresolved_route_uses_bounded_label(self, rf):
        """Requests without a resolved route are counted under 'unmatched', never the raw path."""
        middleware = self._middleware()
        request = rf.get('/api/v1/clinical/appointments/5f1c/')
        request.user = Mock(is_authenticated=False)
        labels = {'path': 'unmatched', 'method': 'GET', 'status': '404'}
        before = REGISTRY.get_sample_value('http_requests_total', labels) or 0

        middleware.process_request(request)
        middleware.process_response(request, HttpResponse(status=404))

        assert REGISTRY.get_sample_value('http_requests_total', labels) == before + 1


class TestSanitization:
    """Test PHI/PII sanitization."""

    def test_sanitize_dict_redacts_sensitive_fields(self):
        """Sanitize function removes PHI/PII fields."""
        data = {
            'id': '123',
            'first_name': 'John',  # PHI
            'last_name': 'Doe',    # PHI
            'email': 'john@example.com',  # PII
            'diagnosis': 'Lumbar disc herniation',  # PHI
            'reason': 'Patient feels dizzy',  # free text
            'notes': 'Allergic to iodine',   # free text
            'status': 'scheduled',
        }

        sanitized = sanitize_dict(data)

        assert sanitized['id'] == '123'
        assert sanitized['status'] == 'scheduled'
        for key in ('first_name', 'last_name', 'email', 'diagnosis', 'reason', 'notes'):
            assert sanitized[key] == '[REDACTED]'

    def test_sanitize_dict_handles_nested_payloads(self):
        """Sanitization works on nested department payloads, case-insensitively."""
        data = {
            'department_specific_data': {
                'variant': 'imaging',
                'lastMenstrualPeriod': '2026-09-20',
                'chiefComplaint': 'Chest pain',
            },
            'dependents': [{'type': 'treatment_plan', 'notes': 'x'}],
        }

        sanitized = sanitize_dict(data)

        payload = sanitized['department_specific_data']
        assert payload['variant'] == 'imaging'
        assert payload['lastMenstrualPeriod'] == '[REDACTED]'
        assert payload['chiefComplaint'] == '[REDACTED]'
        assert sanitized['dependents'][0] == {'type': 'treatment_plan', 'notes': '[REDACTED]'}

    def test_allowed_fields_not_redacted(self):
        """IDs and codes are preserved."""
        data = {
            'appointment_id': 'appt-123',
            'plan_id': 'plan-456',
            'department_code': 'FT',
            'sessions_completed': 2,
            'status': 'completed',
        }

        assert sanitize_dict(data) == data

    def test_json_formatter_redacts_extra_fields(self):
        """SanitizedJSONFormatter redacts sensitive keys passed through extra."""
        record = logging.LogRecord('apps.test', logging.INFO, __file__, 1, 'Event', None, None)
        record.appointment_id = 'appt-1'
        record.first_name = 'Jane'
        record.department_specific_data = {'therapistNotes': 'Sensitive', 'painLevel': 4}

        output = json.loads(SanitizedJSONFormatter().format(record))

        assert output['appointment_id'] == 'appt-1'
        assert output['first_name'] == '[REDACTED]'
        assert output['department_specific_data'] == {'therapistNotes': '[REDACTED]', 'painLevel': 4}


class TestMetricsEmission:
    """Test that metrics are registered and labelled with bounded values."""

    def test_metrics_registry_has_all_metrics(self):
        for name in (
            'http_requests_total',
            'http_request_duration_seconds',
            'appointment_transitions_total',
            'concurrency_conflicts_total',
            'department_code_fallback_total',
            'department_payload_rejections_total',
            'department_payload_validation_duration_seconds',
            'treatment_plans_created_total',
            'treatment_plan_sessions_total',
        ):
            assert hasattr(metrics, name), name

    def test_payload_rejection_counted_per_variant(self):
        from apps.clinical.department_data import LaboratoryPayloadValidator
        from apps.clinical.exceptions import InvalidDepartmentPayload

        labels = {'variant': 'laboratory'}
        before = REGISTRY.get_sample_value('department_payload_rejections_total', labels) or 0

        with pytest.raises(InvalidDepartmentPayload):
            LaboratoryPayloadValidator().normalize({'requiresFasting': True, 'fastingHours': 30})

        assert REGISTRY.get_sample_value('department_payload_rejections_total', labels) == before + 1

    def test_fallback_counted_by_reason(self):
        from apps.clinical.department_data import select_validator

        labels = {'reason': 'unknown_department_code'}
        before = REGISTRY.get_sample_value('department_code_fallback_total', labels) or 0

        select_validator('XYZ')

        assert REGISTRY.get_sample_value('department_code_fallback_total', labels) == before + 1

    def test_track_duration_observes_histogram(self):
        histogram = MagicMock()

        @metrics.track_duration(histogram)
        def work():
            return 'done'

        assert work() == 'done'
        histogram.observe.assert_called_once()


class TestDomainEvents:
    """Test domain event logging."""

    @patch('apps.core.observability.events.logger')
    def test_log_domain_event_structure(self, mock_logger):
        """Domain events have correct structure."""
        log_domain_event(
            'appointment_scheduled',
            entity_type='Appointment',
            entity_id='appt-123',
            entity_ids={'patient_id': 'patient-1'},
            department_code='FT',
        )

        mock_logger.info.assert_called_once()
        extra = mock_logger.info.call_args[1]['extra']
        assert extra['event'] == 'appointment_scheduled'
        assert extra['entity_type'] == 'Appointment'
        assert extra['entity_id'] == 'appt-123'
        assert extra['patient_id'] == 'patient-1'
        assert extra['result'] == 'success'
        assert extra['department_code'] == 'FT'

    @patch('apps.core.observability.events.logger')
    def test_rejected_transition_logged_as_warning(self, mock_logger):
        appointment = Mock(id='appt-1', patient_id='patient-1', department_code='MG')

        log_appointment_transition(appointment, 'scheduled', 'completed', result='rejected')

        mock_logger.warning.assert_called_once()
        extra = mock_logger.warning.call_args[1]['extra']
        assert extra['event'] == 'appointment_transition'
        assert extra['from_status'] == 'scheduled'
        assert extra['to_status'] == 'completed'
        assert 'first_name' not in extra

    @patch('apps.core.observability.events.logger')
    def test_department_fallback_is_warning(self, mock_logger):
        log_department_fallback('unmapped_appointment_type', appointment_type='telemedicine')

        mock_logger.warning.assert_called_once()
        extra = mock_logger.warning.call_args[1]['extra']
        assert extra['fallback_reason'] == 'unmapped_appointment_type'
        assert extra['appointment_type'] == 'telemedicine'

    @patch('apps.core.observability.events.logger')
    def test_deletion_warning_lists_dependents(self, mock_logger):
        appointment = Mock(id='appt-9', status='completed')
        dependents = [{'type': 'treatment_plan', 'id': 'plan-1'}]

        log_deletion_warning(appointment, dependents, forced=True)

        extra = mock_logger.warning.call_args[1]['extra']
        assert extra['dependents'] == dependents
        assert extra['forced'] is True

    @patch('apps.core.observability.events.logger')
    def test_failed_checkpoint_logged_as_error(self, mock_logger):
        log_consistency_checkpoint(
            'treatment_plan_counter',
            entity_ids={'plan_id': 'plan-1'},
            checks_passed={'within_prescription': False},
        )

        mock_logger.error.assert_called_once()
        extra = mock_logger.error.call_args[1]['extra']
        assert extra['status'] == 'failed'
        assert extra['plan_id'] == 'plan-1'

    def test_sanitized_logger_has_correlation_filter(self):
        logger = get_sanitized_logger('apps.test.correlation')
        again = get_sanitized_logger('apps.test.correlation')

        assert logger is again
        assert len(logger.filters) == 1


@pytest.mark.django_db
class TestHealthChecks:
    """Test health check endpoints."""

    def test_healthz_returns_200(self, client):
        response = client.get('/healthz')

        assert response.status_code == 200
        data = response.json()
        assert data['status'] == 'ok'
        assert data['service'] == 'appointments'
        assert 'version' in data

    def test_readyz_checks_database(self, client):
        response = client.get('/readyz')

        assert response.status_code == 200
        data = response.json()
        assert data['status'] == 'ready'
        assert data['checks'] == {'database': True, 'department_registry': True}

    @patch('apps.core.observability.health.connection')
    def test_readyz_fails_on_db_error(self, mock_connection, client):
        """Readiness check returns 503 on DB failure."""
        mock_connection.cursor.side_effect = DatabaseError('DB connection failed')

        response = client.get('/readyz')

        assert response.status_code == 503
        data = response.json()
        assert data['status'] == 'not_ready'
        assert data['checks']['database'] is False

    @patch('apps.clinical.department_data.KNOWN_DEPARTMENT_CODES', frozenset({'MG'}))
    def test_readyz_fails_on_unregistered_department_code(self, client):
        """A mapped department code missing from the catalogue makes the service not ready."""
        response = client.get('/readyz')

        assert response.status_code == 503
        data = response.json()
        assert data['checks'] == {'database': True, 'department_registry': False}

    @patch('apps.clinical.department_data.VALIDATORS', {'general': object()})
    def test_readyz_fails_on_missing_validator(self, client):
        response = client.get('/readyz')

        assert response.status_code == 503
        assert response.json()['checks']['department_registry'] is False
