"""
Health check endpoints.

/healthz answers while the process runs. /readyz answers 200 only when the
appointment engine can serve writes: the database responds and the
department registry resolves every mapped code to a payload validator.
"""
import logging

from django.conf import settings
from django.db import DatabaseError, connection
from django.http import JsonResponse
from django.views import View

logger = logging.getLogger(__name__)


def check_database():
    with connection.cursor() as cursor:
        cursor.execute('SELECT 1')


def check_department_registry():
    """Every mapped department code must resolve to a registered validator."""
    from apps.clinical.department_data import (
        APPOINTMENT_TYPE_DEPARTMENTS,
        DEPARTMENT_VARIANTS,
        GENERAL_MEDICINE_CODE,
        KNOWN_DEPARTMENT_CODES,
        VALIDATORS,
        variant_for_code,
    )

    codes = set(DEPARTMENT_VARIANTS) | set(APPOINTMENT_TYPE_DEPARTMENTS.values()) | {GENERAL_MEDICINE_CODE}
    unknown = sorted(codes - KNOWN_DEPARTMENT_CODES)
    if unknown:
        raise LookupError(f'Unregistered department codes: {", ".join(unknown)}')
    missing = sorted({variant_for_code(code) for code in codes} - set(VALIDATORS))
    if missing:
        raise LookupError(f'No validator for payload variants: {", ".join(missing)}')


READINESS_CHECKS = (
    ('database', check_database, (DatabaseError,)),
    ('department_registry', check_department_registry, (LookupError,)),
)


class HealthzView(View):
    """Liveness only; dependencies are not touched."""

    def get(self, request):
        health_data = {
            'status': 'ok',
            'service': 'appointments',
            'version': getattr(settings, 'VERSION', 'unknown'),
        }

        commit_hash = getattr(settings, 'COMMIT_HASH', None)
        if commit_hash:
            health_data['commit'] = commit_hash

        return JsonResponse(health_data, status=200)


class ReadyzView(View):
    """200 with every check true, 503 with the failing checks false."""

    def get(self, request):
        checks = {name: self._run(name, check, errors) for name, check, errors in READINESS_CHECKS}
        ready = all(checks.values())

        return JsonResponse(
            {'status': 'ready' if ready else 'not_ready', 'checks': checks},
            status=200 if ready else 503
        )

    def _run(self, name, check, errors):
        try:
            check()
        except errors as e:
            logger.error(
                'Readiness check failed',
                extra={'event': 'health_check_failed', 'check': name, 'error': str(e)}
            )
            return False
        return True
