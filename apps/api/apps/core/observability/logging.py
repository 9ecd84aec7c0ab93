"""
Structured logging with PHI/PII protection.

Provides filters, formatters, and helpers for safe logging.
"""
import logging
import json
from datetime import datetime, timezone

from .correlation import get_request_id, get_trace_id, get_user_id


# Fields that should NEVER be logged (PHI/PII and free-text clinical notes)
SENSITIVE_FIELDS = {
    'password',
    'token',
    'secret',
    'api_key',
    'first_name',
    'last_name',
    'email',
    'phone',
    'address',
    'date_of_birth',
    'national_id',
    'reason',
    'notes',
    'chief_complaint',
    'chiefcomplaint',
    'diagnosis',
    'therapistnotes',
    'therapist_notes',
    'preparationinstructions',
    'lastmenstrualperiod',
    'final_recommendations',
    'subjective',
    'objective',
    'assessment',
    'patient_response',
    'adverse_reactions',
    'home_exercises',
}

# Attributes every LogRecord carries; never copied into the JSON payload
_RESERVED_RECORD_ATTRS = {
    'name', 'msg', 'args', 'created', 'filename', 'funcName', 'levelname',
    'levelno', 'lineno', 'module', 'msecs', 'pathname', 'process',
    'processName', 'relativeCreated', 'thread', 'threadName', 'exc_info',
    'exc_text', 'stack_info', 'taskName', 'message',
}


def _is_sensitive(key):
    return str(key).lower() in SENSITIVE_FIELDS


class CorrelationFilter(logging.Filter):
    """
    Logging filter that injects correlation context into log records.
    """

    def filter(self, record):
        record.request_id = get_request_id() or '-'
        record.trace_id = get_trace_id() or '-'
        record.user_id = get_user_id() or '-'
        return True


class SanitizedJSONFormatter(logging.Formatter):
    """
    JSON formatter that redacts sensitive fields.
    """

    def format(self, record):
        log_data = {
            'timestamp': datetime.now(timezone.utc).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
            'request_id': getattr(record, 'request_id', '-'),
            'trace_id': getattr(record, 'trace_id', '-'),
            'user_id': getattr(record, 'user_id', '-'),
        }

        # Fields passed through extra={...}
        for key, value in record.__dict__.items():
            if key in log_data or key.startswith('_') or key in _RESERVED_RECORD_ATTRS:
                continue
            log_data[key] = '[REDACTED]' if _is_sensitive(key) else sanitize_value(value)

        if record.exc_info:
            log_data['exception'] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


def get_sanitized_logger(name):
    """
    Get a logger with correlation filter applied.

    Usage:
        logger = get_sanitized_logger(__name__)
        logger.info('Plan created', extra={'plan_id': str(plan.id)})
    """
    logger = logging.getLogger(name)

    if not any(isinstance(f, CorrelationFilter) for f in logger.filters):
        logger.addFilter(CorrelationFilter())

    return logger


def sanitize_value(value):
    """Redact sensitive keys inside nested dicts/lists."""
    if isinstance(value, dict):
        return sanitize_dict(value)
    if isinstance(value, (list, tuple)):
        return [sanitize_value(v) for v in value]
    return value


def sanitize_dict(data):
    """
    Sanitize a dictionary by redacting sensitive fields.

    Args:
        data: Dictionary to sanitize

    Returns:
        Sanitized copy of dictionary
    """
    if not isinstance(data, dict):
        return data

    return {
        key: '[REDACTED]' if _is_sensitive(key) else sanitize_value(value)
        for key, value in data.items()
    }
