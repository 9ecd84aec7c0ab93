"""
Translate domain errors into DRF responses.

400: validation and illegal transitions
409: consent, plan ownership, deletion blocks, concurrent modification
"""
from django.core.exceptions import ValidationError as DjangoValidationError
from rest_framework import status
from rest_framework.response import Response

from .exceptions import (
    AppointmentDeletionBlocked,
    ConcurrentModification,
    ConsentRequired,
    EvaluationAlreadyHasPlan,
    IllegalTransition,
    InvalidDepartmentPayload,
)

CONFLICT_ERRORS = (ConsentRequired, EvaluationAlreadyHasPlan, AppointmentDeletionBlocked)


def domain_error_response(exc):
    if isinstance(exc, ConcurrentModification):
        return Response(
            {'error': str(exc), 'code': 'concurrent_modification'},
            status=status.HTTP_409_CONFLICT
        )
    if isinstance(exc, InvalidDepartmentPayload):
        return Response(
            {'error': exc.reason, 'field': exc.field, 'code': 'invalid_department_payload'},
            status=status.HTTP_400_BAD_REQUEST
        )
    if isinstance(exc, CONFLICT_ERRORS):
        return Response(
            {'error': exc.messages[0], 'code': exc.code},
            status=status.HTTP_409_CONFLICT
        )
    if isinstance(exc, IllegalTransition):
        return Response(
            {'error': exc.messages[0], 'code': 'illegal_transition',
             'from_status': exc.from_status, 'to_status': exc.to_status},
            status=status.HTTP_400_BAD_REQUEST
        )
    if isinstance(exc, DjangoValidationError):
        if hasattr(exc, 'error_dict'):
            return Response({'error': exc.message_dict}, status=status.HTTP_400_BAD_REQUEST)
        return Response({'error': ' '.join(exc.messages)}, status=status.HTTP_400_BAD_REQUEST)
    raise exc
