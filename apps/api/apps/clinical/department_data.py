"""
Department-specific appointment payloads.

Every appointment carries a JSON payload whose shape depends on the
department that owns it. The payload is a closed tagged union keyed by
``variant``:

- general        (MG and every department without a dedicated form)
- physiotherapy  (FT)
- laboratory     (LAB)
- imaging        (IMG, RAD)

Each variant has a DRF serializer describing its fields and defaults and a
PayloadValidator that merges a partial update over the stored payload,
applies the serializer and returns a ValidatedPayload. Keys the variant
does not declare are rejected, never dropped. ``normalize`` is a fixed
point on its own output.
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple

from django.db import models
from rest_framework import serializers

from apps.core.observability import metrics
from apps.core.observability.events import log_department_fallback, log_payload_rejected

from .exceptions import InvalidDepartmentPayload

logger = logging.getLogger(__name__)


# ============================================================================
# Registry
# ============================================================================

class PayloadVariantChoices(models.TextChoices):
    GENERAL = 'general', 'General'
    PHYSIOTHERAPY = 'physiotherapy', 'Physiotherapy'
    LABORATORY = 'laboratory', 'Laboratory'
    IMAGING = 'imaging', 'Imaging'


GENERAL_MEDICINE_CODE = 'MG'

# Department catalogue. Codes outside it still resolve, to the general form.
KNOWN_DEPARTMENT_CODES = frozenset({
    'MG', 'FT', 'LAB', 'IMG', 'RAD', 'EM', 'CAR', 'PED', 'CG', 'CX',
    'URG', 'FAR', 'OFT', 'DER', 'GIN', 'PSI', 'NUT', 'FIS',
})

DEPARTMENT_VARIANTS = {
    'FT': PayloadVariantChoices.PHYSIOTHERAPY,
    'LAB': PayloadVariantChoices.LABORATORY,
    'IMG': PayloadVariantChoices.IMAGING,
    'RAD': PayloadVariantChoices.IMAGING,
}

APPOINTMENT_TYPE_DEPARTMENTS = {
    'physiotherapy': 'FT',
    'imaging': 'IMG',
    'laboratory': 'LAB',
    'emergency': 'EM',
    'surgery': GENERAL_MEDICINE_CODE,
    'consultation': GENERAL_MEDICINE_CODE,
    'follow_up': GENERAL_MEDICINE_CODE,
    'procedure': GENERAL_MEDICINE_CODE,
}

# Physiotherapy session types that count against a treatment plan.
THERAPY_SESSION_TYPES = frozenset({
    'treatment', 'follow_up', 'electrotherapy', 'hydrotherapy',
    'manual_therapy', 'exercise_therapy',
})

# Session types that work on a body region and therefore must name one.
HANDS_ON_SESSION_TYPES = frozenset({
    'treatment', 'electrotherapy', 'hydrotherapy', 'manual_therapy', 'exercise_therapy',
})

PHYSIO_TECHNIQUES = (
    'massage', 'mobilization', 'manipulation', 'stretching', 'strengthening',
    'pneumatic_compression', 'electrotherapy', 'ultrasound', 'laser',
    'heat_therapy', 'cold_therapy', 'traction', 'taping', 'myofascial_release',
    'trigger_point',
)


@dataclass(frozen=True)
class ValidatedPayload:
    department_code: str
    variant: str
    data: Dict[str, Any]
    warnings: Tuple[Dict[str, str], ...] = field(default_factory=tuple)


# ============================================================================
# Variant serializers
# ============================================================================

class GeneralPayloadSerializer(serializers.Serializer):
    visitType = serializers.ChoiceField(
        choices=['new_patient', 'follow_up', 'preventive', 'acute_illness', 'chronic_disease'],
        default='follow_up',
    )
    priority = serializers.ChoiceField(choices=['routine', 'urgent', 'emergency'], default='routine')
    chiefComplaint = serializers.CharField(required=False, allow_blank=True)
    symptoms = serializers.ListField(child=serializers.CharField(), required=False)
    severity = serializers.ChoiceField(choices=['mild', 'moderate', 'severe'], required=False)
    requiresReferral = serializers.BooleanField(required=False)
    referralType = serializers.ChoiceField(
        choices=['specialist', 'laboratory', 'imaging', 'physiotherapy', 'emergency'],
        required=False,
    )
    notes = serializers.CharField(required=False, allow_blank=True)

    def validate(self, attrs):
        if attrs.get('referralType') and not attrs.get('requiresReferral'):
            raise serializers.ValidationError(
                {'referralType': 'referralType is only allowed when requiresReferral is true'}
            )
        return attrs


class PhysiotherapyPayloadSerializer(serializers.Serializer):
    sessionType = serializers.ChoiceField(
        choices=[
            'initial_assessment', 'follow_up', 'treatment', 'reassessment',
            'electrotherapy', 'hydrotherapy', 'manual_therapy', 'exercise_therapy',
        ],
        default='treatment',
    )
    bodyRegion = serializers.ListField(
        child=serializers.ChoiceField(choices=[
            'cervical', 'thoracic', 'lumbar', 'sacral', 'shoulder', 'elbow',
            'wrist', 'hand', 'hip', 'knee', 'ankle', 'foot', 'whole_body',
        ]),
        default=list,
    )
    painLevel = serializers.IntegerField(min_value=0, max_value=10, default=0)
    painType = serializers.ChoiceField(
        choices=['sharp', 'dull', 'burning', 'throbbing', 'stabbing', 'aching', 'tingling', 'numbness'],
        required=False,
    )
    techniques = serializers.ListField(
        child=serializers.ChoiceField(choices=PHYSIO_TECHNIQUES),
        default=list,
    )
    sessionNumber = serializers.IntegerField(min_value=1, required=False)
    estimatedDuration = serializers.IntegerField(min_value=1, default=45)
    requiresInitialAssessment = serializers.BooleanField(default=False)
    therapistNotes = serializers.CharField(required=False, allow_blank=True)

    def validate(self, attrs):
        if attrs['sessionType'] in HANDS_ON_SESSION_TYPES and not attrs['bodyRegion']:
            raise serializers.ValidationError(
                {'bodyRegion': f'At least one body region is required for {attrs["sessionType"]} sessions'}
            )
        return attrs


class LabTestRequestSerializer(serializers.Serializer):
    testId = serializers.CharField()
    testName = serializers.CharField()
    customName = serializers.CharField(required=False)
    quantity = serializers.IntegerField(min_value=1, required=False)


class LaboratoryPayloadSerializer(serializers.Serializer):
    sampleType = serializers.ChoiceField(
        choices=[
            'blood', 'urine', 'stool', 'tissue', 'cerebrospinal_fluid',
            'synovial_fluid', 'sputum', 'other',
        ],
        default='blood',
    )
    tests = serializers.ListField(child=LabTestRequestSerializer(), default=list)
    priority = serializers.ChoiceField(choices=['routine', 'urgent', 'stat'], default='routine')
    requiresFasting = serializers.BooleanField(default=False)
    fastingHours = serializers.IntegerField(required=False)
    preparationInstructions = serializers.CharField(required=False, allow_blank=True)

    def validate(self, attrs):
        if attrs['requiresFasting']:
            hours = attrs.get('fastingHours')
            if hours is None:
                raise serializers.ValidationError(
                    {'fastingHours': 'fastingHours is required when requiresFasting is true'}
                )
            if not 4 <= hours <= 24:
                raise serializers.ValidationError(
                    {'fastingHours': 'fastingHours must be between 4 and 24'}
                )
        return attrs


class ImagingPayloadSerializer(serializers.Serializer):
    imagingType = serializers.ChoiceField(
        choices=[
            'xray', 'ultrasound', 'ct', 'mri', 'mammography',
            'fluoroscopy', 'angiography', 'bone_densitometry', 'pet_scan',
        ],
        default='xray',
    )
    bodyPart = serializers.ChoiceField(
        choices=[
            'head', 'neck', 'chest', 'abdomen', 'pelvis',
            'spine', 'upper_extremity', 'lower_extremity', 'whole_body',
        ],
        default='chest',
    )
    specificRegion = serializers.CharField(required=False, allow_blank=True)
    contrastRequired = serializers.BooleanField(default=False)
    contrastType = serializers.ChoiceField(choices=['iodine', 'gadolinium', 'barium', 'none'], required=False)
    contrastDose = serializers.FloatField(min_value=0, required=False)
    pregnancyRisk = serializers.BooleanField(default=False)
    lastMenstrualPeriod = serializers.DateField(required=False)
    preProcedureInstructions = serializers.CharField(required=False, allow_blank=True)

    def validate(self, attrs):
        if attrs['contrastRequired']:
            if not attrs.get('contrastType') or attrs['contrastType'] == 'none':
                raise serializers.ValidationError(
                    {'contrastType': 'contrastType is required when contrastRequired is true'}
                )
            if attrs.get('contrastDose') is None:
                raise serializers.ValidationError(
                    {'contrastDose': 'contrastDose is required when contrastRequired is true'}
                )
        if attrs['pregnancyRisk'] and not attrs.get('lastMenstrualPeriod'):
            raise serializers.ValidationError(
                {'lastMenstrualPeriod': 'lastMenstrualPeriod is required when pregnancyRisk is true'}
            )
        return attrs


# ============================================================================
# Validators
# ============================================================================

def _first_error(errors, prefix=''):
    """Flatten DRF's nested error structure to a single (field, reason) pair."""
    if isinstance(errors, dict):
        for key, value in errors.items():
            path = f'{prefix}.{key}' if prefix else str(key)
            if key == 'non_field_errors':
                path = prefix or 'variant'
            return _first_error(value, path)
    if isinstance(errors, list):
        for index, value in enumerate(errors):
            if isinstance(value, (dict, list)):
                if value:
                    return _first_error(value, f'{prefix}[{index}]')
                continue
            return prefix, str(value)
    return prefix, str(errors)


def _unknown_field(serializer, data, prefix=''):
    """First key in ``data`` (nested lists included) the serializer does not declare."""
    fields = serializer.fields
    for key, value in data.items():
        path = f'{prefix}.{key}' if prefix else key
        if key not in fields:
            return path
        child = getattr(fields[key], 'child', None)
        if isinstance(child, serializers.Serializer) and isinstance(value, list):
            for index, item in enumerate(value):
                if isinstance(item, dict):
                    found = _unknown_field(child, item, f'{path}[{index}]')
                    if found:
                        return found
    return None


class PayloadValidator:
    """
    Normalizes one payload variant.

    Subclasses set ``variant`` and ``serializer_class`` and may override
    ``collect_warnings`` for non-blocking findings.
    """
    variant = None
    serializer_class = None

    def normalize(self, raw_partial, existing=None, department_code=None) -> ValidatedPayload:
        merged = self.merge(raw_partial, existing)

        declared = merged.pop('variant', self.variant)
        if declared != self.variant:
            self._reject('variant', f'Payload variant "{declared}" does not match "{self.variant}"',
                         department_code)

        with metrics.department_payload_validation_duration_seconds.time():
            serializer = self.serializer_class(data=merged)
            unknown = _unknown_field(serializer, merged)
            valid = unknown is None and serializer.is_valid()
        if unknown is not None:
            self._reject(unknown, f'Unknown field for {self.variant} payload', department_code)
        if not valid:
            field_name, reason = _first_error(serializer.errors)
            self._reject(field_name, reason, department_code)

        data = dict(serializer.data)
        data['variant'] = self.variant
        return ValidatedPayload(
            department_code=department_code,
            variant=self.variant,
            data=data,
            warnings=tuple(self.collect_warnings(data)),
        )

    def merge(self, raw_partial, existing=None):
        """
        Shallow merge of ``raw_partial`` over ``existing``.

        Lists are replaced wholesale. A None value removes the key.
        """
        merged = dict(existing or {})
        for key, value in (raw_partial or {}).items():
            if value is None:
                merged.pop(key, None)
            else:
                merged[key] = value
        return merged

    def collect_warnings(self, data):
        return []

    def _reject(self, field_name, reason, department_code):
        metrics.department_payload_rejections_total.labels(variant=self.variant).inc()
        log_payload_rejected(self.variant, field_name, department_code=department_code)
        raise InvalidDepartmentPayload(field_name, reason)


class GeneralPayloadValidator(PayloadValidator):
    variant = PayloadVariantChoices.GENERAL.value
    serializer_class = GeneralPayloadSerializer


class PhysiotherapyPayloadValidator(PayloadValidator):
    variant = PayloadVariantChoices.PHYSIOTHERAPY.value
    serializer_class = PhysiotherapyPayloadSerializer


class LaboratoryPayloadValidator(PayloadValidator):
    variant = PayloadVariantChoices.LABORATORY.value
    serializer_class = LaboratoryPayloadSerializer

    def collect_warnings(self, data):
        if not data.get('tests'):
            return [{'field': 'tests', 'reason': 'No laboratory tests requested'}]
        return []


class ImagingPayloadValidator(PayloadValidator):
    variant = PayloadVariantChoices.IMAGING.value
    serializer_class = ImagingPayloadSerializer


VALIDATORS = {
    PayloadVariantChoices.GENERAL.value: GeneralPayloadValidator(),
    PayloadVariantChoices.PHYSIOTHERAPY.value: PhysiotherapyPayloadValidator(),
    PayloadVariantChoices.LABORATORY.value: LaboratoryPayloadValidator(),
    PayloadVariantChoices.IMAGING.value: ImagingPayloadValidator(),
}


# ============================================================================
# Dispatch
# ============================================================================

def resolve_department_code(appointment_type, explicit_code=None):
    """
    Effective department code for an appointment.

    An explicit code always wins, unchanged. Otherwise the appointment type
    maps through APPOINTMENT_TYPE_DEPARTMENTS; unmapped types fall back to
    general medicine with a warning.
    """
    if explicit_code:
        return explicit_code

    code = APPOINTMENT_TYPE_DEPARTMENTS.get(appointment_type)
    if code is None:
        metrics.department_code_fallback_total.labels(reason='unmapped_appointment_type').inc()
        log_department_fallback('unmapped_appointment_type', appointment_type=appointment_type)
        return GENERAL_MEDICINE_CODE
    return code


def variant_for_code(department_code):
    return DEPARTMENT_VARIANTS.get(department_code, PayloadVariantChoices.GENERAL).value


def select_validator(department_code) -> PayloadValidator:
    """Validator for a department code. Never fails."""
    if department_code not in KNOWN_DEPARTMENT_CODES:
        metrics.department_code_fallback_total.labels(reason='unknown_department_code').inc()
        log_department_fallback('unknown_department_code', department_code=department_code)
    return VALIDATORS[variant_for_code(department_code)]


def resolve_and_validate_payload(
    appointment_type: str,
    explicit_code: Optional[str] = None,
    raw_partial: Optional[Dict[str, Any]] = None,
    existing: Optional[Dict[str, Any]] = None,
) -> ValidatedPayload:
    """
    Resolve the department code and normalize the payload in one step.

    Raises:
        InvalidDepartmentPayload: payload violates its variant's rules
    """
    department_code = resolve_department_code(appointment_type, explicit_code)
    validator = select_validator(department_code)
    result = validator.normalize(raw_partial, existing, department_code=department_code)
    if result.warnings:
        logger.info(
            'Department payload accepted with warnings',
            extra={'department_code': department_code, 'variant': result.variant,
                   'warning_fields': [w['field'] for w in result.warnings]}
        )
    return result
