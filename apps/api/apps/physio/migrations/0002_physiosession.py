# Generated migration for physio app - per-appointment SOAP session notes

import uuid
import django.core.validators
import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models

import apps.physio.models


class Migration(migrations.Migration):

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
        ('authz', '0001_initial'),
        ('clinical', '0001_initial'),
        ('physio', '0001_initial'),
    ]

    operations = [
        migrations.CreateModel(
            name='PhysioSession',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('session_number', models.PositiveSmallIntegerField(blank=True, null=True)),
                ('session_date', models.DateField()),
                ('duration_minutes', models.PositiveSmallIntegerField(default=45, validators=[django.core.validators.MinValueValidator(1), django.core.validators.MaxValueValidator(480)])),
                ('subjective', models.TextField(blank=True, default='')),
                ('objective', models.TextField(blank=True, default='')),
                ('assessment', models.TextField(blank=True, default='')),
                ('plan', models.TextField(blank=True, default='')),
                ('pain_before', models.IntegerField(blank=True, null=True, validators=[django.core.validators.MinValueValidator(0), django.core.validators.MaxValueValidator(10)])),
                ('pain_after', models.IntegerField(blank=True, null=True, validators=[django.core.validators.MinValueValidator(0), django.core.validators.MaxValueValidator(10)])),
                ('techniques_applied', models.JSONField(blank=True, default=list, validators=[apps.physio.models.validate_techniques])),
                ('equipment_used', models.JSONField(blank=True, default=list)),
                ('patient_response', models.TextField(blank=True, null=True)),
                ('tolerance', models.TextField(blank=True, null=True)),
                ('adverse_reactions', models.TextField(blank=True, null=True)),
                ('home_exercises', models.TextField(blank=True, null=True)),
                ('next_session_objectives', models.JSONField(blank=True, default=list)),
                ('patient_present', models.BooleanField(default=True)),
                ('signed_at', models.DateTimeField(blank=True, null=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('appointment', models.OneToOneField(on_delete=django.db.models.deletion.PROTECT, related_name='physio_session', to='clinical.appointment')),
                ('patient', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='physio_sessions', to='clinical.patient')),
                ('therapist', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='physio_sessions', to='authz.practitioner')),
                ('medical_record', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name='sessions', to='physio.physiomedicalrecord')),
                ('treatment_plan', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name='sessions', to='physio.physiotreatmentplan')),
                ('signed_by_user', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='signed_physio_sessions', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'verbose_name': 'Physiotherapy Session',
                'verbose_name_plural': 'Physiotherapy Sessions',
                'db_table': 'physio_session',
                'ordering': ['-session_date', '-created_at'],
                'indexes': [
                    models.Index(fields=['medical_record'], name='idx_physio_session_record'),
                    models.Index(fields=['treatment_plan'], name='idx_physio_session_plan'),
                ],
            },
        ),
    ]
