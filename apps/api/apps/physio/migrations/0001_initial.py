# Generated migration for physio app - evaluations, treatment plans, discharge summaries

import uuid
import django.core.validators
import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models

import apps.physio.models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
        ('authz', '0001_initial'),
        ('clinical', '0001_initial'),
    ]

    operations = [
        migrations.CreateModel(
            name='PhysioMedicalRecord',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('chief_complaint', models.TextField(blank=True, null=True)),
                ('diagnosis', models.TextField()),
                ('vas_score', models.IntegerField(blank=True, null=True, validators=[django.core.validators.MinValueValidator(0), django.core.validators.MaxValueValidator(10)])),
                ('oswestry_score', models.IntegerField(blank=True, null=True, validators=[django.core.validators.MinValueValidator(0), django.core.validators.MaxValueValidator(100)])),
                ('dash_score', models.IntegerField(blank=True, null=True, validators=[django.core.validators.MinValueValidator(0), django.core.validators.MaxValueValidator(100)])),
                ('roland_morris_score', models.IntegerField(blank=True, null=True, validators=[django.core.validators.MinValueValidator(0), django.core.validators.MaxValueValidator(24)])),
                ('rom_measurements', models.JSONField(blank=True, default=list, validators=[apps.physio.models.validate_rom_measurements])),
                ('strength_grade', models.JSONField(blank=True, default=list, validators=[apps.physio.models.validate_strength_grades])),
                ('short_term_goals', models.JSONField(blank=True, default=list)),
                ('long_term_goals', models.JSONField(blank=True, default=list)),
                ('informed_consent_signed', models.BooleanField(default=False)),
                ('informed_consent_date', models.DateField(blank=True, null=True)),
                ('status', models.CharField(choices=[('active', 'Active'), ('closed', 'Closed')], default='active', max_length=10)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('patient', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='physio_records', to='clinical.patient')),
                ('therapist', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='physio_records', to='authz.practitioner')),
                ('originating_appointment', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='physio_records', to='clinical.appointment')),
                ('created_by_user', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='created_physio_records', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'verbose_name': 'Physiotherapy Evaluation',
                'verbose_name_plural': 'Physiotherapy Evaluations',
                'db_table': 'physio_medical_record',
                'ordering': ['-created_at'],
                'indexes': [
                    models.Index(fields=['patient'], name='idx_physio_record_patient'),
                    models.Index(fields=['status'], name='idx_physio_record_status'),
                ],
            },
        ),
        migrations.CreateModel(
            name='PhysioTreatmentPlan',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('plan_type', models.CharField(choices=[('rehabilitation', 'Rehabilitation'), ('maintenance', 'Maintenance'), ('preventive', 'Preventive'), ('performance', 'Performance')], default='rehabilitation', max_length=20)),
                ('clinical_objective', models.TextField(blank=True, null=True)),
                ('sessions_per_week', models.PositiveSmallIntegerField(validators=[django.core.validators.MinValueValidator(1), django.core.validators.MaxValueValidator(7)])),
                ('total_sessions_prescribed', models.PositiveSmallIntegerField(validators=[django.core.validators.MinValueValidator(1), django.core.validators.MaxValueValidator(100)])),
                ('sessions_completed', models.PositiveSmallIntegerField(default=0)),
                ('status', models.CharField(choices=[('indicated', 'Indicated'), ('active', 'Active'), ('completed', 'Completed'), ('discontinued', 'Discontinued')], default='indicated', max_length=20)),
                ('start_date', models.DateField()),
                ('expected_end_date', models.DateField(blank=True, null=True)),
                ('actual_end_date', models.DateField(blank=True, null=True)),
                ('discontinuation_reason', models.TextField(blank=True, null=True)),
                ('row_version', models.IntegerField(default=1)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('patient', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='physio_treatment_plans', to='clinical.patient')),
                ('medical_record', models.OneToOneField(on_delete=django.db.models.deletion.PROTECT, related_name='treatment_plan', to='physio.physiomedicalrecord')),
                ('therapist', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='physio_treatment_plans', to='authz.practitioner')),
            ],
            options={
                'verbose_name': 'Physiotherapy Treatment Plan',
                'verbose_name_plural': 'Physiotherapy Treatment Plans',
                'db_table': 'physio_treatment_plan',
                'ordering': ['-created_at'],
                'indexes': [
                    models.Index(fields=['patient'], name='idx_physio_plan_patient'),
                    models.Index(fields=['status'], name='idx_physio_plan_status'),
                ],
            },
        ),
        migrations.CreateModel(
            name='PhysioDischargeSummary',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('initial_vas', models.IntegerField(validators=[django.core.validators.MinValueValidator(0), django.core.validators.MaxValueValidator(10)])),
                ('final_vas', models.IntegerField(validators=[django.core.validators.MinValueValidator(0), django.core.validators.MaxValueValidator(10)])),
                ('pain_improvement_percent', models.IntegerField(default=0)),
                ('objectives_achieved', models.JSONField(blank=True, default=list)),
                ('objectives_not_achieved', models.JSONField(blank=True, default=list)),
                ('final_recommendations', models.TextField(blank=True, null=True)),
                ('follow_up_required', models.BooleanField(default=False)),
                ('discharged_at', models.DateTimeField()),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('treatment_plan', models.OneToOneField(on_delete=django.db.models.deletion.PROTECT, related_name='discharge_summary', to='physio.physiotreatmentplan')),
                ('discharged_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='physio_discharges', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'verbose_name': 'Physiotherapy Discharge Summary',
                'verbose_name_plural': 'Physiotherapy Discharge Summaries',
                'db_table': 'physio_discharge_summary',
            },
        ),
    ]
