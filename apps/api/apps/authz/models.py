"""
Authz models: auth_user, practitioner.

Authentication and role resolution live outside the appointment engine;
these models only give the engine an acting user and the clinicians
(doctors, therapists) appointments and evaluations are assigned to.
"""
import uuid
from django.db import models
from django.contrib.auth.models import AbstractBaseUser, BaseUserManager, PermissionsMixin


# ============================================================================
# Enums
# ============================================================================

class PractitionerKindChoices(models.TextChoices):
    """Clinical staff classification."""
    DOCTOR = 'doctor', 'Doctor'
    PHYSIOTHERAPIST = 'physiotherapist', 'Physiotherapist'
    LAB_TECHNICIAN = 'lab_technician', 'Lab Technician'
    RADIOGRAPHER = 'radiographer', 'Radiographer'
    NURSE = 'nurse', 'Nurse'


# ============================================================================
# User Management
# ============================================================================

class UserManager(BaseUserManager):
    """Custom user manager for email-based authentication."""

    def create_user(self, email, password=None, **extra_fields):
        if not email:
            raise ValueError('Email is required')
        email = self.normalize_email(email)
        user = self.model(email=email, **extra_fields)
        user.set_password(password)
        user.save(using=self._db)
        return user

    def create_superuser(self, email, password=None, **extra_fields):
        extra_fields.setdefault('is_staff', True)
        extra_fields.setdefault('is_superuser', True)
        extra_fields.setdefault('is_active', True)
        return self.create_user(email, password, **extra_fields)


class User(AbstractBaseUser, PermissionsMixin):
    """
    Acting user for audit fields (created_by_user, discharged_by, ...).
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    email = models.EmailField(unique=True, max_length=255)
    first_name = models.CharField(max_length=150, blank=True)
    last_name = models.CharField(max_length=150, blank=True)
    is_active = models.BooleanField(default=True)
    is_staff = models.BooleanField(default=False)  # Required for admin access
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = UserManager()

    USERNAME_FIELD = 'email'
    REQUIRED_FIELDS = []

    class Meta:
        db_table = 'auth_user'
        verbose_name = 'User'
        verbose_name_plural = 'Users'
        indexes = [
            models.Index(fields=['is_active'], name='idx_user_active'),
        ]

    def __str__(self):
        return self.email


class Practitioner(models.Model):
    """
    Clinicians linked to users: doctors own consultations, physiotherapists
    own evaluations, treatment plans and therapy sessions.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    user = models.OneToOneField(
        User,
        on_delete=models.CASCADE,
        related_name='practitioner'
    )
    display_name = models.CharField(max_length=255)
    kind = models.CharField(
        max_length=20,
        choices=PractitionerKindChoices.choices,
        default=PractitionerKindChoices.DOCTOR
    )
    specialty = models.CharField(max_length=100, blank=True, null=True)
    department = models.ForeignKey(
        'core.Department',
        on_delete=models.SET_NULL,
        blank=True,
        null=True,
        related_name='practitioners'
    )
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'practitioner'
        verbose_name = 'Practitioner'
        verbose_name_plural = 'Practitioners'
        indexes = [
            models.Index(fields=['is_active'], name='idx_practitioner_active'),
            models.Index(fields=['kind'], name='idx_practitioner_kind'),
        ]

    def __str__(self):
        return f"{self.display_name} ({self.get_kind_display()})"
