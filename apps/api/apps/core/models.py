"""
Core models: department, room.

Hospital reference data shared by scheduling and clinical apps.
"""
import uuid
from django.db import models


class Department(models.Model):
    """
    Hospital departments.

    `code` is the short identifier (MG, FT, LAB, IMG, EM, ...) that selects
    which clinical payload schema owns an appointment booked against the
    department.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    code = models.CharField(max_length=10, unique=True)
    name = models.CharField(max_length=255)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'department'
        verbose_name = 'Department'
        verbose_name_plural = 'Departments'
        indexes = [
            models.Index(fields=['is_active'], name='idx_department_active'),
        ]

    def __str__(self):
        return f"{self.name} ({self.code})"


class Room(models.Model):
    """Consultation rooms, treatment boxes, lab benches and imaging suites."""
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    room_number = models.CharField(max_length=20)
    department = models.ForeignKey(
        'Department',
        on_delete=models.SET_NULL,
        blank=True,
        null=True,
        related_name='rooms'
    )
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'room'
        verbose_name = 'Room'
        verbose_name_plural = 'Rooms'
        indexes = [
            models.Index(fields=['department'], name='idx_room_department'),
        ]

    def __str__(self):
        return self.room_number
