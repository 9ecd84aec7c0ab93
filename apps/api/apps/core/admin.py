from django.contrib import admin
from .models import Department, Room


@admin.register(Department)
class DepartmentAdmin(admin.ModelAdmin):
    list_display = ['code', 'name', 'is_active', 'created_at']
    list_filter = ['is_active']
    search_fields = ['code', 'name']
    readonly_fields = ['id', 'created_at', 'updated_at']


@admin.register(Room)
class RoomAdmin(admin.ModelAdmin):
    list_display = ['room_number', 'department', 'is_active']
    list_filter = ['is_active', 'department']
    search_fields = ['room_number']
    readonly_fields = ['id', 'created_at', 'updated_at']
