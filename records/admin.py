"""
Django admin registrations for the records models.

Version rows are shown read-only: history is only ever appended by the
record update service.
"""

from django.contrib import admin
from django.contrib.auth.admin import UserAdmin as BaseUserAdmin

from .models import (
    User,
    Appointment,
    MedicalRecord,
    MedicalRecordVersion,
    Prescription,
    AuditEvent,
)


@admin.register(User)
class UserAdmin(BaseUserAdmin):
    list_display = ('username', 'role', 'first_name', 'last_name', 'doctor_department', 'is_staff')
    list_filter = ('role', 'is_staff', 'is_active')
    search_fields = ('username', 'first_name', 'last_name')
    fieldsets = BaseUserAdmin.fieldsets + (('Clinic', {'fields': ('role', 'doctor_department')}),)


@admin.register(Appointment)
class AppointmentAdmin(admin.ModelAdmin):
    list_display = ('id', 'patient', 'doctor', 'appointment_date', 'status')
    list_filter = ('status',)
    search_fields = ('id', 'patient__username', 'doctor__username')


class MedicalRecordVersionInline(admin.TabularInline):
    model = MedicalRecordVersion
    extra = 0
    can_delete = False
    readonly_fields = ('version', 'diagnosis', 'symptoms', 'treatment_plan', 'notes', 'updated_by', 'updated_at')

    def has_add_permission(self, request, obj=None):
        return False


@admin.register(MedicalRecord)
class MedicalRecordAdmin(admin.ModelAdmin):
    list_display = ('id', 'patient', 'doctor', 'status', 'current_version', 'updated_at')
    list_filter = ('status',)
    search_fields = ('id', 'patient__username', 'doctor__username', 'diagnosis')
    # clinical text and version only change through the API
    readonly_fields = ('appointment', 'patient', 'doctor', 'diagnosis', 'symptoms', 'treatment_plan', 'notes',
                       'current_version', 'created_at', 'updated_at')
    inlines = [MedicalRecordVersionInline]


@admin.register(MedicalRecordVersion)
class MedicalRecordVersionAdmin(admin.ModelAdmin):
    list_display = ('record', 'version', 'updated_by', 'updated_at')
    search_fields = ('record__id',)

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(Prescription)
class PrescriptionAdmin(admin.ModelAdmin):
    list_display = ('id', 'medical_record', 'patient', 'doctor', 'status', 'date_signed')
    list_filter = ('status',)
    search_fields = ('id', 'patient__username', 'doctor__username')


@admin.register(AuditEvent)
class AuditEventAdmin(admin.ModelAdmin):
    list_display = ('action', 'object_type', 'object_id', 'user', 'created_at')
    list_filter = ('action', 'object_type')
    search_fields = ('object_id', 'user__username')
