from django.contrib import admin
from .models import Doctor, Patient, Appointment, AppointmentMessage


@admin.register(Doctor)
class DoctorAdmin(admin.ModelAdmin):
    list_display = ['display_name', 'specialty', 'clinic', 'verification_status', 'is_active', 'created_at']
    list_filter = ['verification_status', 'is_active', 'specialty']
    search_fields = ['display_name', 'user__email']
    readonly_fields = ['id', 'created_at', 'updated_at']


@admin.register(Patient)
class PatientAdmin(admin.ModelAdmin):
    list_display = ['first_name', 'last_name', 'phone', 'created_at']
    search_fields = ['first_name', 'last_name', 'user__email', 'phone']
    readonly_fields = ['id', 'created_at', 'updated_at']


class AppointmentMessageInline(admin.TabularInline):
    model = AppointmentMessage
    extra = 0
    readonly_fields = ['sender', 'sender_role', 'message', 'is_follow_up', 'is_read', 'created_at']


@admin.register(Appointment)
class AppointmentAdmin(admin.ModelAdmin):
    list_display = ['appointment_date', 'appointment_time', 'patient', 'doctor', 'clinic', 'appointment_type', 'status']
    list_filter = ['status', 'appointment_type', 'appointment_date']
    search_fields = ['patient__first_name', 'patient__last_name', 'doctor__display_name']
    # Status and session fields change only through apps.clinical.lifecycle
    readonly_fields = [
        'id', 'status', 'virtual_session_started', 'virtual_session_ended',
        'session_start_time', 'session_end_time', 'reminder_sent_at',
        'created_at', 'updated_at',
    ]
    inlines = [AppointmentMessageInline]
