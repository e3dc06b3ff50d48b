"""
Clinical serializers for Doctor, Appointment and AppointmentMessage.
"""
from django.utils import timezone
from rest_framework import serializers

from apps.clinical.models import (
    Appointment,
    AppointmentMessage,
    AppointmentStatusChoices,
    AppointmentTypeChoices,
    Doctor,
    Patient,
)
from apps.clinical.windows import can_cancel, can_edit, can_join_virtual_session, hours_until

TIME_OF_DAY_REGEX = r'^([01]\d|2[0-3]):[0-5]\d$'


class DoctorSerializer(serializers.ModelSerializer):
    """Doctor listing for the booking form."""
    clinic_name = serializers.CharField(source='clinic.name', read_only=True)

    class Meta:
        model = Doctor
        fields = [
            'id',
            'display_name',
            'specialty',
            'clinic_id',
            'clinic_name',
            'verification_status',
            'is_active',
        ]
        read_only_fields = fields


class DoctorRejectSerializer(serializers.Serializer):
    reason = serializers.CharField(required=False, allow_blank=True, default='')


class AppointmentListSerializer(serializers.ModelSerializer):
    """Serializer for Appointment list view (lightweight)"""
    patient_name = serializers.CharField(source='patient.full_name', read_only=True)
    doctor_name = serializers.CharField(source='doctor.display_name', read_only=True)
    clinic_name = serializers.CharField(source='clinic.name', read_only=True)

    class Meta:
        model = Appointment
        fields = [
            'id',
            'patient_id',
            'patient_name',
            'doctor_id',
            'doctor_name',
            'clinic_id',
            'clinic_name',
            'appointment_date',
            'appointment_time',
            'appointment_type',
            'status',
            'created_at',
            'updated_at',
        ]
        read_only_fields = fields


class AppointmentDetailSerializer(AppointmentListSerializer):
    """
    Serializer for Appointment detail view (all fields, read-only).

    Includes the access-window flags the dashboards use to show or hide the
    edit, cancel and join buttons.
    """
    hours_until = serializers.SerializerMethodField()
    can_edit = serializers.SerializerMethodField()
    can_cancel = serializers.SerializerMethodField()
    can_join = serializers.SerializerMethodField()

    class Meta(AppointmentListSerializer.Meta):
        fields = AppointmentListSerializer.Meta.fields + [
            'reason',
            'virtual_session_started',
            'virtual_session_ended',
            'session_start_time',
            'session_end_time',
            'meeting_room_id',
            'meeting_link',
            'reminder_sent_at',
            'hours_until',
            'can_edit',
            'can_cancel',
            'can_join',
        ]
        read_only_fields = fields

    def _now(self):
        return self.context.get('now') or timezone.now()

    def get_hours_until(self, obj):
        return hours_until(obj, self._now())

    def get_can_edit(self, obj):
        return can_edit(obj, self._now())

    def get_can_cancel(self, obj):
        return can_cancel(obj)

    def get_can_join(self, obj):
        return can_join_virtual_session(obj)


class AppointmentBookingSerializer(serializers.Serializer):
    """
    Input for POST /api/v1/appointments/

    ``patient`` is only read for admins booking on someone's behalf;
    patients always book for their own profile.
    """
    doctor = serializers.PrimaryKeyRelatedField(queryset=Doctor.objects.select_related('clinic'))
    patient = serializers.PrimaryKeyRelatedField(queryset=Patient.objects.all(), required=False)
    appointment_date = serializers.DateField()
    appointment_time = serializers.RegexField(TIME_OF_DAY_REGEX, error_messages={'invalid': 'Use HH:MM (24h)'})
    appointment_type = serializers.ChoiceField(
        choices=AppointmentTypeChoices.choices,
        default=AppointmentTypeChoices.IN_PERSON
    )
    reason = serializers.CharField(required=False, allow_blank=True, default='')


class AppointmentTransitionSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=AppointmentStatusChoices.choices)


class AppointmentRescheduleSerializer(serializers.Serializer):
    appointment_date = serializers.DateField()
    appointment_time = serializers.RegexField(TIME_OF_DAY_REGEX, error_messages={'invalid': 'Use HH:MM (24h)'})


class AppointmentMessageSerializer(serializers.ModelSerializer):
    sender_email = serializers.EmailField(source='sender.email', read_only=True)

    class Meta:
        model = AppointmentMessage
        fields = [
            'id',
            'appointment_id',
            'sender_id',
            'sender_email',
            'sender_role',
            'message',
            'is_follow_up',
            'is_read',
            'created_at',
        ]
        read_only_fields = [
            'id',
            'appointment_id',
            'sender_id',
            'sender_email',
            'sender_role',
            'is_follow_up',
            'is_read',
            'created_at',
        ]
