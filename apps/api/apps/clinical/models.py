"""
Clinical models: doctor, patient, appointment, appointment_message
"""
import uuid
from datetime import datetime, time

from django.conf import settings
from django.db import models
from django.utils import timezone


# ============================================================================
# Enums
# ============================================================================

class VerificationStatusChoices(models.TextChoices):
    """Doctor verification status (set by a system admin)"""
    PENDING = 'pending', 'Pending'
    VERIFIED = 'verified', 'Verified'
    REJECTED = 'rejected', 'Rejected'


class AppointmentTypeChoices(models.TextChoices):
    """Appointment type"""
    IN_PERSON = 'in-person', 'In Person'
    VIRTUAL = 'virtual', 'Virtual'


class AppointmentStatusChoices(models.TextChoices):
    """
    Appointment status with allowed transitions:
    - pending -> confirmed | cancelled
    - confirmed -> in_progress | completed | cancelled
    - in_progress -> completed
    - completed, cancelled are terminal states
    """
    PENDING = 'pending', 'Pending'
    CONFIRMED = 'confirmed', 'Confirmed'
    IN_PROGRESS = 'in_progress', 'In Progress'
    COMPLETED = 'completed', 'Completed'
    CANCELLED = 'cancelled', 'Cancelled'


# ============================================================================
# Models
# ============================================================================

class Doctor(models.Model):
    """
    Doctors linked to users and to the clinic they practise at.

    BUSINESS RULES:
    - Only verified, active doctors accept bookings
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    user = models.OneToOneField(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='doctor_profile'
    )
    clinic = models.ForeignKey(
        'core.Clinic',
        on_delete=models.PROTECT,
        related_name='doctors'
    )
    display_name = models.CharField(max_length=255)
    specialty = models.CharField(max_length=100, default='General Practice')
    verification_status = models.CharField(
        max_length=20,
        choices=VerificationStatusChoices.choices,
        default=VerificationStatusChoices.PENDING
    )
    rejection_reason = models.TextField(blank=True, null=True)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'doctor'
        verbose_name = 'Doctor'
        verbose_name_plural = 'Doctors'
        indexes = [
            models.Index(fields=['clinic'], name='idx_doctor_clinic'),
            models.Index(fields=['verification_status'], name='idx_doctor_verification'),
        ]

    def __str__(self):
        return f"Dr. {self.display_name}"

    @property
    def is_bookable(self):
        return self.is_active and self.verification_status == VerificationStatusChoices.VERIFIED


class Patient(models.Model):
    """Patient profile linked to a login user."""
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    user = models.OneToOneField(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='patient_profile'
    )
    first_name = models.CharField(max_length=100)
    last_name = models.CharField(max_length=100)
    phone = models.CharField(max_length=50, blank=True, null=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'patient'
        verbose_name = 'Patient'
        verbose_name_plural = 'Patients'

    def __str__(self):
        return self.full_name

    @property
    def full_name(self):
        return f"{self.first_name} {self.last_name}"


class Appointment(models.Model):
    """
    Scheduled appointments.

    Fields:
    - id: UUID PK
    - patient_id, doctor_id, clinic_id: FKs
    - appointment_date: calendar date
    - appointment_time: "HH:MM" local time of day (settings.TIME_ZONE)
    - appointment_type: enum (in-person|virtual)
    - status: enum
    - virtual_session_started / virtual_session_ended: bool
    - session_start_time, session_end_time: nullable
    - meeting_room_id, meeting_link: nullable (virtual only)
    - reminder_sent_at: nullable, set once when the 24h reminder is claimed
    - created_at, updated_at

    Status changes go through apps.clinical.lifecycle, never through save().
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    patient = models.ForeignKey(
        'Patient',
        on_delete=models.PROTECT,
        related_name='appointments'
    )
    doctor = models.ForeignKey(
        'Doctor',
        on_delete=models.PROTECT,
        related_name='appointments'
    )
    clinic = models.ForeignKey(
        'core.Clinic',
        on_delete=models.PROTECT,
        related_name='appointments'
    )
    appointment_date = models.DateField()
    appointment_time = models.CharField(max_length=5, help_text='HH:MM, clinic local time')
    appointment_type = models.CharField(
        max_length=20,
        choices=AppointmentTypeChoices.choices,
        default=AppointmentTypeChoices.IN_PERSON
    )
    status = models.CharField(
        max_length=20,
        choices=AppointmentStatusChoices.choices,
        default=AppointmentStatusChoices.PENDING
    )
    reason = models.TextField(blank=True, null=True)

    virtual_session_started = models.BooleanField(default=False)
    virtual_session_ended = models.BooleanField(default=False)
    session_start_time = models.DateTimeField(blank=True, null=True)
    session_end_time = models.DateTimeField(blank=True, null=True)
    meeting_room_id = models.CharField(max_length=100, blank=True, null=True)
    meeting_link = models.URLField(max_length=500, blank=True, null=True)

    reminder_sent_at = models.DateTimeField(blank=True, null=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'appointment'
        verbose_name = 'Appointment'
        verbose_name_plural = 'Appointments'
        indexes = [
            models.Index(fields=['patient'], name='idx_appointment_patient'),
            models.Index(fields=['doctor'], name='idx_appointment_doctor'),
            models.Index(fields=['appointment_date'], name='idx_appointment_date'),
            models.Index(fields=['status'], name='idx_appointment_status'),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(virtual_session_ended=False) | models.Q(virtual_session_started=True),
                name='chk_appointment_session_ended_requires_started',
            ),
        ]

    # BUSINESS RULE: Allowed status transitions
    _ALLOWED_TRANSITIONS = {
        'pending': ['confirmed', 'cancelled'],
        'confirmed': ['in_progress', 'completed', 'cancelled'],
        'in_progress': ['completed'],
        'completed': [],  # Terminal state
        'cancelled': [],  # Terminal state
    }

    def __str__(self):
        return f"Appointment {self.appointment_date} {self.appointment_time} - {self.patient}"

    @classmethod
    def allowed_transitions(cls, from_status):
        return list(cls._ALLOWED_TRANSITIONS.get(from_status, []))

    @property
    def is_terminal(self):
        return not self._ALLOWED_TRANSITIONS.get(self.status)

    @property
    def is_virtual(self):
        return self.appointment_type == AppointmentTypeChoices.VIRTUAL

    @property
    def scheduled_at(self):
        """Aware datetime of the appointment in the configured local zone."""
        return combine_local(self.appointment_date, self.appointment_time)


class AppointmentMessage(models.Model):
    """Messages exchanged between patient and doctor about one appointment."""
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    appointment = models.ForeignKey(
        'Appointment',
        on_delete=models.CASCADE,
        related_name='messages'
    )
    sender = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='appointment_messages'
    )
    sender_role = models.CharField(max_length=20)
    message = models.TextField()
    is_follow_up = models.BooleanField(default=False)
    is_read = models.BooleanField(default=False)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'appointment_message'
        verbose_name = 'Appointment Message'
        verbose_name_plural = 'Appointment Messages'
        ordering = ['created_at']
        indexes = [
            models.Index(fields=['appointment', 'is_read'], name='idx_message_unread'),
        ]

    def __str__(self):
        return f"Message on {self.appointment_id} by {self.sender_role}"


def parse_time_of_day(value):
    """Parse an "HH:MM" (or "HH:MM:SS") string into a time."""
    if isinstance(value, time):
        return value
    return time.fromisoformat(value)


def combine_local(day, time_of_day):
    naive = datetime.combine(day, parse_time_of_day(time_of_day))
    return timezone.make_aware(naive, timezone.get_default_timezone())
