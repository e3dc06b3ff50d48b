"""
Tests for the appointment reminder scan.

BUSINESS RULES:
- Confirmed appointments 23 to 25 whole hours away get one reminder to the
  patient and one to the doctor
- A reminder is sent at most once, however often the scan runs
- A failure on one appointment does not stop the others
"""
from datetime import timedelta
from io import StringIO
from unittest.mock import patch

import pytest
from django.core.management import call_command

from apps.clinical.models import Appointment, AppointmentStatusChoices as S
from apps.clinical.reminders import claim_reminder, scan_appointment_reminders
from apps.clinical.tasks import scan_appointment_reminders as scan_task

from .conftest import NOW, future_hour


@pytest.mark.django_db
class TestReminderScan:

    def test_due_appointment_notifies_patient_and_doctor(self, make_appointment, mailoutbox):
        appointment = make_appointment(starts_at=NOW + timedelta(hours=24), status=S.CONFIRMED)

        summary = scan_appointment_reminders(now=NOW)

        assert summary['sent'] == 1
        assert len(mailoutbox) == 2
        recipients = sorted(mail.to[0] for mail in mailoutbox)
        assert recipients == ['dr.naidoo@sunrise.co.za', 'lerato@example.com']
        subjects = {mail.subject for mail in mailoutbox}
        assert 'Reminder: Appointment Tomorrow with Lerato Dlamini' in subjects
        appointment.refresh_from_db()
        assert appointment.reminder_sent_at == NOW

    def test_repeated_scans_send_once(self, make_appointment, mailoutbox):
        make_appointment(starts_at=NOW + timedelta(hours=24, minutes=30), status=S.CONFIRMED)

        # Every five minutes for two hours
        for step in range(0, 121, 5):
            scan_appointment_reminders(now=NOW + timedelta(minutes=step))

        assert len(mailoutbox) == 2

    @pytest.mark.parametrize('hours', [22, 26, 48])
    def test_outside_band_is_skipped(self, make_appointment, mailoutbox, hours):
        appointment = make_appointment(starts_at=NOW + timedelta(hours=hours), status=S.CONFIRMED)

        summary = scan_appointment_reminders(now=NOW)

        assert summary['sent'] == 0
        assert mailoutbox == []
        appointment.refresh_from_db()
        assert appointment.reminder_sent_at is None

    @pytest.mark.parametrize('status', [S.PENDING, S.CANCELLED, S.IN_PROGRESS, S.COMPLETED])
    def test_only_confirmed_appointments(self, make_appointment, mailoutbox, status):
        make_appointment(starts_at=NOW + timedelta(hours=24), status=status)

        scan_appointment_reminders(now=NOW)

        assert mailoutbox == []

    def test_already_reminded_is_skipped(self, make_appointment, mailoutbox):
        make_appointment(
            starts_at=NOW + timedelta(hours=24),
            status=S.CONFIRMED,
            reminder_sent_at=NOW - timedelta(hours=1),
        )

        summary = scan_appointment_reminders(now=NOW)

        assert summary['sent'] == 0
        assert mailoutbox == []

    def test_one_failure_does_not_stop_the_scan(self, make_appointment, other_patient):
        first = make_appointment(starts_at=NOW + timedelta(hours=24), status=S.CONFIRMED)
        second = make_appointment(
            starts_at=NOW + timedelta(hours=24), status=S.CONFIRMED, patient=other_patient
        )
        calls = []

        def flaky(appointment):
            calls.append(appointment.pk)
            if appointment.pk == first.pk:
                raise RuntimeError('template exploded')
            return 2

        with patch('apps.clinical.reminders.send_reminder', side_effect=flaky):
            summary = scan_appointment_reminders(now=NOW)

        assert sorted(calls, key=str) == sorted([first.pk, second.pk], key=str)
        assert summary['errors'] == 1
        assert summary['sent'] == 1

    def test_mail_failure_still_marks_reminder(self, make_appointment, mailoutbox):
        appointment = make_appointment(starts_at=NOW + timedelta(hours=24), status=S.CONFIRMED)

        with patch('apps.clinical.notifications.send_mail', side_effect=OSError('smtp down')):
            summary = scan_appointment_reminders(now=NOW)

        assert summary['errors'] == 0
        appointment.refresh_from_db()
        assert appointment.reminder_sent_at == NOW


@pytest.mark.django_db
class TestClaimReminder:

    def test_claim_is_single_use(self, make_appointment):
        appointment = make_appointment(starts_at=NOW + timedelta(hours=24), status=S.CONFIRMED)

        assert claim_reminder(appointment, NOW) is True
        assert claim_reminder(appointment, NOW + timedelta(minutes=5)) is False
        assert Appointment.objects.get(pk=appointment.pk).reminder_sent_at == NOW

    def test_cannot_claim_unconfirmed(self, make_appointment):
        appointment = make_appointment(starts_at=NOW + timedelta(hours=24), status=S.PENDING)

        assert claim_reminder(appointment, NOW) is False


@pytest.mark.django_db
class TestReminderEntryPoints:

    def test_management_command(self, make_appointment, mailoutbox):
        make_appointment(starts_at=future_hour(24), status=S.CONFIRMED)

        out = StringIO()
        call_command('send_appointment_reminders', stdout=out)

        assert len(mailoutbox) == 2
        assert '1 sent' in out.getvalue()

    def test_celery_task(self, make_appointment, mailoutbox):
        make_appointment(starts_at=future_hour(24), status=S.CONFIRMED)

        scan_task.apply()

        assert len(mailoutbox) == 2
