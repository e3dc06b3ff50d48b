"""
Tests for virtual consultation sessions.

BUSINESS RULES:
- Only the appointment's doctor starts and ends the session
- Start: confirmed virtual appointment, not yet started -> in_progress
- End: started, not yet ended -> completed
- ended implies started, enforced by the database as well
"""
import re

import pytest
from django.db import IntegrityError, transaction

from apps.authz.guards import Actor
from apps.clinical.lifecycle import end_virtual_session, start_virtual_session
from apps.clinical.models import Appointment, AppointmentStatusChoices as S, AppointmentTypeChoices
from apps.clinical.windows import can_join_virtual_session
from apps.core.exceptions import Forbidden, InvalidTransition

from .conftest import NOW

ROOM_PATTERN = re.compile(r'^ncbs-consult-\d{13}-[a-z0-9]{9}$')


@pytest.mark.django_db
class TestStartVirtualSession:

    def test_doctor_starts_confirmed_session(self, virtual_appointment, doctor_actor, mailoutbox):
        appointment = start_virtual_session(virtual_appointment, doctor_actor, now=NOW)

        assert appointment.status == S.IN_PROGRESS
        assert appointment.virtual_session_started is True
        assert appointment.session_start_time == NOW
        assert can_join_virtual_session(appointment) is True
        assert len(mailoutbox) == 1
        assert mailoutbox[0].to == ['lerato@example.com']
        assert appointment.meeting_link in mailoutbox[0].body

    def test_missing_room_is_generated(self, make_appointment, doctor_actor):
        appointment = make_appointment(
            status=S.CONFIRMED, appointment_type=AppointmentTypeChoices.VIRTUAL
        )

        appointment = start_virtual_session(appointment, doctor_actor, now=NOW)

        assert ROOM_PATTERN.match(appointment.meeting_room_id)
        assert appointment.meeting_link == f'https://8x8.vc/ncbs/{appointment.meeting_room_id}'

    def test_existing_room_is_kept(self, virtual_appointment, doctor_actor):
        appointment = start_virtual_session(virtual_appointment, doctor_actor, now=NOW)

        assert appointment.meeting_room_id == 'ncbs-consult-1893456000000-abc123xyz'

    def test_in_person_has_no_session(self, make_appointment, doctor_actor):
        appointment = make_appointment(status=S.CONFIRMED)

        with pytest.raises(InvalidTransition):
            start_virtual_session(appointment, doctor_actor)

    def test_pending_cannot_start(self, make_appointment, doctor_actor):
        appointment = make_appointment(
            status=S.PENDING, appointment_type=AppointmentTypeChoices.VIRTUAL
        )

        with pytest.raises(InvalidTransition):
            start_virtual_session(appointment, doctor_actor)

        assert Appointment.objects.get(pk=appointment.pk).status == S.PENDING

    def test_cannot_start_twice(self, virtual_appointment, doctor_actor):
        started = start_virtual_session(virtual_appointment, doctor_actor)

        with pytest.raises(InvalidTransition):
            start_virtual_session(started, doctor_actor)

    def test_stale_copy_loses(self, virtual_appointment, doctor_actor):
        stale = Appointment.objects.get(pk=virtual_appointment.pk)
        start_virtual_session(virtual_appointment, doctor_actor)

        with pytest.raises(InvalidTransition):
            start_virtual_session(stale, doctor_actor)

    def test_patient_cannot_start(self, virtual_appointment, patient_actor):
        with pytest.raises(Forbidden):
            start_virtual_session(virtual_appointment, patient_actor)

    def test_other_doctor_cannot_start(self, virtual_appointment, other_doctor):
        with pytest.raises(Forbidden):
            start_virtual_session(virtual_appointment, Actor.from_user(other_doctor.user))


@pytest.mark.django_db
class TestEndVirtualSession:

    def test_doctor_ends_session(self, virtual_appointment, doctor_actor):
        started = start_virtual_session(virtual_appointment, doctor_actor, now=NOW)

        ended = end_virtual_session(started, doctor_actor, now=NOW.replace(hour=10, minute=20))

        assert ended.status == S.COMPLETED
        assert ended.virtual_session_ended is True
        assert ended.session_end_time == NOW.replace(minute=20)
        assert can_join_virtual_session(ended) is False

    def test_cannot_end_before_start(self, virtual_appointment, doctor_actor):
        with pytest.raises(InvalidTransition):
            end_virtual_session(virtual_appointment, doctor_actor)

        assert Appointment.objects.get(pk=virtual_appointment.pk).status == S.CONFIRMED

    def test_cannot_end_twice(self, virtual_appointment, doctor_actor):
        ended = end_virtual_session(
            start_virtual_session(virtual_appointment, doctor_actor), doctor_actor
        )

        with pytest.raises(InvalidTransition):
            end_virtual_session(ended, doctor_actor)

    def test_patient_cannot_end(self, virtual_appointment, doctor_actor, patient_actor):
        started = start_virtual_session(virtual_appointment, doctor_actor)

        with pytest.raises(Forbidden):
            end_virtual_session(started, patient_actor)


@pytest.mark.django_db
class TestSessionFlagConstraint:

    def test_database_rejects_ended_without_started(self, virtual_appointment):
        with pytest.raises(IntegrityError):
            with transaction.atomic():
                Appointment.objects.filter(pk=virtual_appointment.pk).update(
                    virtual_session_started=False,
                    virtual_session_ended=True,
                )
