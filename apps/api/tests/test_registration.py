"""
Tests for clinic registration codes: issuance, single-use redemption and
the registrant email-domain heuristic.

BUSINESS RULES:
- Only admins issue codes; reissuing clears code_used
- Redemption order: clinic exists -> code unused -> code matches -> email domain
- A code can be redeemed at most once, even under concurrent attempts
"""
import re
import uuid
from datetime import datetime, timezone as dt_timezone
from unittest.mock import patch

import pytest

from apps.authz.guards import Actor
from apps.authz.models import RoleChoices, User, UserRole
from apps.authz.services import register_clinic_admin
from apps.core.exceptions import (
    ClinicNotFound,
    CodeAlreadyUsed,
    CodeMismatch,
    EmailDomainMismatch,
    Forbidden,
)
from apps.core.models import Clinic
from apps.core.registration import (
    create_clinic,
    email_domain_allowed,
    generate_registration_code,
    issue_code,
    redeem_code,
)

CODE_PATTERN = re.compile(r'^CLINIC-\d{13}-[A-Z0-9]{9}$')


class TestGenerateRegistrationCode:

    def test_format(self):
        assert CODE_PATTERN.match(generate_registration_code())

    def test_embeds_epoch_millis(self):
        now = datetime(2030, 1, 15, 10, 0, tzinfo=dt_timezone.utc)

        code = generate_registration_code(now)

        assert code.split('-')[1] == str(int(now.timestamp() * 1000))

    def test_codes_differ(self):
        codes = {generate_registration_code() for _ in range(50)}

        assert len(codes) == 50


@pytest.mark.django_db
class TestIssueCode:

    def test_admin_creates_clinic_with_code(self, admin_actor):
        clinic = create_clinic(admin_actor, name='Umhlanga Health Hub', email='hello@umhlangahealth.co.za')

        assert CODE_PATTERN.match(clinic.registration_code)
        assert clinic.code_used is False
        assert clinic.code_issued_at is not None

    def test_non_admin_cannot_create_clinic(self, clinic_admin_actor):
        with pytest.raises(Forbidden):
            create_clinic(clinic_admin_actor, name='Rogue Clinic')

    def test_admin_issues_new_code(self, clinic, admin_actor):
        old_code = clinic.registration_code

        clinic = issue_code(clinic, admin_actor)

        assert CODE_PATTERN.match(clinic.registration_code)
        assert clinic.registration_code != old_code

    @pytest.mark.parametrize('actor_fixture', ['doctor_actor', 'patient_actor', 'clinic_admin_actor'])
    def test_only_admin_issues(self, request, clinic, actor_fixture):
        actor = request.getfixturevalue(actor_fixture)

        with pytest.raises(Forbidden):
            issue_code(clinic, actor)

    def test_reissue_clears_used_and_keeps_admin(self, clinic, admin_actor, make_user):
        registrant = make_user('manager@sunrise.co.za')
        redeem_code(clinic.id, clinic.registration_code, registrant)

        clinic = issue_code(Clinic.objects.get(pk=clinic.pk), admin_actor)

        assert clinic.code_used is False
        assert clinic.admin_user_id == registrant.id

    def test_reissue_invalidates_previous_code(self, clinic, admin_actor, make_user):
        old_code = clinic.registration_code
        issue_code(clinic, admin_actor)

        with pytest.raises(CodeMismatch):
            redeem_code(clinic.id, old_code, make_user('manager@sunrise.co.za'))


@pytest.mark.django_db
class TestRedeemCode:

    def test_successful_redemption(self, clinic, make_user):
        registrant = make_user('manager@sunrise.co.za')

        result = redeem_code(clinic.id, clinic.registration_code, registrant)

        assert result.code_used is True
        assert result.admin_user_id == registrant.id
        assert result.code_redeemed_at is not None
        grant = UserRole.objects.get(user=registrant)
        assert grant.role.name == RoleChoices.CLINIC_ADMIN
        assert grant.clinic_id == clinic.id

    def test_redeemer_acts_as_clinic_admin_of_that_clinic(self, clinic, make_user):
        registrant = make_user('manager@sunrise.co.za')
        redeem_code(clinic.id, clinic.registration_code, registrant)

        actor = Actor.from_user(registrant)

        assert actor.role == RoleChoices.CLINIC_ADMIN
        assert actor.clinic_ids == frozenset({str(clinic.id)})

    def test_submitted_code_whitespace_is_ignored(self, clinic, make_user):
        result = redeem_code(clinic.id, f'  {clinic.registration_code} ', make_user('manager@sunrise.co.za'))

        assert result.code_used is True

    def test_unknown_clinic(self, make_user):
        with pytest.raises(ClinicNotFound):
            redeem_code(uuid.uuid4(), 'CLINIC-1-ABC', make_user('x@clinic.org'))

    def test_malformed_clinic_id(self, make_user):
        with pytest.raises(ClinicNotFound):
            redeem_code('not-a-uuid', 'CLINIC-1-ABC', make_user('x@clinic.org'))

    def test_second_redemption_is_rejected(self, clinic, make_user):
        code = clinic.registration_code
        first = make_user('manager@sunrise.co.za')
        redeem_code(clinic.id, code, first)

        with pytest.raises(CodeAlreadyUsed):
            redeem_code(clinic.id, code, make_user('deputy@sunrise.co.za'))

        assert Clinic.objects.get(pk=clinic.pk).admin_user_id == first.id

    def test_used_check_precedes_mismatch(self, clinic, make_user):
        redeem_code(clinic.id, clinic.registration_code, make_user('manager@sunrise.co.za'))

        with pytest.raises(CodeAlreadyUsed):
            redeem_code(clinic.id, 'CLINIC-0-WRONGCODE', make_user('deputy@sunrise.co.za'))

    def test_wrong_code(self, clinic, make_user):
        with pytest.raises(CodeMismatch):
            redeem_code(clinic.id, 'CLINIC-1893456000000-ZZZZZZZZZ', make_user('manager@sunrise.co.za'))

        assert Clinic.objects.get(pk=clinic.pk).code_used is False

    def test_clinic_without_code(self, other_clinic, make_user):
        with pytest.raises(CodeMismatch):
            redeem_code(other_clinic.id, '', make_user('manager@harbour.co.za'))

    def test_email_domain_mismatch(self, clinic, make_user):
        with pytest.raises(EmailDomainMismatch):
            redeem_code(clinic.id, clinic.registration_code, make_user('someone@gmail.com'))

        assert Clinic.objects.get(pk=clinic.pk).code_used is False

    def test_domain_override(self, clinic, make_user):
        result = redeem_code(
            clinic.id, clinic.registration_code, make_user('someone@gmail.com'),
            allow_any_domain=True,
        )

        assert result.code_used is True

    def test_failed_redemption_is_counted(self, clinic, make_user):
        from prometheus_client import REGISTRY
        before = REGISTRY.get_sample_value(
            'registration_code_redemptions_total', {'result': 'code_mismatch'}
        ) or 0

        with pytest.raises(CodeMismatch):
            redeem_code(clinic.id, 'nope', make_user('manager@sunrise.co.za'))

        after = REGISTRY.get_sample_value('registration_code_redemptions_total', {'result': 'code_mismatch'})
        assert after == before + 1


@pytest.mark.django_db
class TestConcurrentRedemption:
    """
    Two registrants pass the pre-checks with the same snapshot; only the
    conditional update decides who wins.
    """

    def test_loser_gets_code_already_used(self, clinic, make_user):
        # Both callers read the clinic before either writes
        snapshots = [Clinic.objects.get(pk=clinic.pk), Clinic.objects.get(pk=clinic.pk)]
        code = clinic.registration_code
        first = make_user('manager@sunrise.co.za')
        second = make_user('deputy@sunrise.co.za')

        with patch('apps.core.registration._load_clinic', side_effect=snapshots):
            redeem_code(clinic.id, code, first)
            with pytest.raises(CodeAlreadyUsed):
                redeem_code(clinic.id, code, second)

        clinic.refresh_from_db()
        assert clinic.admin_user_id == first.id
        assert not UserRole.objects.filter(user=second).exists()

    def test_reissued_meanwhile_gives_mismatch(self, clinic, admin_actor, make_user):
        snapshot = Clinic.objects.get(pk=clinic.pk)
        issue_code(clinic, admin_actor)

        with patch('apps.core.registration._load_clinic', return_value=snapshot):
            with pytest.raises(CodeMismatch):
                redeem_code(clinic.id, snapshot.registration_code, make_user('manager@sunrise.co.za'))

        assert Clinic.objects.get(pk=clinic.pk).code_used is False


class TestEmailDomainHeuristic:

    def _clinic(self, email):
        return Clinic(name='Test', email=email)

    @pytest.mark.parametrize('registrant,expected', [
        ('manager@sunrise.co.za', True),
        ('MANAGER@SUNRISE.CO.ZA', True),
        ('admin@cityhealth.org', True),
        ('admin@grey-hospital.com', True),
        ('admin@myclinic.net', True),
        ('admin@medicalgroup.io', True),
        ('someone@gmail.com', False),
        ('no-at-sign', False),
    ])
    def test_registrant_domains(self, registrant, expected):
        assert email_domain_allowed(self._clinic('info@sunrise.co.za'), registrant) is expected

    def test_clinic_without_email_accepts_anyone(self):
        assert email_domain_allowed(self._clinic(None), 'someone@gmail.com') is True


@pytest.mark.django_db
class TestRegisterClinicAdmin:

    def test_creates_user_and_claims_clinic(self, clinic):
        user, result = register_clinic_admin(
            clinic.id, clinic.registration_code,
            email='manager@sunrise.co.za', password='S3cure-pass!',
            first_name='Thandi', last_name='Mokoena',
        )

        assert result.admin_user_id == user.id
        assert user.check_password('S3cure-pass!')
        assert RoleChoices.CLINIC_ADMIN in user.role_names()

    def test_rejected_code_rolls_back_user(self, clinic):
        with pytest.raises(CodeMismatch):
            register_clinic_admin(
                clinic.id, 'CLINIC-0-BADBADBAD',
                email='manager@sunrise.co.za', password='S3cure-pass!',
            )

        assert not User.objects.filter(email='manager@sunrise.co.za').exists()
