"""
Clinic registration codes.

A system admin issues a one-time code per clinic; the clinic's administrator
redeems it once to claim the clinic. Redemption is a single conditional
UPDATE so two registrants racing on the same code cannot both win.

Check order on redemption:
1. clinic exists            -> ClinicNotFound
2. code not yet used        -> CodeAlreadyUsed
3. submitted code matches   -> CodeMismatch
4. email domain heuristic   -> EmailDomainMismatch (skippable by admins)
"""
import secrets
import string
import time

from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import transaction
from django.utils import timezone

from apps.authz.guards import Action, authorize
from apps.authz.models import RoleChoices, grant_role
from apps.core.exceptions import (
    BookingError,
    ClinicNotFound,
    CodeAlreadyUsed,
    CodeMismatch,
    EmailDomainMismatch,
)
from apps.core.models import Clinic
from apps.core.observability import get_sanitized_logger, log_domain_event, metrics
from apps.core.observability.events import log_code_redemption

logger = get_sanitized_logger(__name__)

CODE_PREFIX = 'CLINIC'
CODE_SUFFIX_LENGTH = 9
_CODE_ALPHABET = string.ascii_uppercase + string.digits


def _epoch_millis(now=None):
    if now is None:
        return int(time.time() * 1000)
    return int(now.timestamp() * 1000)


def generate_registration_code(now=None):
    """Return ``CLINIC-<epoch millis>-<9 random uppercase alphanumerics>``."""
    suffix = ''.join(secrets.choice(_CODE_ALPHABET) for _ in range(CODE_SUFFIX_LENGTH))
    return f'{CODE_PREFIX}-{_epoch_millis(now)}-{suffix}'


def email_domain_allowed(clinic, email):
    """
    Domain heuristic for clinic admin registrants.

    Only applies when the clinic has an email on file. The registrant's domain
    must equal the clinic's, or contain one of the configured healthcare
    keywords.
    """
    clinic_domain = clinic.email_domain
    if not clinic_domain:
        return True
    if not email or '@' not in email:
        return False
    domain = email.rsplit('@', 1)[1].lower()
    if domain == clinic_domain:
        return True
    keywords = settings.BOOKING['REGISTRANT_DOMAIN_KEYWORDS']
    return any(keyword in domain for keyword in keywords)


def create_clinic(actor, now=None, **fields):
    """Create a clinic (admin only) with a fresh registration code."""
    authorize(actor, Action.MANAGE_CLINICS)
    now = now or timezone.now()
    clinic = Clinic.objects.create(
        registration_code=generate_registration_code(now),
        code_used=False,
        code_issued_at=now,
        **fields
    )
    metrics.registration_codes_issued_total.inc()
    log_domain_event(
        'clinic_created',
        entity_type='Clinic',
        entity_id=str(clinic.id),
        actor_role=actor.role,
    )
    return clinic


def issue_code(clinic, actor, now=None):
    """
    Issue (or reissue) the clinic's registration code.

    The previous code stops working immediately and ``code_used`` is cleared.
    A clinic that already has an administrator keeps it.
    """
    authorize(actor, Action.ISSUE_REGISTRATION_CODE)
    now = now or timezone.now()
    code = generate_registration_code(now)

    with transaction.atomic():
        updated = Clinic.objects.filter(pk=clinic.pk).update(
            registration_code=code,
            code_used=False,
            code_issued_at=now,
            code_redeemed_at=None,
            updated_at=now,
        )
    if not updated:
        raise ClinicNotFound(clinic_id=str(clinic.pk))

    clinic.refresh_from_db()
    metrics.registration_codes_issued_total.inc()
    log_domain_event(
        'registration_code_issued',
        entity_type='Clinic',
        entity_id=str(clinic.id),
        actor_role=actor.role,
        reissued=clinic.admin_user_id is not None,
    )
    return clinic


def _load_clinic(clinic_id):
    try:
        return Clinic.objects.get(pk=clinic_id)
    except (Clinic.DoesNotExist, ValidationError, ValueError):
        raise ClinicNotFound(clinic_id=str(clinic_id))


def _codes_match(stored, submitted):
    if not stored or not submitted:
        return False
    return secrets.compare_digest(stored.encode(), submitted.strip().encode())


def redeem_code(clinic_id, submitted_code, registrant, allow_any_domain=False, now=None):
    """
    Claim a clinic with its registration code.

    On success the clinic is marked used, ``registrant`` becomes its
    ``admin_user`` and receives a clinic-scoped ``clinic_admin`` role, all in
    one transaction.

    Raises:
        ClinicNotFound, CodeAlreadyUsed, CodeMismatch, EmailDomainMismatch
    """
    now = now or timezone.now()
    try:
        clinic = _load_clinic(clinic_id)

        if clinic.code_used:
            raise CodeAlreadyUsed(clinic_id=str(clinic.id))
        if not _codes_match(clinic.registration_code, submitted_code):
            raise CodeMismatch(clinic_id=str(clinic.id))
        if not allow_any_domain and not email_domain_allowed(clinic, registrant.email):
            raise EmailDomainMismatch(clinic_id=str(clinic.id))

        with transaction.atomic():
            claimed = Clinic.objects.filter(
                pk=clinic.pk,
                code_used=False,
                registration_code=clinic.registration_code,
            ).update(
                code_used=True,
                admin_user=registrant,
                code_redeemed_at=now,
                updated_at=now,
            )
            if not claimed:
                # Someone else got there first, or the code was reissued.
                fresh = Clinic.objects.get(pk=clinic.pk)
                if fresh.code_used:
                    raise CodeAlreadyUsed(clinic_id=str(clinic.id))
                raise CodeMismatch(clinic_id=str(clinic.id))
            grant_role(registrant, RoleChoices.CLINIC_ADMIN, clinic=clinic)
    except BookingError as exc:
        metrics.registration_code_redemptions_total.labels(result=exc.code).inc()
        log_code_redemption(
            clinic_id,
            exc.code,
            registrant_id=getattr(registrant, 'pk', None),
            domain_override=allow_any_domain,
        )
        raise

    clinic.refresh_from_db()
    metrics.registration_code_redemptions_total.labels(result='success').inc()
    log_code_redemption(
        clinic.id,
        'success',
        registrant_id=registrant.pk,
        domain_override=allow_any_domain,
    )
    return clinic
