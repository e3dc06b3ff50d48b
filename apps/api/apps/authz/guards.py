"""
Authorization guard for booking-engine operations.

A single place decides whether an actor may run an action against a
resource. Engine services call the guard before touching the store; DRF
permission classes (apps.authz.permissions) call it for request-level checks.

Checks happen in two steps so callers can interleave their own rules:
1. require_role: may this role run the action at all?
2. require_ownership: is the resource one the actor is attached to?
"""
from dataclasses import dataclass, field
from typing import FrozenSet, Optional

from apps.authz.models import RoleChoices
from apps.core.exceptions import Forbidden


class Action:
    VIEW_APPOINTMENT = 'appointment.view'
    BOOK_APPOINTMENT = 'appointment.book'
    TRANSITION_APPOINTMENT = 'appointment.transition'
    RESCHEDULE_APPOINTMENT = 'appointment.reschedule'
    RUN_VIRTUAL_SESSION = 'appointment.virtual_session'
    SEND_MESSAGE = 'appointment.message'
    SEND_FOLLOW_UP = 'appointment.follow_up'
    MANAGE_CLINICS = 'clinic.manage'
    ISSUE_REGISTRATION_CODE = 'clinic.issue_code'
    VERIFY_DOCTOR = 'doctor.verify'


_ROLE_ACTIONS = {
    RoleChoices.PATIENT: {
        Action.VIEW_APPOINTMENT,
        Action.BOOK_APPOINTMENT,
        Action.TRANSITION_APPOINTMENT,
        Action.RESCHEDULE_APPOINTMENT,
        Action.SEND_MESSAGE,
    },
    RoleChoices.DOCTOR: {
        Action.VIEW_APPOINTMENT,
        Action.TRANSITION_APPOINTMENT,
        Action.RUN_VIRTUAL_SESSION,
        Action.SEND_MESSAGE,
        Action.SEND_FOLLOW_UP,
    },
    RoleChoices.CLINIC_ADMIN: {
        Action.VIEW_APPOINTMENT,
    },
}

# Highest privilege first: a user holding several roles acts as the first match.
_ROLE_PRECEDENCE = (
    RoleChoices.ADMIN,
    RoleChoices.DOCTOR,
    RoleChoices.CLINIC_ADMIN,
    RoleChoices.PATIENT,
)


@dataclass(frozen=True)
class Actor:
    """Who is asking: the acting role plus the identity used for ownership."""
    role: str
    user_id: Optional[str] = None
    clinic_ids: FrozenSet[str] = field(default_factory=frozenset)

    @property
    def is_admin(self):
        return self.role == RoleChoices.ADMIN

    @classmethod
    def for_role(cls, role, user=None, clinic_ids=()):
        return cls(
            role=str(role),
            user_id=str(user.pk) if user is not None else None,
            clinic_ids=frozenset(str(c) for c in clinic_ids),
        )

    @classmethod
    def from_user(cls, user, role=None):
        """
        Build an actor from an authenticated user.

        Without an explicit role the user's most privileged role is used.
        Superusers always act as admin.
        """
        if user is None or not user.is_authenticated:
            raise Forbidden('Authentication required')

        grants = list(user.user_roles.values_list('role__name', 'clinic_id'))
        names = {name for name, _ in grants}
        if user.is_superuser:
            names.add(RoleChoices.ADMIN)

        if role is None:
            role = next((r for r in _ROLE_PRECEDENCE if r in names), None)
        if role is None or role not in names:
            raise Forbidden('No role assigned for this action')

        clinic_ids = [
            clinic_id for name, clinic_id in grants
            if name == RoleChoices.CLINIC_ADMIN and clinic_id is not None
        ]
        return cls.for_role(role, user=user, clinic_ids=clinic_ids)


def role_allows(actor, action):
    if actor.is_admin:
        return True
    return action in _ROLE_ACTIONS.get(actor.role, set())


def require_role(actor, action):
    if not role_allows(actor, action):
        raise Forbidden(
            f'Role "{actor.role}" cannot perform {action}',
            role=actor.role,
            action=action,
        )


def owns(actor, resource):
    """
    Ownership rules by resource type.

    - Appointment: patient owns via patient.user, doctor via doctor.user,
      clinic admin via a clinic-scoped grant.
    - Patient: the patient's own user (booking for themselves).
    - Doctor: the doctor's own user.
    - Clinic: clinic admins scoped to it.
    """
    if actor.is_admin:
        return True
    if resource is None:
        return True

    from apps.clinical.models import Appointment, Doctor, Patient
    from apps.core.models import Clinic

    if isinstance(resource, Appointment):
        if actor.role == RoleChoices.PATIENT:
            return str(resource.patient.user_id) == actor.user_id
        if actor.role == RoleChoices.DOCTOR:
            return str(resource.doctor.user_id) == actor.user_id
        if actor.role == RoleChoices.CLINIC_ADMIN:
            return str(resource.clinic_id) in actor.clinic_ids
        return False

    if isinstance(resource, Patient):
        return actor.role == RoleChoices.PATIENT and str(resource.user_id) == actor.user_id

    if isinstance(resource, Doctor):
        return str(resource.user_id) == actor.user_id

    if isinstance(resource, Clinic):
        return actor.role == RoleChoices.CLINIC_ADMIN and str(resource.pk) in actor.clinic_ids

    return False


def require_ownership(actor, resource):
    if not owns(actor, resource):
        raise Forbidden(
            'This record does not belong to you',
            role=actor.role,
            resource=type(resource).__name__,
        )


def authorize(actor, action, resource=None):
    """Role check followed by ownership check; raises Forbidden."""
    require_role(actor, action)
    require_ownership(actor, resource)
