"""
DRF permission classes backed by apps.authz.guards.
"""
from rest_framework import permissions

from apps.authz.guards import Actor, role_allows, owns
from apps.core.exceptions import Forbidden


def actor_for(request):
    """Actor for the request user, cached on the request."""
    actor = getattr(request, '_booking_actor', None)
    if actor is None:
        actor = Actor.from_user(request.user)
        request._booking_actor = actor
    return actor


class GuardPermission(permissions.BasePermission):
    """
    Request-level check against the authorization guard.

    Views declare ``guard_actions``, a dict of DRF action name -> guard
    action. Actions missing from the dict only require a role.
    Object-level checks use the guard's ownership rules.
    """

    def has_permission(self, request, view):
        if not request.user or not request.user.is_authenticated:
            return False
        try:
            actor = actor_for(request)
        except Forbidden:
            return False
        action = getattr(view, 'guard_actions', {}).get(getattr(view, 'action', None))
        if action is None:
            return True
        return role_allows(actor, action)

    def has_object_permission(self, request, view, obj):
        if not getattr(view, 'guard_ownership', True):
            return True
        return owns(actor_for(request), obj)


class IsAdmin(permissions.BasePermission):
    """Only users acting with the admin role."""

    def has_permission(self, request, view):
        if not request.user or not request.user.is_authenticated:
            return False
        try:
            return actor_for(request).is_admin
        except Forbidden:
            return False
