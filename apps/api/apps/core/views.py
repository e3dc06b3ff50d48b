"""
Core views - clinics and their registration codes.
"""
from rest_framework import mixins, status, viewsets
from rest_framework.decorators import action
from rest_framework.permissions import AllowAny
from rest_framework.response import Response

from apps.authz.guards import Actor
from apps.authz.permissions import IsAdmin
from apps.core.exceptions import Forbidden
from apps.core.models import Clinic
from apps.core.registration import create_clinic, issue_code
from apps.core.serializers import ClinicAdminSerializer, ClinicPublicSerializer


def _admin_actor(request):
    if not request.user or not request.user.is_authenticated:
        return None
    try:
        actor = Actor.from_user(request.user)
    except Forbidden:
        return None
    return actor if actor.is_admin else None


class ClinicViewSet(mixins.ListModelMixin,
                    mixins.RetrieveModelMixin,
                    viewsets.GenericViewSet):
    """
    ViewSet for Clinic endpoints.

    Endpoints:
    - GET  /api/v1/clinics/                   (public; admins get the full view)
    - POST /api/v1/clinics/                   (admin; issues the first code)
    - GET  /api/v1/clinics/{id}/
    - POST /api/v1/clinics/{id}/issue-code/   (admin; replaces the code)
    """
    queryset = Clinic.objects.select_related('admin_user').order_by('name')

    def get_permissions(self):
        if self.action in ('list', 'retrieve'):
            return [AllowAny()]
        return [IsAdmin()]

    def get_queryset(self):
        queryset = super().get_queryset()
        if _admin_actor(self.request) is None:
            queryset = queryset.filter(is_active=True)
        return queryset

    def get_serializer_class(self):
        if _admin_actor(self.request) is not None:
            return ClinicAdminSerializer
        return ClinicPublicSerializer

    def create(self, request, *args, **kwargs):
        serializer = ClinicAdminSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        clinic = create_clinic(_admin_actor(request), **serializer.validated_data)
        return Response(ClinicAdminSerializer(clinic).data, status=status.HTTP_201_CREATED)

    @action(detail=True, methods=['post'], url_path='issue-code')
    def issue_code(self, request, pk=None):
        clinic = issue_code(self.get_object(), _admin_actor(request))
        return Response(ClinicAdminSerializer(clinic).data)
