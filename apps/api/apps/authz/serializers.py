"""
Authz serializers for users and account registration.
"""
from rest_framework import serializers

from apps.authz.models import User


class UserSerializer(serializers.ModelSerializer):
    """Read-only view of an account and its role names."""
    roles = serializers.SerializerMethodField()

    class Meta:
        model = User
        fields = [
            'id',
            'email',
            'first_name',
            'last_name',
            'phone_number',
            'roles',
            'created_at',
        ]
        read_only_fields = fields

    def get_roles(self, obj):
        return sorted(obj.role_names())


class _NewAccountSerializer(serializers.Serializer):
    """Fields every self-service registration asks for."""
    email = serializers.EmailField(max_length=255)
    password = serializers.CharField(min_length=8, write_only=True)
    phone_number = serializers.CharField(max_length=50, required=False, allow_blank=True, default='')

    def validate_email(self, value):
        value = value.lower()
        if User.objects.filter(email__iexact=value).exists():
            raise serializers.ValidationError('An account with this email already exists')
        return value


class PatientRegistrationSerializer(_NewAccountSerializer):
    """Input for POST /api/v1/patients/register/"""
    first_name = serializers.CharField(max_length=100)
    last_name = serializers.CharField(max_length=100)


class DoctorRegistrationSerializer(_NewAccountSerializer):
    """Input for POST /api/v1/doctors/register/"""
    clinic_id = serializers.UUIDField()
    display_name = serializers.CharField(max_length=255)
    specialty = serializers.CharField(max_length=100, required=False, allow_blank=True, default='')
    first_name = serializers.CharField(max_length=150, required=False, allow_blank=True, default='')
    last_name = serializers.CharField(max_length=150, required=False, allow_blank=True, default='')


class ClinicAdminRegistrationSerializer(_NewAccountSerializer):
    """
    Input for POST /api/v1/clinic-admins/register/

    The registration code is checked by the service, not here, so the
    caller gets the domain error (already used, mismatch, ...) verbatim.
    """
    clinic_id = serializers.UUIDField()
    registration_code = serializers.CharField(max_length=64, trim_whitespace=True)
    first_name = serializers.CharField(max_length=150, required=False, allow_blank=True, default='')
    last_name = serializers.CharField(max_length=150, required=False, allow_blank=True, default='')
    allow_any_domain = serializers.BooleanField(required=False, default=False)
