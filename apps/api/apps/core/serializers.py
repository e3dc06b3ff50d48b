"""
Core serializers for Clinic.
"""
from rest_framework import serializers

from apps.core.models import Clinic


class ClinicPublicSerializer(serializers.ModelSerializer):
    """
    Clinic listing for the public registration form and the booking pages.
    Never exposes the registration code.
    """
    has_admin = serializers.SerializerMethodField()

    class Meta:
        model = Clinic
        fields = [
            'id',
            'name',
            'address',
            'contact_number',
            'operating_hours',
            'has_admin',
        ]
        read_only_fields = fields

    def get_has_admin(self, obj):
        return obj.code_used


class ClinicAdminSerializer(serializers.ModelSerializer):
    """Full clinic view for system admins, including the current code."""
    admin_email = serializers.EmailField(source='admin_user.email', read_only=True, default=None)

    class Meta:
        model = Clinic
        fields = [
            'id',
            'name',
            'address',
            'contact_number',
            'email',
            'operating_hours',
            'is_active',
            'registration_code',
            'code_used',
            'admin_user',
            'admin_email',
            'code_issued_at',
            'code_redeemed_at',
            'created_at',
            'updated_at',
        ]
        read_only_fields = [
            'id',
            'registration_code',
            'code_used',
            'admin_user',
            'admin_email',
            'code_issued_at',
            'code_redeemed_at',
            'created_at',
            'updated_at',
        ]
