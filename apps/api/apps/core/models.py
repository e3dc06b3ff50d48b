"""
Core models: clinic
"""
import uuid
from django.conf import settings
from django.db import models


class Clinic(models.Model):
    """
    Clinics registered on the platform.

    Fields:
    - id: UUID PK
    - name, address, contact_number, email (nullable), operating_hours
    - registration_code: single-use onboarding token (nullable)
    - code_used: bool
    - admin_user: FK -> auth_user nullable (clinic admin who redeemed the code)
    - code_issued_at, code_redeemed_at: nullable
    - is_active: bool default true
    - created_at, updated_at

    BUSINESS RULES:
    - code_used implies admin_user is set
    - A used code can never be redeemed again (see apps.core.registration)
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    name = models.CharField(max_length=255)
    address = models.CharField(max_length=255, blank=True, null=True)
    contact_number = models.CharField(max_length=50, blank=True, null=True)
    email = models.EmailField(max_length=255, blank=True, null=True)
    operating_hours = models.CharField(max_length=255, blank=True, null=True)

    registration_code = models.CharField(max_length=64, blank=True, null=True)
    code_used = models.BooleanField(default=False)
    admin_user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        blank=True,
        null=True,
        related_name='administered_clinics'
    )
    code_issued_at = models.DateTimeField(blank=True, null=True)
    code_redeemed_at = models.DateTimeField(blank=True, null=True)

    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'clinic'
        verbose_name = 'Clinic'
        verbose_name_plural = 'Clinics'
        indexes = [
            models.Index(fields=['is_active'], name='idx_clinic_active'),
            models.Index(fields=['code_used'], name='idx_clinic_code_used'),
        ]

    def __str__(self):
        return self.name

    @property
    def email_domain(self):
        if not self.email or '@' not in self.email:
            return None
        return self.email.rsplit('@', 1)[1].lower()
