from django.contrib import admin
from .models import Clinic


@admin.register(Clinic)
class ClinicAdmin(admin.ModelAdmin):
    list_display = ['name', 'email', 'code_used', 'admin_user', 'is_active', 'created_at']
    list_filter = ['is_active', 'code_used']
    search_fields = ['name', 'email']
    # Codes change only through apps.core.registration
    readonly_fields = ['id', 'registration_code', 'code_used', 'admin_user', 'code_issued_at', 'code_redeemed_at', 'created_at', 'updated_at']
