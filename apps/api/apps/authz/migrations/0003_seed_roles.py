# Generated for role bootstrap

from django.db import migrations

ROLE_NAMES = ['patient', 'doctor', 'clinic_admin', 'admin']


def create_roles(apps, schema_editor):
    """
    Create the fixed roles if they don't exist.
    Idempotent - safe to run multiple times.
    """
    Role = apps.get_model('authz', 'Role')
    for name in ROLE_NAMES:
        Role.objects.get_or_create(name=name)


def remove_unused_roles(apps, schema_editor):
    """
    Reverse migration - delete roles nobody holds.
    """
    Role = apps.get_model('authz', 'Role')
    Role.objects.filter(name__in=ROLE_NAMES, user_roles__isnull=True).delete()


class Migration(migrations.Migration):

    dependencies = [
        ('authz', '0002_userrole'),
    ]

    operations = [
        migrations.RunPython(create_roles, remove_unused_roles),
    ]
