"""
Authz models: auth_user, auth_role, auth_user_role
"""
import uuid
from django.db import models
from django.contrib.auth.models import AbstractBaseUser, BaseUserManager, PermissionsMixin


# ============================================================================
# User Management
# ============================================================================

class UserManager(BaseUserManager):
    """Custom user manager for email-based authentication."""

    def create_user(self, email, password=None, **extra_fields):
        if not email:
            raise ValueError('Email is required')
        email = self.normalize_email(email)
        user = self.model(email=email, **extra_fields)
        user.set_password(password)
        user.save(using=self._db)
        return user

    def create_superuser(self, email, password=None, **extra_fields):
        extra_fields.setdefault('is_staff', True)
        extra_fields.setdefault('is_superuser', True)
        extra_fields.setdefault('is_active', True)
        return self.create_user(email, password, **extra_fields)


class User(AbstractBaseUser, PermissionsMixin):
    """
    Custom user model for authentication.

    Fields:
    - id: UUID PK
    - email: unique
    - password_hash: handled by AbstractBaseUser
    - first_name, last_name, phone_number
    - is_active: bool
    - created_at, updated_at
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    email = models.EmailField(unique=True, max_length=255)
    first_name = models.CharField(max_length=150, blank=True, help_text='First name of the user')
    last_name = models.CharField(max_length=150, blank=True, help_text='Last name of the user')
    phone_number = models.CharField(max_length=50, blank=True)
    is_active = models.BooleanField(default=True)
    is_staff = models.BooleanField(default=False)  # Required for admin access
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = UserManager()

    USERNAME_FIELD = 'email'
    REQUIRED_FIELDS = []

    class Meta:
        db_table = 'auth_user'
        verbose_name = 'User'
        verbose_name_plural = 'Users'
        indexes = [
            models.Index(fields=['email'], name='idx_user_email'),
            models.Index(fields=['is_active'], name='idx_user_active'),
        ]

    def __str__(self):
        return self.email

    @property
    def full_name(self):
        return f"{self.first_name} {self.last_name}".strip() or self.email

    @property
    def email_domain(self):
        return self.email.rsplit('@', 1)[1].lower() if '@' in self.email else ''

    def role_names(self):
        return set(self.user_roles.values_list('role__name', flat=True))


class RoleChoices(models.TextChoices):
    """Fixed role names"""
    PATIENT = 'patient', 'Patient'
    DOCTOR = 'doctor', 'Doctor'
    CLINIC_ADMIN = 'clinic_admin', 'Clinic Admin'
    ADMIN = 'admin', 'Admin'


class Role(models.Model):
    """
    System roles.

    Fields:
    - id: UUID PK
    - name: unique (patient|doctor|clinic_admin|admin)
    - created_at
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    name = models.CharField(
        max_length=50,
        unique=True,
        choices=RoleChoices.choices
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'auth_role'
        verbose_name = 'Role'
        verbose_name_plural = 'Roles'

    def __str__(self):
        return self.get_name_display()


class UserRole(models.Model):
    """
    Many-to-many relationship between users and roles.

    Fields:
    - user_id: FK -> auth_user
    - role_id: FK -> auth_role
    - clinic_id: FK -> clinic nullable (scope of a clinic_admin grant)
    - Unique (user_id, role_id, clinic_id)
    """
    user = models.ForeignKey(
        User,
        on_delete=models.CASCADE,
        related_name='user_roles'
    )
    role = models.ForeignKey(
        Role,
        on_delete=models.CASCADE,
        related_name='user_roles'
    )
    clinic = models.ForeignKey(
        'core.Clinic',
        on_delete=models.CASCADE,
        blank=True,
        null=True,
        related_name='user_roles'
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'auth_user_role'
        verbose_name = 'User Role'
        verbose_name_plural = 'User Roles'
        unique_together = [('user', 'role', 'clinic')]
        indexes = [
            models.Index(fields=['user'], name='idx_user_role_user'),
            models.Index(fields=['role'], name='idx_user_role_role'),
        ]

    def __str__(self):
        if self.clinic_id:
            return f"{self.user.email} - {self.role.name} @ {self.clinic_id}"
        return f"{self.user.email} - {self.role.name}"


def grant_role(user, role_name, clinic=None):
    """Assign a role to a user (idempotent)."""
    role, _ = Role.objects.get_or_create(name=role_name)
    user_role, _ = UserRole.objects.get_or_create(user=user, role=role, clinic=clinic)
    return user_role


def revoke_role(user, role_name, clinic=None):
    """Remove a role from a user. Returns the number of grants removed."""
    deleted, _ = UserRole.objects.filter(user=user, role__name=role_name, clinic=clinic).delete()
    return deleted
