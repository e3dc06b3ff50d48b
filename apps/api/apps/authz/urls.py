"""
Authz URLs - account registration
"""
from django.urls import path

from .views import ClinicAdminRegistrationView, DoctorRegistrationView, PatientRegistrationView

urlpatterns = [
    path('patients/register/', PatientRegistrationView.as_view(), name='patient-register'),
    path('doctors/register/', DoctorRegistrationView.as_view(), name='doctor-register'),
    path('clinic-admins/register/', ClinicAdminRegistrationView.as_view(), name='clinic-admin-register'),
]
