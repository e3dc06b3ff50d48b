"""
Clinical URLs - Appointments and Doctors.
"""
from django.urls import path, include
from rest_framework.routers import DefaultRouter

from .views import AppointmentViewSet, DoctorViewSet

router = DefaultRouter()
router.register(r'appointments', AppointmentViewSet, basename='appointment')
router.register(r'doctors', DoctorViewSet, basename='doctor')

urlpatterns = [
    path('', include(router.urls)),
]
