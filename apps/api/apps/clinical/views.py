"""
Clinical viewsets for Appointment and Doctor.

Views translate HTTP into engine calls (apps.clinical.lifecycle,
apps.clinical.services). Domain errors propagate as BookingError and are
rendered by apps.core.exceptions.booking_exception_handler.
"""
from rest_framework import mixins, status, viewsets
from rest_framework.decorators import action
from rest_framework.response import Response

from apps.authz.guards import Action
from apps.authz.models import RoleChoices
from apps.authz.permissions import GuardPermission, actor_for
from apps.clinical import lifecycle, services
from apps.clinical.models import Appointment, Doctor, Patient, VerificationStatusChoices
from apps.clinical.serializers import (
    AppointmentBookingSerializer,
    AppointmentDetailSerializer,
    AppointmentListSerializer,
    AppointmentMessageSerializer,
    AppointmentRescheduleSerializer,
    AppointmentTransitionSerializer,
    DoctorRejectSerializer,
    DoctorSerializer,
)
from apps.clinical.windows import upcoming_appointments_for
from apps.core.exceptions import Forbidden


class AppointmentViewSet(mixins.ListModelMixin,
                         mixins.RetrieveModelMixin,
                         viewsets.GenericViewSet):
    """
    ViewSet for Appointment endpoints.

    Endpoints:
    - GET  /api/v1/appointments/
    - POST /api/v1/appointments/                      (book)
    - GET  /api/v1/appointments/{id}/
    - GET  /api/v1/appointments/upcoming/             (patient banner)
    - POST /api/v1/appointments/{id}/transition/
    - POST /api/v1/appointments/{id}/reschedule/
    - POST /api/v1/appointments/{id}/cancel/
    - POST /api/v1/appointments/{id}/start-session/
    - POST /api/v1/appointments/{id}/end-session/
    - POST /api/v1/appointments/{id}/follow-up/
    - GET/POST /api/v1/appointments/{id}/messages/
    - POST /api/v1/appointments/{id}/messages/read/
    """
    permission_classes = [GuardPermission]
    guard_actions = {
        'list': Action.VIEW_APPOINTMENT,
        'retrieve': Action.VIEW_APPOINTMENT,
        'create': Action.BOOK_APPOINTMENT,
        'upcoming': Action.VIEW_APPOINTMENT,
        'transition_status': Action.TRANSITION_APPOINTMENT,
        'reschedule': Action.RESCHEDULE_APPOINTMENT,
        'start_session': Action.RUN_VIRTUAL_SESSION,
        'end_session': Action.RUN_VIRTUAL_SESSION,
        'follow_up': Action.SEND_FOLLOW_UP,
    }

    def get_queryset(self):
        """
        Appointments visible to the acting role.

        - patient: own appointments
        - doctor: appointments with them
        - clinic_admin: appointments at their clinics
        - admin: all

        Filters:
        - status: Filter by appointment status
        - date_from / date_to: Filter by appointment_date (inclusive)
        """
        queryset = Appointment.objects.select_related(
            'patient__user',
            'doctor__user',
            'clinic',
        )

        actor = actor_for(self.request)
        if actor.role == RoleChoices.PATIENT:
            queryset = queryset.filter(patient__user_id=actor.user_id)
        elif actor.role == RoleChoices.DOCTOR:
            queryset = queryset.filter(doctor__user_id=actor.user_id)
        elif actor.role == RoleChoices.CLINIC_ADMIN:
            queryset = queryset.filter(clinic_id__in=actor.clinic_ids)
        elif not actor.is_admin:
            queryset = queryset.none()

        status_filter = self.request.query_params.get('status', None)
        if status_filter:
            queryset = queryset.filter(status=status_filter)

        date_from = self.request.query_params.get('date_from', None)
        if date_from:
            queryset = queryset.filter(appointment_date__gte=date_from)

        date_to = self.request.query_params.get('date_to', None)
        if date_to:
            queryset = queryset.filter(appointment_date__lte=date_to)

        return queryset.order_by('-appointment_date', '-appointment_time')

    def get_serializer_class(self):
        if self.action == 'list':
            return AppointmentListSerializer
        return AppointmentDetailSerializer

    def _detail(self, appointment, status_code=status.HTTP_200_OK):
        return Response(AppointmentDetailSerializer(appointment).data, status=status_code)

    def create(self, request, *args, **kwargs):
        """
        POST /api/v1/appointments/
        Book a pending appointment with a verified doctor.
        """
        serializer = AppointmentBookingSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        actor = actor_for(request)

        if actor.is_admin and data.get('patient') is not None:
            patient = data['patient']
        else:
            patient = Patient.objects.filter(user_id=actor.user_id).first()
            if patient is None:
                raise Forbidden('A patient profile is required to book appointments')

        appointment = services.book_appointment(
            patient=patient,
            doctor=data['doctor'],
            appointment_date=data['appointment_date'],
            appointment_time=data['appointment_time'],
            appointment_type=data['appointment_type'],
            reason=data['reason'],
            actor=actor,
        )
        return self._detail(appointment, status.HTTP_201_CREATED)

    @action(detail=False, methods=['get'], url_path='upcoming')
    def upcoming(self, request):
        """
        GET /api/v1/appointments/upcoming/

        Confirmed appointments starting within the banner window. Dismissing
        the banner is a client-side concern.
        """
        patient = Patient.objects.filter(user_id=actor_for(request).user_id).first()
        if patient is None:
            return Response([])
        appointments = upcoming_appointments_for(patient)
        return Response(AppointmentDetailSerializer(appointments, many=True).data)

    @action(detail=True, methods=['post'], url_path='transition')
    def transition_status(self, request, pk=None):
        """
        POST /api/v1/appointments/{id}/transition/

        Request body:
        {
            "status": "confirmed"
        }

        Returns:
            200: Transition successful
            403: Role or ownership rejected
            409: Invalid transition (including a concurrent change)
        """
        serializer = AppointmentTransitionSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        appointment = lifecycle.request_transition(
            self.get_object(),
            actor_for(request),
            serializer.validated_data['status'],
        )
        return self._detail(appointment)

    @action(detail=True, methods=['post'], url_path='cancel')
    def cancel(self, request, pk=None):
        appointment = lifecycle.cancel_appointment(self.get_object(), actor_for(request))
        return self._detail(appointment)

    @action(detail=True, methods=['post'], url_path='reschedule')
    def reschedule(self, request, pk=None):
        """
        POST /api/v1/appointments/{id}/reschedule/

        Only while pending and at least 24 hours ahead; 409 otherwise.
        """
        serializer = AppointmentRescheduleSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        appointment = lifecycle.reschedule_appointment(
            self.get_object(),
            actor_for(request),
            serializer.validated_data['appointment_date'],
            serializer.validated_data['appointment_time'],
        )
        return self._detail(appointment)

    @action(detail=True, methods=['post'], url_path='start-session')
    def start_session(self, request, pk=None):
        appointment = lifecycle.start_virtual_session(self.get_object(), actor_for(request))
        return self._detail(appointment)

    @action(detail=True, methods=['post'], url_path='end-session')
    def end_session(self, request, pk=None):
        appointment = lifecycle.end_virtual_session(self.get_object(), actor_for(request))
        return self._detail(appointment)

    @action(detail=True, methods=['post'], url_path='follow-up')
    def follow_up(self, request, pk=None):
        serializer = AppointmentMessageSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        message = services.send_follow_up(
            self.get_object(),
            actor_for(request),
            serializer.validated_data['message'],
        )
        return Response(AppointmentMessageSerializer(message).data, status=status.HTTP_201_CREATED)

    @action(detail=True, methods=['get', 'post'], url_path='messages')
    def messages(self, request, pk=None):
        """
        GET  /api/v1/appointments/{id}/messages/ - thread, oldest first
        POST /api/v1/appointments/{id}/messages/ - {"message": "..."}
        """
        appointment = self.get_object()
        if request.method == 'GET':
            thread = appointment.messages.select_related('sender')
            return Response(AppointmentMessageSerializer(thread, many=True).data)

        serializer = AppointmentMessageSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        message = services.post_message(
            appointment,
            actor_for(request),
            serializer.validated_data['message'],
        )
        return Response(AppointmentMessageSerializer(message).data, status=status.HTTP_201_CREATED)

    @action(detail=True, methods=['post'], url_path='messages/read')
    def mark_read(self, request, pk=None):
        updated = services.mark_messages_read(self.get_object(), actor_for(request))
        return Response({'marked_read': updated})


class DoctorViewSet(viewsets.ReadOnlyModelViewSet):
    """
    ViewSet for Doctor endpoints.

    Endpoints:
    - GET  /api/v1/doctors/              (verified, active doctors; admins see all)
    - GET  /api/v1/doctors/{id}/
    - POST /api/v1/doctors/{id}/verify/  (admin)
    - POST /api/v1/doctors/{id}/reject/  (admin)
    """
    permission_classes = [GuardPermission]
    serializer_class = DoctorSerializer
    # Doctor records are visible to every signed-in user
    guard_ownership = False
    guard_actions = {
        'verify': Action.VERIFY_DOCTOR,
        'reject': Action.VERIFY_DOCTOR,
    }

    def get_queryset(self):
        queryset = Doctor.objects.select_related('clinic', 'user').order_by('display_name')
        if not actor_for(self.request).is_admin:
            queryset = queryset.filter(
                is_active=True,
                verification_status=VerificationStatusChoices.VERIFIED,
            )
        clinic_id = self.request.query_params.get('clinic_id', None)
        if clinic_id:
            queryset = queryset.filter(clinic_id=clinic_id)
        return queryset

    @action(detail=True, methods=['post'], url_path='verify')
    def verify(self, request, pk=None):
        doctor = services.verify_doctor(self.get_object(), actor_for(request))
        return Response(DoctorSerializer(doctor).data)

    @action(detail=True, methods=['post'], url_path='reject')
    def reject(self, request, pk=None):
        serializer = DoctorRejectSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        doctor = services.reject_doctor(
            self.get_object(),
            actor_for(request),
            serializer.validated_data['reason'],
        )
        return Response(DoctorSerializer(doctor).data)
