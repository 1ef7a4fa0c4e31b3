# consultation/views.py
#
# HTTP surface. Views validate the request body, resolve the caller's role and
# hand off to consultation.services; errors raised there are rendered by
# consultation.exceptions.exception_handler.

from django.utils import timezone
from rest_framework import status
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from . import services
from .auth import role_of, tokens_for
from .exceptions import Forbidden
from .models import UserProfile
from .serializers import (
    AccountSerializer,
    AvailabilitySerializer,
    ConsultationCreateSerializer,
    ConsultationListQuerySerializer,
    ConsultationRatingSerializer,
    ConsultationSerializer,
    ConsultationStatusSerializer,
    DoctorDirectorySerializer,
    LoginSerializer,
    MessageCreateSerializer,
    MessageSerializer,
    PrescriptionListQuerySerializer,
    PrescriptionSerializer,
    PrescriptionWriteSerializer,
    ProfileUpdateSerializer,
    RegisterSerializer,
)


def _validated(serializer_class, data, **kwargs):
    serializer = serializer_class(data=data, **kwargs)
    serializer.is_valid(raise_exception=True)
    return serializer.validated_data


# =============================================================================
# AUTHENTICATION
# =============================================================================

class RegisterView(APIView):
    permission_classes = [AllowAny]

    def post(self, request):
        data = _validated(RegisterSerializer, request.data)
        user = services.register_account(**data)
        return Response({
            **tokens_for(user),
            "user": AccountSerializer(user).data,
        }, status=status.HTTP_201_CREATED)


class LoginView(APIView):
    permission_classes = [AllowAny]

    def post(self, request):
        data = _validated(LoginSerializer, request.data)
        user = services.login(data["phone"], data["password"])
        return Response({
            **tokens_for(user),
            "role"     : role_of(user),
            "user_id"  : user.id,
            "full_name": user.get_full_name() or user.username,
        })


class MeView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request):
        return Response(AccountSerializer(request.user).data)


class ProfileView(APIView):
    permission_classes = [IsAuthenticated]

    def put(self, request):
        data = _validated(ProfileUpdateSerializer, request.data, context={"request": request})
        user = services.update_profile(request.user, **data)
        return Response(AccountSerializer(user).data)


# =============================================================================
# DOCTOR DIRECTORY
# =============================================================================

class DoctorAvailabilityView(APIView):
    """PUT /api/doctor/availability/: doctor toggles their own flag."""
    permission_classes = [IsAuthenticated]

    def put(self, request):
        data = _validated(AvailabilitySerializer, request.data)
        profile = services.set_availability(request.user, role_of(request.user), data["available"])
        return Response({"available": profile.available})


class AvailableDoctorsView(APIView):
    """GET /api/doctors/available/: public."""
    permission_classes = [AllowAny]

    def get(self, request):
        return Response(DoctorDirectorySerializer(services.available_doctors(), many=True).data)


# =============================================================================
# CONSULTATIONS
# =============================================================================

class ConsultationListCreateView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request):
        query = _validated(ConsultationListQuerySerializer, request.query_params.dict())
        result = services.list_consultations(
            request.user, role_of(request.user),
            status=query.get("status"), page=query["page"], limit=query["limit"],
        )
        result["consultations"] = ConsultationSerializer(result["consultations"], many=True).data
        return Response(result)

    def post(self, request):
        data = _validated(ConsultationCreateSerializer, request.data)
        consultation = services.create_consultation(
            request.user, role_of(request.user),
            doctor_id=data["doctor"],
            scheduled_at=data["scheduled_at"],
            type=data["type"],
            symptoms=data["symptoms"],
        )
        return Response(ConsultationSerializer(consultation).data, status=status.HTTP_201_CREATED)


class ConsultationDetailView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request, consultation_id):
        consultation = services.get_consultation(consultation_id, request.user, role_of(request.user))
        return Response(ConsultationSerializer(consultation).data)


class ConsultationStatusView(APIView):
    permission_classes = [IsAuthenticated]

    def put(self, request, consultation_id):
        data = _validated(ConsultationStatusSerializer, request.data)
        consultation = services.transition_consultation(
            consultation_id, request.user, role_of(request.user),
            data["status"],
            diagnosis=data.get("diagnosis"),
            notes=data.get("notes"),
        )
        return Response(ConsultationSerializer(consultation).data)


class ConsultationRateView(APIView):
    permission_classes = [IsAuthenticated]

    def post(self, request, consultation_id):
        data = _validated(ConsultationRatingSerializer, request.data)
        consultation = services.rate_consultation(
            consultation_id, request.user, data["rating"], data.get("review"),
        )
        return Response(ConsultationSerializer(consultation).data)


class ConsultationCancelView(APIView):
    permission_classes = [IsAuthenticated]

    def put(self, request, consultation_id):
        consultation = services.cancel_consultation(consultation_id, request.user, role_of(request.user))
        return Response({
            "message"     : "Consultation cancelled successfully",
            "consultation": ConsultationSerializer(consultation).data,
        })


# =============================================================================
# CHAT
# =============================================================================

class MessageSendView(APIView):
    permission_classes = [IsAuthenticated]

    def post(self, request):
        data = _validated(MessageCreateSerializer, request.data)
        message = services.send_message(
            data["consultation"], request.user, data["content"],
            message_type=data["message_type"], file_url=data["file_url"],
        )
        return Response(MessageSerializer(message).data, status=status.HTTP_201_CREATED)


class MessageHistoryView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request, consultation_id):
        messages = services.message_history(consultation_id, request.user)
        return Response(MessageSerializer(messages, many=True).data)


class MessageReadView(APIView):
    permission_classes = [IsAuthenticated]

    def put(self, request, consultation_id):
        updated = services.mark_read(consultation_id, request.user)
        return Response({"message": "Messages marked as read", "updated": updated})


# =============================================================================
# PRESCRIPTIONS
# =============================================================================

class PrescriptionListCreateView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request):
        query = _validated(PrescriptionListQuerySerializer, request.query_params.dict())
        role  = role_of(request.user)

        # Same route, different listing per caller role
        if role == UserProfile.ROLE_PATIENT:
            result = services.patient_prescriptions(
                request.user, is_active=query.get("is_active"),
                page=query["page"], limit=query["limit"],
            )
        elif role == UserProfile.ROLE_DOCTOR:
            result = services.doctor_prescriptions(
                request.user, patient_id=query.get("patient"),
                page=query["page"], limit=query["limit"],
            )
        else:
            raise Forbidden("Unauthorized role")

        result["prescriptions"] = PrescriptionSerializer(result["prescriptions"], many=True).data
        return Response(result)

    def post(self, request):
        data = dict(_validated(PrescriptionWriteSerializer, request.data))
        prescription = services.create_prescription(
            request.user, role_of(request.user),
            patient_id=data.pop("patient"),
            consultation_id=data.pop("consultation", None),
            **data,
        )
        return Response(PrescriptionSerializer(prescription).data, status=status.HTTP_201_CREATED)


class PrescriptionDetailView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request, prescription_id):
        prescription = services.get_prescription(prescription_id, request.user, role_of(request.user))
        return Response(PrescriptionSerializer(prescription).data)

    def put(self, request, prescription_id):
        serializer = PrescriptionWriteSerializer(data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)
        data = dict(serializer.validated_data)
        data.pop("patient", None)
        data.pop("consultation", None)
        prescription = services.update_prescription(
            prescription_id, request.user, role_of(request.user), **data,
        )
        return Response(PrescriptionSerializer(prescription).data)


class PrescriptionDeactivateView(APIView):
    permission_classes = [IsAuthenticated]

    def put(self, request, prescription_id):
        services.deactivate_prescription(prescription_id, request.user, role_of(request.user))
        return Response({"message": "Prescription deactivated successfully"})


# =============================================================================
# HEALTH
# =============================================================================

class HealthView(APIView):
    permission_classes = [AllowAny]
    authentication_classes = []

    def get(self, request):
        return Response({"status": "OK", "timestamp": timezone.now().isoformat()})
