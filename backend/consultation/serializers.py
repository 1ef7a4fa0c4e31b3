# consultation/serializers.py
#
# Output serializers turn model rows into JSON for the React client.
# Input serializers only validate request bodies; the services do the writes.

from django.contrib.auth.models import User
from rest_framework import serializers

from .models import Consultation, Message, Prescription, UserProfile


# =============================================================================
# ACCOUNTS
# =============================================================================

class UserProfileSerializer(serializers.ModelSerializer):
    class Meta:
        model = UserProfile
        fields = [
            "role", "phone", "language", "specialization", "available",
            "consultation_fee", "rating", "total_consultations",
        ]


class AccountSerializer(serializers.ModelSerializer):
    """Used in /api/auth/me/ and after registration. Never exposes the password."""
    name    = serializers.SerializerMethodField()
    profile = UserProfileSerializer(read_only=True)

    class Meta:
        model = User
        fields = ["id", "name", "first_name", "last_name", "email", "profile"]

    def get_name(self, obj):
        return obj.get_full_name() or obj.username


class DoctorDirectorySerializer(serializers.ModelSerializer):
    """Flat row for the public list of available doctors."""
    id   = serializers.IntegerField(source="user.id", read_only=True)
    name = serializers.CharField(source="display_name", read_only=True)

    class Meta:
        model = UserProfile
        fields = [
            "id", "name", "phone", "language", "specialization",
            "consultation_fee", "rating", "total_consultations", "available",
        ]


class RegisterSerializer(serializers.Serializer):
    name             = serializers.CharField(max_length=150)
    phone            = serializers.CharField(max_length=20)
    password         = serializers.CharField(write_only=True, min_length=6)
    role             = serializers.ChoiceField(
        choices=[UserProfile.ROLE_PATIENT, UserProfile.ROLE_DOCTOR],
        default=UserProfile.ROLE_PATIENT,
    )
    email            = serializers.EmailField(required=False, allow_blank=True, default="")
    language         = serializers.CharField(required=False, allow_blank=True, default="")
    specialization   = serializers.CharField(required=False, allow_blank=True, default="")
    consultation_fee = serializers.DecimalField(max_digits=10, decimal_places=2, min_value=0, required=False, default=0)

    def validate_phone(self, value):
        value = value.strip()
        if UserProfile.objects.filter(phone=value).exists() or User.objects.filter(username=value).exists():
            raise serializers.ValidationError("Phone number already registered")
        return value

    def validate_email(self, value):
        value = value.strip().lower()
        if value and User.objects.filter(email__iexact=value).exists():
            raise serializers.ValidationError("Email already registered")
        return value


class LoginSerializer(serializers.Serializer):
    phone    = serializers.CharField()
    password = serializers.CharField(write_only=True)


class ProfileUpdateSerializer(serializers.Serializer):
    name             = serializers.CharField(max_length=150, required=False)
    email            = serializers.EmailField(required=False, allow_blank=True)
    language         = serializers.CharField(required=False, allow_blank=True)
    specialization   = serializers.CharField(required=False, allow_blank=True)
    consultation_fee = serializers.DecimalField(max_digits=10, decimal_places=2, min_value=0, required=False)

    def validate_email(self, value):
        value = value.strip().lower()
        user = self.context["request"].user
        if value and User.objects.filter(email__iexact=value).exclude(pk=user.pk).exists():
            raise serializers.ValidationError("Email already registered")
        return value


class AvailabilitySerializer(serializers.Serializer):
    available = serializers.BooleanField()


class PaginationSerializer(serializers.Serializer):
    page  = serializers.IntegerField(min_value=1, default=1)
    limit = serializers.IntegerField(min_value=1, max_value=100, default=10)


# =============================================================================
# CONSULTATION
# =============================================================================

class ConsultationSerializer(serializers.ModelSerializer):
    """
    Used for listing consultations and showing one consultation card.
    Includes patient and doctor names for easy display in React.
    """

    doctor_name  = serializers.SerializerMethodField()
    patient_name = serializers.SerializerMethodField()
    status_label = serializers.CharField(source="get_status_display", read_only=True)
    room         = serializers.CharField(source="room_name", read_only=True)

    class Meta:
        model = Consultation
        fields = [
            "id",
            "room",
            "patient",
            "patient_name",
            "doctor",
            "doctor_name",
            "status",
            "status_label",
            "type",
            "scheduled_at",
            "started_at",
            "ended_at",
            "duration",
            "symptoms",
            "diagnosis",
            "notes",
            "follow_up_date",
            "prescription",
            "rating",
            "review",
            "payment_status",
            "amount",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields

    def get_doctor_name(self, obj):
        return obj.doctor.get_full_name() or obj.doctor.username

    def get_patient_name(self, obj):
        return obj.patient.get_full_name() or obj.patient.username


class ConsultationCreateSerializer(serializers.Serializer):
    """Body of POST /api/consultations/."""
    doctor       = serializers.IntegerField()
    scheduled_at = serializers.DateTimeField()
    type         = serializers.ChoiceField(choices=[c[0] for c in Consultation.TYPE_CHOICES], default="chat")
    symptoms     = serializers.ListField(child=serializers.CharField(max_length=200), required=False, default=list)


class ConsultationStatusSerializer(serializers.Serializer):
    status    = serializers.ChoiceField(choices=[c[0] for c in Consultation.STATUS_CHOICES])
    diagnosis = serializers.CharField(required=False, allow_blank=True)
    notes     = serializers.CharField(required=False, allow_blank=True)


class ConsultationRatingSerializer(serializers.Serializer):
    rating = serializers.IntegerField(min_value=1, max_value=5)
    review = serializers.CharField(required=False, allow_blank=True)


class ConsultationListQuerySerializer(PaginationSerializer):
    status = serializers.ChoiceField(choices=[c[0] for c in Consultation.STATUS_CHOICES], required=False)


# =============================================================================
# MESSAGE
# =============================================================================

class MessageSerializer(serializers.ModelSerializer):
    sender_name = serializers.SerializerMethodField()

    class Meta:
        model = Message
        fields = [
            "id", "consultation", "sender", "sender_name", "content",
            "message_type", "file_url", "timestamp", "is_read",
        ]
        read_only_fields = fields

    def get_sender_name(self, obj):
        return obj.sender.get_full_name() or obj.sender.username


class MessageCreateSerializer(serializers.Serializer):
    """Body of POST /api/chat/."""
    consultation = serializers.IntegerField()
    content      = serializers.CharField()
    message_type = serializers.ChoiceField(choices=[c[0] for c in Message.MESSAGE_TYPE_CHOICES], default="text")
    file_url     = serializers.URLField(required=False, allow_blank=True, default="")


# =============================================================================
# PRESCRIPTION
# =============================================================================

class MedicationSerializer(serializers.Serializer):
    name         = serializers.CharField(max_length=200)
    dosage       = serializers.CharField(max_length=100)
    frequency    = serializers.CharField(max_length=100)    # e.g. "twice daily"
    duration     = serializers.CharField(max_length=100)    # e.g. "7 days"
    instructions = serializers.CharField(required=False, allow_blank=True)
    quantity     = serializers.IntegerField(min_value=1)
    unit         = serializers.CharField(max_length=30, default="tablets")
    before_meal  = serializers.BooleanField(default=False)
    after_meal   = serializers.BooleanField(default=False)


class LabTestSerializer(serializers.Serializer):
    test_name    = serializers.CharField(max_length=200)
    instructions = serializers.CharField(required=False, allow_blank=True)
    urgency      = serializers.ChoiceField(choices=["routine", "urgent", "emergency"], default="routine")


class PrescriptionSerializer(serializers.ModelSerializer):
    doctor_name  = serializers.SerializerMethodField()
    patient_name = serializers.SerializerMethodField()
    medications  = MedicationSerializer(many=True, read_only=True)
    lab_tests    = LabTestSerializer(many=True, read_only=True)

    class Meta:
        model = Prescription
        fields = [
            "id", "doctor", "doctor_name", "patient", "patient_name", "consultation",
            "medications", "instructions", "diagnosis", "symptoms", "follow_up_date",
            "warnings", "allergies", "lab_tests", "notes", "is_active",
            "refill_count", "max_refills", "prescribed_at", "expires_at",
            "created_at", "updated_at",
        ]
        read_only_fields = fields

    def get_doctor_name(self, obj):
        return obj.doctor.get_full_name() or obj.doctor.username

    def get_patient_name(self, obj):
        return obj.patient.get_full_name() or obj.patient.username


class PrescriptionWriteSerializer(serializers.Serializer):
    """Body of POST /api/prescriptions/ and PUT /api/prescriptions/<id>/ (partial)."""
    patient        = serializers.IntegerField()
    consultation   = serializers.IntegerField(required=False, allow_null=True)
    medications    = MedicationSerializer(many=True, allow_empty=False)
    instructions   = serializers.CharField(required=False, allow_blank=True)
    diagnosis      = serializers.CharField(required=False, allow_blank=True)
    symptoms       = serializers.ListField(child=serializers.CharField(), required=False)
    follow_up_date = serializers.DateTimeField(required=False, allow_null=True)
    warnings       = serializers.ListField(child=serializers.CharField(), required=False)
    allergies      = serializers.ListField(child=serializers.CharField(), required=False)
    lab_tests      = LabTestSerializer(many=True, required=False)
    notes          = serializers.CharField(required=False, allow_blank=True)
    max_refills    = serializers.IntegerField(min_value=0, required=False)


class PrescriptionListQuerySerializer(PaginationSerializer):
    is_active = serializers.BooleanField(required=False, allow_null=True, default=None)
    patient   = serializers.IntegerField(required=False)
