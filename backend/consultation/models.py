# consultation/models.py
#
# Database tables for the telehealth app.
#
# Models in this file:
#   1. UserProfile  : role, phone, availability and rating for every account
#   2. Consultation : one booked interaction between a patient and a doctor
#   3. Message      : one chat entry inside a consultation
#   4. Prescription : medication order issued by a doctor
#
# Django's built-in User stores username (= phone), password, email and names.

from datetime import timedelta

from django.contrib.auth.models import User
from django.db import models
from django.utils import timezone


# =============================================================================
# 1. USER PROFILE : one row per account, linked to Django's built-in User
# =============================================================================

class UserProfile(models.Model):
    """
    Extra details about every account.
    `available`, `consultation_fee`, `rating` and `total_consultations` only
    mean something for doctors.
    """

    ROLE_PATIENT = "patient"
    ROLE_DOCTOR  = "doctor"
    ROLE_ADMIN   = "admin"

    ROLE_CHOICES = [
        (ROLE_PATIENT, "Patient"),
        (ROLE_DOCTOR,  "Doctor"),
        (ROLE_ADMIN,   "Admin"),
    ]

    user                = models.OneToOneField(User, on_delete=models.CASCADE, related_name="profile")
    role                = models.CharField(max_length=10, choices=ROLE_CHOICES, default=ROLE_PATIENT)
    phone               = models.CharField(max_length=20, unique=True)
    language            = models.CharField(max_length=40, blank=True)
    specialization      = models.CharField(max_length=100, blank=True)   # e.g. "Cardiology"

    # ── Doctor directory fields ───────────────────────────────────────────────
    available           = models.BooleanField(default=False)
    consultation_fee    = models.DecimalField(max_digits=10, decimal_places=2, default=0)
    rating              = models.FloatField(default=0)
    total_consultations = models.PositiveIntegerField(default=0)

    created_at          = models.DateTimeField(auto_now_add=True)
    updated_at          = models.DateTimeField(auto_now=True)

    class Meta:
        indexes = [
            models.Index(fields=["role", "specialization", "available"], name="profile_role_spec_avail_idx"),
        ]

    @property
    def display_name(self):
        return self.user.get_full_name() or self.user.username

    def __str__(self):
        return f"{self.display_name} ({self.role})"


# =============================================================================
# 2. CONSULTATION : the central record for every booked interaction
# =============================================================================

class Consultation(models.Model):
    """
    One row = one scheduled interaction between exactly one patient and one doctor.

    Flow:
      Patient books         →  status = 'scheduled'
      Doctor/Patient starts →  status = 'in-progress'
      Consultation ends     →  status = 'completed'
      Alternate exits from 'scheduled': 'cancelled', 'no-show'
    """

    SCHEDULED   = "scheduled"
    IN_PROGRESS = "in-progress"
    COMPLETED   = "completed"
    CANCELLED   = "cancelled"
    NO_SHOW     = "no-show"

    STATUS_CHOICES = [
        (SCHEDULED,   "Scheduled"),
        (IN_PROGRESS, "In progress"),
        (COMPLETED,   "Completed"),
        (CANCELLED,   "Cancelled"),
        (NO_SHOW,     "No show"),
    ]

    # States that block the doctor's calendar
    ACTIVE_STATUSES = (SCHEDULED, IN_PROGRESS)

    # Allowed moves; re-entering the current state is handled separately
    TRANSITIONS = {
        SCHEDULED:   {IN_PROGRESS, CANCELLED, NO_SHOW},
        IN_PROGRESS: {COMPLETED},
        COMPLETED:   set(),
        CANCELLED:   set(),
        NO_SHOW:     set(),
    }

    TYPE_CHOICES = [
        ("chat",      "Chat"),
        ("video",     "Video"),
        ("voice",     "Voice"),
        ("in-person", "In person"),
    ]

    PAYMENT_CHOICES = [
        ("pending",  "Pending"),
        ("paid",     "Paid"),
        ("refunded", "Refunded"),
    ]

    # ── Participants ──────────────────────────────────────────────────────────
    patient         = models.ForeignKey(User, on_delete=models.CASCADE, related_name="patient_consultations")
    doctor          = models.ForeignKey(User, on_delete=models.CASCADE, related_name="doctor_consultations")

    # ── Schedule & state ──────────────────────────────────────────────────────
    status          = models.CharField(max_length=20, choices=STATUS_CHOICES, default=SCHEDULED)
    type            = models.CharField(max_length=20, choices=TYPE_CHOICES, default="chat")
    scheduled_at    = models.DateTimeField()
    started_at      = models.DateTimeField(null=True, blank=True)
    ended_at        = models.DateTimeField(null=True, blank=True)
    duration        = models.PositiveIntegerField(null=True, blank=True)   # in minutes

    # ── Medical context ───────────────────────────────────────────────────────
    symptoms        = models.JSONField(default=list, blank=True)
    diagnosis       = models.TextField(blank=True)
    notes           = models.TextField(blank=True)
    follow_up_date  = models.DateTimeField(null=True, blank=True)
    prescription    = models.ForeignKey(
        "Prescription", on_delete=models.SET_NULL, null=True, blank=True,
        related_name="+"
    )

    # ── Feedback & billing ────────────────────────────────────────────────────
    rating          = models.PositiveSmallIntegerField(null=True, blank=True)
    review          = models.TextField(blank=True)
    payment_status  = models.CharField(max_length=10, choices=PAYMENT_CHOICES, default="pending")
    amount          = models.DecimalField(max_digits=10, decimal_places=2, default=0)

    created_at      = models.DateTimeField(auto_now_add=True)
    updated_at      = models.DateTimeField(auto_now=True)

    class Meta:
        indexes = [
            models.Index(fields=["patient", "status"], name="consult_patient_status_idx"),
            models.Index(fields=["doctor", "status"], name="consult_doctor_status_idx"),
            models.Index(fields=["scheduled_at"], name="consult_scheduled_at_idx"),
            models.Index(fields=["status", "scheduled_at"], name="consult_status_sched_idx"),
        ]

    @property
    def room_name(self):
        """Channels group every subscriber of this consultation listens on."""
        return f"consultation_{self.pk}"

    def is_participant(self, user_id):
        return user_id in (self.patient_id, self.doctor_id)

    def __str__(self):
        return f"Consultation {self.pk}: patient={self.patient_id} doctor={self.doctor_id} @ {self.scheduled_at}"


# =============================================================================
# 3. MESSAGE : one chat entry scoped to a consultation
# =============================================================================

class Message(models.Model):

    MESSAGE_TYPE_CHOICES = [
        ("text",  "Text"),
        ("image", "Image"),
        ("file",  "File"),
        ("audio", "Audio"),
        ("video", "Video"),
    ]

    consultation = models.ForeignKey(Consultation, on_delete=models.CASCADE, related_name="messages")
    sender       = models.ForeignKey(User, on_delete=models.CASCADE, related_name="sent_messages")
    content      = models.TextField()
    message_type = models.CharField(max_length=10, choices=MESSAGE_TYPE_CHOICES, default="text")
    file_url     = models.URLField(max_length=500, blank=True)
    timestamp    = models.DateTimeField(default=timezone.now)
    is_read      = models.BooleanField(default=False)

    class Meta:
        ordering = ["timestamp", "id"]
        indexes = [
            models.Index(fields=["consultation", "timestamp"], name="message_consult_ts_idx"),
        ]

    def __str__(self):
        return f"Message {self.pk} in consultation {self.consultation_id} from {self.sender_id}"


# =============================================================================
# 4. PRESCRIPTION : medication order issued by a doctor to a patient
# =============================================================================

def default_expiry():
    return timezone.now() + timedelta(days=30)


class Prescription(models.Model):
    """
    `medications` and `lab_tests` are JSON arrays validated by the serializers:
      medications: [{"name", "dosage", "frequency", "duration", "quantity", "unit", ...}]
      lab_tests:   [{"test_name", "instructions", "urgency"}]
    """

    doctor         = models.ForeignKey(User, on_delete=models.CASCADE, related_name="issued_prescriptions")
    patient        = models.ForeignKey(User, on_delete=models.CASCADE, related_name="prescriptions")
    consultation   = models.ForeignKey(
        Consultation, on_delete=models.SET_NULL, null=True, blank=True,
        related_name="prescriptions"
    )

    medications    = models.JSONField(default=list)
    instructions   = models.TextField(blank=True)
    diagnosis      = models.TextField(blank=True)
    symptoms       = models.JSONField(default=list, blank=True)
    follow_up_date = models.DateTimeField(null=True, blank=True)
    warnings       = models.JSONField(default=list, blank=True)
    allergies      = models.JSONField(default=list, blank=True)
    lab_tests      = models.JSONField(default=list, blank=True)
    notes          = models.TextField(blank=True)

    is_active      = models.BooleanField(default=True)
    refill_count   = models.PositiveIntegerField(default=0)
    max_refills    = models.PositiveIntegerField(default=0)
    prescribed_at  = models.DateTimeField(default=timezone.now)
    expires_at     = models.DateTimeField(default=default_expiry)

    created_at     = models.DateTimeField(auto_now_add=True)
    updated_at     = models.DateTimeField(auto_now=True)

    class Meta:
        indexes = [
            models.Index(fields=["patient", "is_active"], name="rx_patient_active_idx"),
            models.Index(fields=["doctor", "created_at"], name="rx_doctor_created_idx"),
        ]

    def __str__(self):
        return f"Prescription {self.pk}: doctor={self.doctor_id} patient={self.patient_id}"
