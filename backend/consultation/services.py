"""
consultation/services.py

Business operations behind the HTTP views and the WebSocket consumer.
Every function either returns the resulting row(s) or raises one of the
errors in consultation.exceptions; nothing is retried.
"""

import logging
import math
from datetime import timedelta
from decimal import ROUND_HALF_UP, Decimal

from django.contrib.auth import authenticate
from django.contrib.auth.models import User
from django.db import transaction
from django.db.models import Avg, Count
from django.utils import timezone

from . import relay
from .exceptions import (
    AuthenticationError,
    DoctorUnavailable,
    Forbidden,
    InvalidState,
    NotFound,
    SchedulingConflict,
    ValidationError,
)
from .models import Consultation, Message, Prescription, UserProfile
from .serializers import MessageSerializer

logger = logging.getLogger(__name__)

# Every booking blocks [scheduled_at, scheduled_at + 30 min) on the doctor's calendar
CONSULTATION_WINDOW = timedelta(minutes=30)

CONSULTATION_TYPES = {choice[0] for choice in Consultation.TYPE_CHOICES}
CONSULTATION_STATUSES = {choice[0] for choice in Consultation.STATUS_CHOICES}
MESSAGE_TYPES = {choice[0] for choice in Message.MESSAGE_TYPE_CHOICES}

PRESCRIPTION_FIELDS = (
    "medications", "instructions", "diagnosis", "symptoms", "follow_up_date",
    "warnings", "allergies", "lab_tests", "notes", "max_refills",
)


def _paginate(queryset, page, limit):
    total = queryset.count()
    start = (page - 1) * limit
    items = list(queryset[start:start + limit])
    return items, {
        "total_pages" : math.ceil(total / limit) if total else 0,
        "current_page": page,
        "total"       : total,
    }


# =============================================================================
# ACCOUNTS
# =============================================================================

@transaction.atomic
def register_account(name, phone, password, role=UserProfile.ROLE_PATIENT, email="",
                     language="", specialization="", consultation_fee=0):
    first_name, _, last_name = name.strip().partition(" ")
    user = User.objects.create_user(
        username=phone, password=password, email=email,
        first_name=first_name, last_name=last_name.strip(),
    )
    UserProfile.objects.create(
        user=user, role=role, phone=phone, language=language,
        specialization=specialization, consultation_fee=consultation_fee,
    )
    logger.info("Registered %s account %s", role, user.pk)
    return user


def login(phone, password):
    user = authenticate(username=phone, password=password)
    if user is None:
        raise AuthenticationError("Invalid credentials")
    return user


def update_profile(user, **fields):
    profile = user.profile
    if "name" in fields:
        first_name, _, last_name = fields.pop("name").strip().partition(" ")
        user.first_name = first_name
        user.last_name  = last_name.strip()
    if "email" in fields:
        user.email = fields.pop("email")
    user.save()

    for key, value in fields.items():
        setattr(profile, key, value)
    profile.save()
    return user


def set_availability(user, role, available):
    if role != UserProfile.ROLE_DOCTOR:
        raise Forbidden("Only doctors can change availability")

    profile = user.profile
    profile.available = available
    profile.save(update_fields=["available", "updated_at"])
    logger.info("Doctor %s availability → %s", user.pk, available)

    relay.broadcast_from_sync(relay.DIRECTORY_ROOM, {
        "type"     : "doctorAvailabilityChanged",
        "doctorId" : user.pk,
        "available": available,
    })
    return profile


def available_doctors():
    return (
        UserProfile.objects.select_related("user")
        .filter(role=UserProfile.ROLE_DOCTOR, available=True, user__is_active=True)
        .order_by("-rating", "user__first_name")
    )


# =============================================================================
# CONSULTATION MANAGER
# =============================================================================

def _get_consultation(consultation_id):
    consultation = (
        Consultation.objects.select_related("patient", "doctor")
        .filter(pk=consultation_id)
        .first()
    )
    if consultation is None:
        raise NotFound("Consultation not found")
    return consultation


def _require_party(consultation, actor, role):
    """The actor must sit on the side of the record that matches their role."""
    if role == UserProfile.ROLE_DOCTOR and consultation.doctor_id == actor.pk:
        return
    if role == UserProfile.ROLE_PATIENT and consultation.patient_id == actor.pk:
        return
    raise Forbidden("Not authorized")


def create_consultation(patient, role, doctor_id, scheduled_at, type="chat", symptoms=None):
    if role != UserProfile.ROLE_PATIENT:
        raise Forbidden("Only patients can book consultations")
    if type not in CONSULTATION_TYPES:
        raise ValidationError(f"Unknown consultation type '{type}'")
    if timezone.is_naive(scheduled_at):
        scheduled_at = timezone.make_aware(scheduled_at)

    doctor = (
        User.objects.select_related("profile")
        .filter(pk=doctor_id, profile__role=UserProfile.ROLE_DOCTOR)
        .first()
    )
    if doctor is None:
        raise NotFound("Doctor not found")
    if not doctor.profile.available:
        raise DoctorUnavailable()

    # Two windows [a, a+30) and [b, b+30) intersect when |a - b| < 30 min.
    # Check-then-insert is not atomic: concurrent bookings can both pass.
    conflict = Consultation.objects.filter(
        doctor=doctor,
        status__in=Consultation.ACTIVE_STATUSES,
        scheduled_at__gt=scheduled_at - CONSULTATION_WINDOW,
        scheduled_at__lt=scheduled_at + CONSULTATION_WINDOW,
    ).exists()
    if conflict:
        raise SchedulingConflict()

    consultation = Consultation.objects.create(
        patient=patient,
        doctor=doctor,
        scheduled_at=scheduled_at,
        type=type,
        symptoms=list(symptoms or []),
        amount=doctor.profile.consultation_fee,
    )
    logger.info(
        "Consultation %s booked: patient=%s doctor=%s at %s",
        consultation.pk, patient.pk, doctor.pk, scheduled_at.isoformat(),
    )

    relay.broadcast_from_sync(relay.user_room(doctor.pk), {
        "type"          : "consultationBooked",
        "consultationId": consultation.pk,
        "patientId"     : patient.pk,
        "scheduledAt"   : scheduled_at.isoformat(),
    })
    return consultation


def get_consultation(consultation_id, actor, role):
    consultation = _get_consultation(consultation_id)
    _require_party(consultation, actor, role)
    return consultation


def list_consultations(actor, role, status=None, page=1, limit=10):
    if role == UserProfile.ROLE_DOCTOR:
        queryset = Consultation.objects.filter(doctor=actor)
    elif role == UserProfile.ROLE_PATIENT:
        queryset = Consultation.objects.filter(patient=actor)
    else:
        raise Forbidden("Unauthorized role")

    if status:
        queryset = queryset.filter(status=status)
    queryset = queryset.select_related("patient", "doctor").order_by("-scheduled_at", "-id")

    consultations, page_info = _paginate(queryset, page, limit)
    return {"consultations": consultations, **page_info}


def _notify_status(consultation):
    relay.broadcast_from_sync(consultation.room_name, {
        "type"          : "consultationStatusChanged",
        "consultationId": consultation.pk,
        "status"        : consultation.status,
    })


def transition_consultation(consultation_id, actor, role, new_status, diagnosis=None, notes=None):
    if new_status not in CONSULTATION_STATUSES:
        raise ValidationError(f"Unknown status '{new_status}'")

    consultation = _get_consultation(consultation_id)
    _require_party(consultation, actor, role)

    current = consultation.status
    if new_status != current and new_status not in Consultation.TRANSITIONS[current]:
        raise InvalidState(f"Cannot move consultation from '{current}' to '{new_status}'")

    consultation.status = new_status
    if diagnosis:
        consultation.diagnosis = diagnosis
    if notes:
        consultation.notes = notes

    now = timezone.now()
    if new_status == Consultation.IN_PROGRESS and consultation.started_at is None:
        consultation.started_at = now
    elif new_status == Consultation.COMPLETED and consultation.ended_at is None:
        consultation.ended_at = now
        if consultation.started_at:
            elapsed = (consultation.ended_at - consultation.started_at).total_seconds()
            minutes = Decimal(elapsed / 60).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
            consultation.duration = max(0, int(minutes))

    consultation.save()
    logger.info("Consultation %s: %s → %s by %s %s", consultation.pk, current, new_status, role, actor.pk)

    if new_status != current:
        _notify_status(consultation)
    return consultation


def cancel_consultation(consultation_id, actor, role):
    consultation = _get_consultation(consultation_id)
    _require_party(consultation, actor, role)

    if consultation.status != Consultation.SCHEDULED:
        raise InvalidState("Can only cancel scheduled consultations")

    consultation.status = Consultation.CANCELLED
    consultation.save(update_fields=["status", "updated_at"])
    logger.info("Consultation %s cancelled by %s %s", consultation.pk, role, actor.pk)
    _notify_status(consultation)
    return consultation


def rate_consultation(consultation_id, patient, rating, review=None):
    consultation = _get_consultation(consultation_id)

    if consultation.patient_id != patient.pk:
        raise Forbidden("Only the patient can rate this consultation")
    if consultation.status != Consultation.COMPLETED:
        raise InvalidState("Can only rate completed consultations")
    if isinstance(rating, bool) or not isinstance(rating, int) or not 1 <= rating <= 5:
        raise ValidationError("Rating must be an integer between 1 and 5")

    consultation.rating = rating
    if review:
        consultation.review = review
    consultation.save(update_fields=["rating", "review", "updated_at"])

    refresh_doctor_rating(consultation.doctor_id)
    return consultation


def refresh_doctor_rating(doctor_id):
    """
    Recompute the doctor's aggregate from every completed + rated consultation.
    Full rescan with no lock: concurrent raters race and the last write wins.
    """
    stats = Consultation.objects.filter(
        doctor_id=doctor_id,
        status=Consultation.COMPLETED,
        rating__isnull=False,
    ).aggregate(average=Avg("rating"), count=Count("id"))

    if not stats["count"]:
        return None

    average = float(Decimal(str(stats["average"])).quantize(Decimal("0.1"), rounding=ROUND_HALF_UP))
    UserProfile.objects.filter(user_id=doctor_id).update(
        rating=average,
        total_consultations=stats["count"],
        updated_at=timezone.now(),
    )
    logger.info("Doctor %s rating → %s over %s consultations", doctor_id, average, stats["count"])
    return average


# =============================================================================
# MESSAGING
# =============================================================================

def get_conversation(consultation_id, user):
    consultation = _get_consultation(consultation_id)
    if not consultation.is_participant(user.pk):
        raise Forbidden("Not authorized for messages in this consultation")
    return consultation


def send_message(consultation_id, sender, content, message_type="text", file_url=""):
    """Persist first, then fan out to the whole room (the sender's connections included)."""
    consultation = get_conversation(consultation_id, sender)

    if not isinstance(content, str) or not content.strip():
        raise ValidationError("Message content is required")
    if not isinstance(message_type, str) or message_type not in MESSAGE_TYPES:
        raise ValidationError(f"Unknown message type '{message_type}'")

    message = Message.objects.create(
        consultation=consultation,
        sender=sender,
        content=content,
        message_type=message_type,
        file_url=file_url or "",
    )

    relay.broadcast_from_sync(consultation.room_name, {
        "type"          : "receiveMessage",
        "consultationId": consultation.pk,
        "message"       : dict(MessageSerializer(message).data),
    })
    return message


def message_history(consultation_id, reader):
    consultation = get_conversation(consultation_id, reader)
    return list(
        Message.objects.filter(consultation=consultation)
        .select_related("sender")
        .order_by("timestamp", "id")
    )


def mark_read(consultation_id, reader):
    consultation = get_conversation(consultation_id, reader)
    return (
        Message.objects.filter(consultation=consultation, is_read=False)
        .exclude(sender=reader)
        .update(is_read=True)
    )


# =============================================================================
# PRESCRIPTIONS
# =============================================================================

def _get_prescription(prescription_id):
    prescription = (
        Prescription.objects.select_related("doctor", "patient")
        .filter(pk=prescription_id)
        .first()
    )
    if prescription is None:
        raise NotFound("Prescription not found")
    return prescription


def _require_issuer(prescription, doctor, role, action):
    if role != UserProfile.ROLE_DOCTOR:
        raise Forbidden(f"Only doctors can {action} prescriptions")
    if prescription.doctor_id != doctor.pk:
        raise Forbidden(f"Not authorized to {action} this prescription")


def create_prescription(doctor, role, patient_id, consultation_id=None, **fields):
    if role != UserProfile.ROLE_DOCTOR:
        raise Forbidden("Only doctors can create prescriptions")

    patient = User.objects.filter(pk=patient_id, profile__role=UserProfile.ROLE_PATIENT).first()
    if patient is None:
        raise NotFound("Patient not found")

    consultation = None
    if consultation_id:
        consultation = Consultation.objects.filter(pk=consultation_id).first()
        if consultation is None or consultation.doctor_id != doctor.pk:
            raise NotFound("Consultation not found or unauthorized")

    data = {key: value for key, value in fields.items() if key in PRESCRIPTION_FIELDS and value is not None}
    with transaction.atomic():
        prescription = Prescription.objects.create(
            doctor=doctor, patient=patient, consultation=consultation, **data
        )
        if consultation is not None:
            Consultation.objects.filter(pk=consultation.pk).update(prescription=prescription)

    logger.info("Prescription %s issued by doctor %s to patient %s", prescription.pk, doctor.pk, patient.pk)
    return prescription


def patient_prescriptions(patient, is_active=None, page=1, limit=10):
    queryset = Prescription.objects.filter(patient=patient)
    if is_active is not None:
        queryset = queryset.filter(is_active=is_active)
    queryset = queryset.select_related("doctor", "patient").order_by("-created_at", "-id")

    prescriptions, page_info = _paginate(queryset, page, limit)
    return {"prescriptions": prescriptions, **page_info}


def doctor_prescriptions(doctor, patient_id=None, page=1, limit=10):
    queryset = Prescription.objects.filter(doctor=doctor)
    if patient_id:
        queryset = queryset.filter(patient_id=patient_id)
    queryset = queryset.select_related("doctor", "patient").order_by("-created_at", "-id")

    prescriptions, page_info = _paginate(queryset, page, limit)
    return {"prescriptions": prescriptions, **page_info}


def get_prescription(prescription_id, actor, role):
    prescription = _get_prescription(prescription_id)
    if role == UserProfile.ROLE_DOCTOR and prescription.doctor_id == actor.pk:
        return prescription
    if role == UserProfile.ROLE_PATIENT and prescription.patient_id == actor.pk:
        return prescription
    raise Forbidden("Not authorized")


def update_prescription(prescription_id, doctor, role, **fields):
    prescription = _get_prescription(prescription_id)
    _require_issuer(prescription, doctor, role, "update")

    for key, value in fields.items():
        if key in PRESCRIPTION_FIELDS and value:
            setattr(prescription, key, value)
    prescription.save()
    return prescription


def deactivate_prescription(prescription_id, doctor, role):
    prescription = _get_prescription(prescription_id)
    _require_issuer(prescription, doctor, role, "deactivate")

    prescription.is_active = False
    prescription.save(update_fields=["is_active", "updated_at"])
    logger.info("Prescription %s deactivated", prescription.pk)
    return prescription
