from datetime import timedelta
from decimal import Decimal

import pytest
from django.utils import timezone

from consultation import services
from consultation.exceptions import (
    DoctorUnavailable,
    Forbidden,
    InvalidState,
    NotFound,
    SchedulingConflict,
    ValidationError,
)
from consultation.models import Consultation, UserProfile

PATIENT = UserProfile.ROLE_PATIENT
DOCTOR  = UserProfile.ROLE_DOCTOR

pytestmark = pytest.mark.django_db


# ── Booking ──────────────────────────────────────────────────────────────────

def test_booking_snapshots_fee_and_starts_scheduled(make_account, patient, slot):
    doctor = make_account(DOCTOR, available=True, consultation_fee=2000)

    consultation = services.create_consultation(
        patient, PATIENT, doctor.pk, slot, type="video", symptoms=["fever", "cough"],
    )

    assert consultation.status == Consultation.SCHEDULED
    assert consultation.amount == Decimal("2000")
    assert consultation.symptoms == ["fever", "cough"]
    assert consultation.room_name == f"consultation_{consultation.pk}"

    # Later fee changes do not touch existing bookings
    UserProfile.objects.filter(user=doctor).update(consultation_fee=3000)
    consultation.refresh_from_db()
    assert consultation.amount == Decimal("2000")


def test_booking_unavailable_doctor_is_rejected(make_account, patient, slot):
    doctor = make_account(DOCTOR, available=False)

    with pytest.raises(DoctorUnavailable):
        services.create_consultation(patient, PATIENT, doctor.pk, slot)
    assert not Consultation.objects.exists()


def test_booking_unknown_doctor_is_not_found(patient, slot):
    with pytest.raises(NotFound):
        services.create_consultation(patient, PATIENT, 99999, slot)


def test_booking_patient_as_doctor_is_not_found(make_account, patient, slot):
    other_patient = make_account(PATIENT)
    with pytest.raises(NotFound):
        services.create_consultation(patient, PATIENT, other_patient.pk, slot)


def test_only_patients_can_book(doctor, make_account, slot):
    other_doctor = make_account(DOCTOR, available=True)
    with pytest.raises(Forbidden):
        services.create_consultation(other_doctor, DOCTOR, doctor.pk, slot)


def test_booking_rejects_unknown_type(doctor, patient, slot):
    with pytest.raises(ValidationError):
        services.create_consultation(patient, PATIENT, doctor.pk, slot, type="telepathy")


def test_overlapping_windows_conflict(doctor, patient, make_account, slot):
    services.create_consultation(patient, PATIENT, doctor.pk, slot)
    other = make_account(PATIENT)

    # 10:15 falls inside [10:00, 10:30)
    with pytest.raises(SchedulingConflict):
        services.create_consultation(other, PATIENT, doctor.pk, slot + timedelta(minutes=15))

    # 09:45 window [09:45, 10:15) also intersects
    with pytest.raises(SchedulingConflict):
        services.create_consultation(other, PATIENT, doctor.pk, slot - timedelta(minutes=15))

    # 11:00 is clear
    later = services.create_consultation(other, PATIENT, doctor.pk, slot + timedelta(hours=1))
    assert later.status == Consultation.SCHEDULED


def test_back_to_back_windows_do_not_conflict(doctor, patient, slot):
    services.create_consultation(patient, PATIENT, doctor.pk, slot)
    follow_on = services.create_consultation(patient, PATIENT, doctor.pk, slot + timedelta(minutes=30))
    assert follow_on.pk is not None


def test_cancelled_booking_frees_the_slot(doctor, patient, make_account, slot):
    first = services.create_consultation(patient, PATIENT, doctor.pk, slot)
    services.cancel_consultation(first.pk, patient, PATIENT)

    other = make_account(PATIENT)
    rebooked = services.create_consultation(other, PATIENT, doctor.pk, slot)
    assert rebooked.pk != first.pk


def test_naive_datetimes_are_made_aware(doctor, patient, slot):
    naive = slot.replace(tzinfo=None)
    consultation = services.create_consultation(patient, PATIENT, doctor.pk, naive)
    assert consultation.scheduled_at.tzinfo is not None


# ── Lookup & listing ─────────────────────────────────────────────────────────

def test_get_consultation_requires_matching_role_side(consultation, doctor, patient, make_account):
    assert services.get_consultation(consultation.pk, patient, PATIENT).pk == consultation.pk
    assert services.get_consultation(consultation.pk, doctor, DOCTOR).pk == consultation.pk

    # The doctor cannot read it while claiming to be the patient
    with pytest.raises(Forbidden):
        services.get_consultation(consultation.pk, doctor, PATIENT)

    stranger = make_account(PATIENT)
    with pytest.raises(Forbidden):
        services.get_consultation(consultation.pk, stranger, PATIENT)

    with pytest.raises(NotFound):
        services.get_consultation(99999, patient, PATIENT)


def test_list_is_role_scoped_newest_first_and_paginated(doctor, patient, make_account, slot):
    booked = [
        services.create_consultation(patient, PATIENT, doctor.pk, slot + timedelta(hours=h))
        for h in range(3)
    ]
    other = make_account(PATIENT)
    services.create_consultation(other, PATIENT, doctor.pk, slot + timedelta(hours=5))

    page_one = services.list_consultations(patient, PATIENT, page=1, limit=2)
    assert [c.pk for c in page_one["consultations"]] == [booked[2].pk, booked[1].pk]
    assert page_one["total"] == 3
    assert page_one["total_pages"] == 2
    assert page_one["current_page"] == 1

    page_two = services.list_consultations(patient, PATIENT, page=2, limit=2)
    assert [c.pk for c in page_two["consultations"]] == [booked[0].pk]

    assert services.list_consultations(doctor, DOCTOR)["total"] == 4


def test_list_filters_by_status(doctor, patient, slot):
    first  = services.create_consultation(patient, PATIENT, doctor.pk, slot)
    services.create_consultation(patient, PATIENT, doctor.pk, slot + timedelta(hours=1))
    services.cancel_consultation(first.pk, patient, PATIENT)

    result = services.list_consultations(patient, PATIENT, status=Consultation.CANCELLED)
    assert [c.pk for c in result["consultations"]] == [first.pk]


def test_list_past_last_page_is_empty(consultation, patient):
    result = services.list_consultations(patient, PATIENT, page=5, limit=10)
    assert result["consultations"] == []
    assert result["total"] == 1


def test_list_for_unknown_role_is_forbidden(patient):
    with pytest.raises(Forbidden):
        services.list_consultations(patient, None)


# ── State machine ────────────────────────────────────────────────────────────

def test_full_lifecycle_stamps_times_and_duration(consultation, doctor):
    started = services.transition_consultation(consultation.pk, doctor, DOCTOR, Consultation.IN_PROGRESS)
    assert started.status == Consultation.IN_PROGRESS
    assert started.started_at is not None

    done = services.transition_consultation(
        consultation.pk, doctor, DOCTOR, Consultation.COMPLETED,
        diagnosis="Viral fever", notes="Rest and fluids",
    )
    assert done.status == Consultation.COMPLETED
    assert done.ended_at >= done.started_at
    assert done.duration == 0
    assert done.diagnosis == "Viral fever"
    assert done.notes == "Rest and fluids"


def test_duration_rounds_to_nearest_minute(consultation, doctor):
    services.transition_consultation(consultation.pk, doctor, DOCTOR, Consultation.IN_PROGRESS)
    Consultation.objects.filter(pk=consultation.pk).update(
        started_at=timezone.now() - timedelta(minutes=12, seconds=40),
    )
    done = services.transition_consultation(consultation.pk, doctor, DOCTOR, Consultation.COMPLETED)
    assert done.duration == 13


def test_duration_half_minute_rounds_up(consultation, doctor, monkeypatch):
    services.transition_consultation(consultation.pk, doctor, DOCTOR, Consultation.IN_PROGRESS)
    ended = timezone.now()
    Consultation.objects.filter(pk=consultation.pk).update(
        started_at=ended - timedelta(minutes=2, seconds=30),
    )

    monkeypatch.setattr(timezone, "now", lambda: ended)
    done = services.transition_consultation(consultation.pk, doctor, DOCTOR, Consultation.COMPLETED)
    assert done.duration == 3


def test_reentering_in_progress_keeps_first_start(consultation, patient):
    first = services.transition_consultation(consultation.pk, patient, PATIENT, Consultation.IN_PROGRESS)
    stamp = first.started_at

    again = services.transition_consultation(consultation.pk, patient, PATIENT, Consultation.IN_PROGRESS)
    assert again.started_at == stamp


def test_illegal_transitions_are_invalid_state(consultation, doctor):
    with pytest.raises(InvalidState):
        services.transition_consultation(consultation.pk, doctor, DOCTOR, Consultation.COMPLETED)

    services.transition_consultation(consultation.pk, doctor, DOCTOR, Consultation.NO_SHOW)
    with pytest.raises(InvalidState):
        services.transition_consultation(consultation.pk, doctor, DOCTOR, Consultation.IN_PROGRESS)


def test_unknown_status_is_validation_error(consultation, doctor):
    with pytest.raises(ValidationError):
        services.transition_consultation(consultation.pk, doctor, DOCTOR, "paused")


def test_non_participant_cannot_transition(consultation, make_account):
    other_doctor = make_account(DOCTOR)
    with pytest.raises(Forbidden):
        services.transition_consultation(consultation.pk, other_doctor, DOCTOR, Consultation.IN_PROGRESS)

    consultation.refresh_from_db()
    assert consultation.status == Consultation.SCHEDULED


def test_cancel_only_from_scheduled(consultation, doctor, patient):
    services.transition_consultation(consultation.pk, doctor, DOCTOR, Consultation.IN_PROGRESS)
    with pytest.raises(InvalidState):
        services.cancel_consultation(consultation.pk, patient, PATIENT)


def test_doctor_can_cancel(consultation, doctor):
    cancelled = services.cancel_consultation(consultation.pk, doctor, DOCTOR)
    assert cancelled.status == Consultation.CANCELLED


# ── Ratings ──────────────────────────────────────────────────────────────────

def _complete(consultation, doctor):
    services.transition_consultation(consultation.pk, doctor, DOCTOR, Consultation.IN_PROGRESS)
    return services.transition_consultation(consultation.pk, doctor, DOCTOR, Consultation.COMPLETED)


def test_rating_updates_doctor_aggregate(doctor, patient, slot):
    first  = services.create_consultation(patient, PATIENT, doctor.pk, slot)
    second = services.create_consultation(patient, PATIENT, doctor.pk, slot + timedelta(hours=1))
    _complete(first, doctor)
    _complete(second, doctor)

    services.rate_consultation(first.pk, patient, 5, review="Very helpful")
    services.rate_consultation(second.pk, patient, 4)

    profile = UserProfile.objects.get(user=doctor)
    assert profile.rating == 4.5
    assert profile.total_consultations == 2


def test_rerating_replaces_previous_value(doctor, patient, consultation):
    _complete(consultation, doctor)
    services.rate_consultation(consultation.pk, patient, 2)
    services.rate_consultation(consultation.pk, patient, 5)

    profile = UserProfile.objects.get(user=doctor)
    assert profile.rating == 5.0
    assert profile.total_consultations == 1


def test_rating_average_rounds_half_up(doctor, patient, slot):
    booked = [
        services.create_consultation(patient, PATIENT, doctor.pk, slot + timedelta(hours=h))
        for h in range(3)
    ]
    for consultation, stars in zip(booked, (5, 5, 4)):
        _complete(consultation, doctor)
        services.rate_consultation(consultation.pk, patient, stars)

    # 14 / 3 = 4.666...
    assert UserProfile.objects.get(user=doctor).rating == 4.7


def test_rating_requires_completed_consultation(consultation, patient):
    with pytest.raises(InvalidState):
        services.rate_consultation(consultation.pk, patient, 5)


def test_only_the_patient_can_rate(consultation, doctor):
    _complete(consultation, doctor)
    with pytest.raises(Forbidden):
        services.rate_consultation(consultation.pk, doctor, 5)


@pytest.mark.parametrize("stars", [0, 6, True, "5"])
def test_rating_out_of_range_is_rejected(consultation, doctor, patient, stars):
    _complete(consultation, doctor)
    with pytest.raises(ValidationError):
        services.rate_consultation(consultation.pk, patient, stars)

    assert UserProfile.objects.get(user=doctor).total_consultations == 0


def test_refresh_rating_without_ratings_leaves_profile(doctor):
    assert services.refresh_doctor_rating(doctor.pk) is None
    assert UserProfile.objects.get(user=doctor).rating == 0
