from datetime import timedelta

import pytest

from consultation import services
from consultation.models import Consultation, Message, UserProfile

pytestmark = pytest.mark.django_db


# ── Auth ─────────────────────────────────────────────────────────────────────

def test_health_is_public(api_client):
    response = api_client.get("/api/health/")
    assert response.status_code == 200
    assert response.json()["status"] == "OK"


def test_protected_routes_need_a_token(api_client):
    response = api_client.get("/api/consultations/")
    assert response.status_code == 401
    assert response.json()["kind"] == "AuthenticationError"


def test_garbage_token_is_rejected(api_client):
    api_client.credentials(HTTP_AUTHORIZATION="Bearer not-a-jwt")
    response = api_client.get("/api/auth/me/")
    assert response.status_code == 401


def test_register_then_login(api_client):
    response = api_client.post("/api/auth/register/", {
        "name": "Meera Shah", "phone": "+919876543210", "password": "hunter22",
        "role": "doctor", "specialization": "Dermatology", "consultation_fee": "750.00",
    }, format="json")
    assert response.status_code == 201
    body = response.json()
    assert body["access"] and body["refresh"]
    assert body["user"]["name"] == "Meera Shah"
    assert body["user"]["profile"]["role"] == "doctor"
    assert "password" not in body["user"]

    response = api_client.post("/api/auth/login/", {
        "phone": "+919876543210", "password": "hunter22",
    }, format="json")
    assert response.status_code == 200
    body = response.json()
    assert body["role"] == "doctor"
    assert body["full_name"] == "Meera Shah"

    api_client.credentials(HTTP_AUTHORIZATION=f"Bearer {body['access']}")
    me = api_client.get("/api/auth/me/").json()
    assert me["profile"]["specialization"] == "Dermatology"


def test_register_duplicate_phone(api_client, patient):
    response = api_client.post("/api/auth/register/", {
        "name": "Copy Cat", "phone": patient.profile.phone, "password": "secret123",
    }, format="json")
    assert response.status_code == 400
    body = response.json()
    assert body["kind"] == "ValidationError"
    assert "phone" in body["details"]


def test_login_with_wrong_password(api_client, patient):
    response = api_client.post("/api/auth/login/", {
        "phone": patient.profile.phone, "password": "wrong-one",
    }, format="json")
    assert response.status_code == 401
    assert response.json() == {"kind": "AuthenticationError", "error": "Invalid credentials"}


def test_token_refresh(api_client, patient):
    from consultation.auth import tokens_for

    response = api_client.post("/api/auth/token/refresh/", {
        "refresh": tokens_for(patient)["refresh"],
    }, format="json")
    assert response.status_code == 200
    assert response.json()["access"]


def test_profile_update(client_for, patient):
    response = client_for(patient).put("/api/auth/profile/", {
        "name": "Ravi K Menon", "email": "ravi@example.com", "language": "Malayalam",
    }, format="json")
    assert response.status_code == 200
    body = response.json()
    assert body["first_name"] == "Ravi"
    assert body["last_name"] == "K Menon"
    assert body["email"] == "ravi@example.com"
    assert body["profile"]["language"] == "Malayalam"


# ── Doctor directory ─────────────────────────────────────────────────────────

def test_availability_toggle_and_directory(api_client, client_for, doctor, make_account):
    make_account(UserProfile.ROLE_DOCTOR, available=False)

    listed = api_client.get("/api/doctors/available/").json()
    assert [row["id"] for row in listed] == [doctor.pk]
    assert listed[0]["name"] == "Asha Rao"

    response = client_for(doctor).put("/api/doctor/availability/", {"available": False}, format="json")
    assert response.status_code == 200
    assert response.json() == {"available": False}
    assert api_client.get("/api/doctors/available/").json() == []


def test_patients_cannot_toggle_availability(client_for, patient):
    response = client_for(patient).put("/api/doctor/availability/", {"available": True}, format="json")
    assert response.status_code == 403
    assert response.json()["kind"] == "Forbidden"


# ── Consultations ────────────────────────────────────────────────────────────

def test_book_and_read_consultation(client_for, doctor, patient, slot):
    response = client_for(patient).post("/api/consultations/", {
        "doctor": doctor.pk, "scheduled_at": slot.isoformat(), "type": "video", "symptoms": ["rash"],
    }, format="json")
    assert response.status_code == 201
    created = response.json()
    assert created["status"] == "scheduled"
    assert created["doctor_name"] == "Asha Rao"
    assert created["room"] == f"consultation_{created['id']}"

    detail = client_for(doctor).get(f"/api/consultations/{created['id']}/")
    assert detail.status_code == 200
    assert detail.json()["patient_name"] == "Ravi Kumar"


def test_booking_conflict_is_409(client_for, doctor, patient, consultation, slot):
    response = client_for(patient).post("/api/consultations/", {
        "doctor": doctor.pk, "scheduled_at": (slot + timedelta(minutes=10)).isoformat(),
    }, format="json")
    assert response.status_code == 409
    assert response.json()["kind"] == "SchedulingConflict"


def test_booking_with_bad_type_is_400(client_for, doctor, patient, slot):
    response = client_for(patient).post("/api/consultations/", {
        "doctor": doctor.pk, "scheduled_at": slot.isoformat(), "type": "fax",
    }, format="json")
    assert response.status_code == 400
    assert response.json()["kind"] == "ValidationError"


def test_list_consultations_endpoint(client_for, patient, consultation):
    response = client_for(patient).get("/api/consultations/", {"page": 1, "limit": 5})
    assert response.status_code == 200
    body = response.json()
    assert body["total"] == 1
    assert body["total_pages"] == 1
    assert body["current_page"] == 1
    assert body["consultations"][0]["id"] == consultation.pk


def test_status_endpoint_enforces_state_machine(client_for, doctor, consultation):
    client = client_for(doctor)
    url = f"/api/consultations/{consultation.pk}/status/"

    response = client.put(url, {"status": "completed"}, format="json")
    assert response.status_code == 409
    assert response.json()["kind"] == "InvalidState"

    assert client.put(url, {"status": "in-progress"}, format="json").status_code == 200
    body = client.put(url, {"status": "completed", "diagnosis": "Eczema"}, format="json").json()
    assert body["status"] == "completed"
    assert body["diagnosis"] == "Eczema"
    assert body["duration"] == 0


def test_cancel_and_rate_endpoints(client_for, doctor, patient, consultation, slot):
    response = client_for(patient).put(f"/api/consultations/{consultation.pk}/cancel/")
    assert response.status_code == 200
    assert response.json()["consultation"]["status"] == "cancelled"

    response = client_for(patient).post(f"/api/consultations/{consultation.pk}/rate/", {"rating": 5}, format="json")
    assert response.status_code == 409

    rated = services.create_consultation(patient, "patient", doctor.pk, slot + timedelta(hours=2))
    for status in ("in-progress", "completed"):
        services.transition_consultation(rated.pk, doctor, "doctor", status)

    response = client_for(patient).post(f"/api/consultations/{rated.pk}/rate/", {"rating": 9}, format="json")
    assert response.status_code == 400

    response = client_for(patient).post(
        f"/api/consultations/{rated.pk}/rate/", {"rating": 4, "review": "Good"}, format="json",
    )
    assert response.status_code == 200
    assert response.json()["rating"] == 4
    assert UserProfile.objects.get(user=doctor).rating == 4.0


def test_missing_consultation_is_404(client_for, patient):
    response = client_for(patient).get("/api/consultations/424242/")
    assert response.status_code == 404
    assert response.json() == {"kind": "NotFound", "error": "Consultation not found"}


# ── Chat ─────────────────────────────────────────────────────────────────────

def test_send_history_and_mark_read(client_for, doctor, patient, consultation):
    patient_client = client_for(patient)
    doctor_client  = client_for(doctor)

    for text in ("Hello doctor", "I have a rash"):
        response = patient_client.post("/api/chat/", {"consultation": consultation.pk, "content": text}, format="json")
        assert response.status_code == 201
    doctor_client.post("/api/chat/", {"consultation": consultation.pk, "content": "Since when?"}, format="json")

    history = doctor_client.get(f"/api/chat/{consultation.pk}/").json()
    assert [m["content"] for m in history] == ["Hello doctor", "I have a rash", "Since when?"]
    assert history[0]["sender_name"] == "Ravi Kumar"

    # Doctor reads: only the two patient messages flip
    response = doctor_client.put(f"/api/chat/{consultation.pk}/read/")
    assert response.json()["updated"] == 2
    assert doctor_client.put(f"/api/chat/{consultation.pk}/read/").json()["updated"] == 0
    assert Message.objects.filter(sender=doctor, is_read=False).count() == 1


def test_non_participant_cannot_send_or_read(client_for, make_account, consultation):
    stranger = client_for(make_account(UserProfile.ROLE_PATIENT))

    response = stranger.post("/api/chat/", {"consultation": consultation.pk, "content": "hi"}, format="json")
    assert response.status_code == 403
    assert response.json()["kind"] == "Forbidden"
    assert not Message.objects.exists()

    assert stranger.get(f"/api/chat/{consultation.pk}/").status_code == 403


def test_empty_message_is_rejected(client_for, patient, consultation):
    response = client_for(patient).post(
        "/api/chat/", {"consultation": consultation.pk, "content": ""}, format="json",
    )
    assert response.status_code == 400


def test_chat_on_missing_consultation_is_404(client_for, patient):
    response = client_for(patient).post("/api/chat/", {"consultation": 777, "content": "hi"}, format="json")
    assert response.status_code == 404


def test_messages_survive_status_changes(client_for, doctor, patient, consultation):
    client_for(patient).post("/api/chat/", {"consultation": consultation.pk, "content": "hi"}, format="json")
    services.cancel_consultation(consultation.pk, patient, "patient")

    assert Consultation.objects.get(pk=consultation.pk).status == "cancelled"
    assert len(client_for(doctor).get(f"/api/chat/{consultation.pk}/").json()) == 1
