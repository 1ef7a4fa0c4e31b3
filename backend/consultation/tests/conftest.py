from datetime import timedelta

import pytest
from channels.layers import channel_layers
from django.utils import timezone
from rest_framework.test import APIClient

from consultation import relay, services
from consultation.auth import tokens_for
from consultation.models import UserProfile


@pytest.fixture(autouse=True)
def fresh_relay():
    """Each test gets an empty room registry and a new in-memory channel layer."""
    relay.rooms.clear()
    channel_layers.backends.clear()
    yield
    relay.rooms.clear()
    channel_layers.backends.clear()


@pytest.fixture
def make_account(db):
    counter = {"n": 0}

    def _make(role=UserProfile.ROLE_PATIENT, name=None, **profile_fields):
        counter["n"] += 1
        user = services.register_account(
            name=name or f"{role.title()} {counter['n']}",
            phone=f"+9100000{counter['n']:05d}",
            password="secret123",
            role=role,
        )
        if profile_fields:
            UserProfile.objects.filter(user=user).update(**profile_fields)
            user.profile.refresh_from_db()
        return user

    return _make


@pytest.fixture
def doctor(make_account):
    return make_account(UserProfile.ROLE_DOCTOR, name="Asha Rao", available=True, consultation_fee=500)


@pytest.fixture
def patient(make_account):
    return make_account(UserProfile.ROLE_PATIENT, name="Ravi Kumar")


@pytest.fixture
def slot():
    """A future, minute-aligned booking time."""
    return (timezone.now() + timedelta(days=1)).replace(hour=10, minute=0, second=0, microsecond=0)


@pytest.fixture
def consultation(doctor, patient, slot):
    return services.create_consultation(patient, UserProfile.ROLE_PATIENT, doctor.pk, slot)


@pytest.fixture
def api_client():
    return APIClient()


@pytest.fixture
def client_for():
    def _client(user):
        client = APIClient()
        client.credentials(HTTP_AUTHORIZATION=f"Bearer {tokens_for(user)['access']}")
        return client
    return _client
