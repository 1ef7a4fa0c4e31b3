# consultation/urls.py
#
# All URLs here are prefixed with /api/ (set in telehealth/urls.py).

from django.urls import path
from rest_framework_simplejwt.views import TokenRefreshView

from . import views

urlpatterns = [

    # ── Auth ──────────────────────────────────────────────────────────────────
    path("auth/register/",                                  views.RegisterView.as_view()),
    path("auth/login/",                                     views.LoginView.as_view()),
    path("auth/token/refresh/",                             TokenRefreshView.as_view()),
    path("auth/me/",                                        views.MeView.as_view()),
    path("auth/profile/",                                   views.ProfileView.as_view()),

    # ── Doctors ──────────────────────────────────────────────────────────────
    path("doctor/availability/",                            views.DoctorAvailabilityView.as_view()),
    path("doctors/available/",                              views.AvailableDoctorsView.as_view()),

    # ── Consultations ────────────────────────────────────────────────────────
    path("consultations/",                                  views.ConsultationListCreateView.as_view()),
    path("consultations/<int:consultation_id>/",            views.ConsultationDetailView.as_view()),
    path("consultations/<int:consultation_id>/status/",     views.ConsultationStatusView.as_view()),
    path("consultations/<int:consultation_id>/rate/",       views.ConsultationRateView.as_view()),
    path("consultations/<int:consultation_id>/cancel/",     views.ConsultationCancelView.as_view()),

    # ── Chat ─────────────────────────────────────────────────────────────────
    path("chat/",                                           views.MessageSendView.as_view()),
    path("chat/<int:consultation_id>/",                     views.MessageHistoryView.as_view()),
    path("chat/<int:consultation_id>/read/",                views.MessageReadView.as_view()),

    # ── Prescriptions ────────────────────────────────────────────────────────
    path("prescriptions/",                                  views.PrescriptionListCreateView.as_view()),
    path("prescriptions/<int:prescription_id>/",            views.PrescriptionDetailView.as_view()),
    path("prescriptions/<int:prescription_id>/deactivate/", views.PrescriptionDeactivateView.as_view()),

    path("health/",                                         views.HealthView.as_view()),
]
