import django.db.models.deletion
import django.utils.timezone
from django.conf import settings
from django.db import migrations, models

import consultation.models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="UserProfile",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("role", models.CharField(choices=[("patient", "Patient"), ("doctor", "Doctor"), ("admin", "Admin")], default="patient", max_length=10)),
                ("phone", models.CharField(max_length=20, unique=True)),
                ("language", models.CharField(blank=True, max_length=40)),
                ("specialization", models.CharField(blank=True, max_length=100)),
                ("available", models.BooleanField(default=False)),
                ("consultation_fee", models.DecimalField(decimal_places=2, default=0, max_digits=10)),
                ("rating", models.FloatField(default=0)),
                ("total_consultations", models.PositiveIntegerField(default=0)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("user", models.OneToOneField(on_delete=django.db.models.deletion.CASCADE, related_name="profile", to=settings.AUTH_USER_MODEL)),
            ],
            options={
                "indexes": [models.Index(fields=["role", "specialization", "available"], name="profile_role_spec_avail_idx")],
            },
        ),
        migrations.CreateModel(
            name="Consultation",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("status", models.CharField(choices=[("scheduled", "Scheduled"), ("in-progress", "In progress"), ("completed", "Completed"), ("cancelled", "Cancelled"), ("no-show", "No show")], default="scheduled", max_length=20)),
                ("type", models.CharField(choices=[("chat", "Chat"), ("video", "Video"), ("voice", "Voice"), ("in-person", "In person")], default="chat", max_length=20)),
                ("scheduled_at", models.DateTimeField()),
                ("started_at", models.DateTimeField(blank=True, null=True)),
                ("ended_at", models.DateTimeField(blank=True, null=True)),
                ("duration", models.PositiveIntegerField(blank=True, null=True)),
                ("symptoms", models.JSONField(blank=True, default=list)),
                ("diagnosis", models.TextField(blank=True)),
                ("notes", models.TextField(blank=True)),
                ("follow_up_date", models.DateTimeField(blank=True, null=True)),
                ("rating", models.PositiveSmallIntegerField(blank=True, null=True)),
                ("review", models.TextField(blank=True)),
                ("payment_status", models.CharField(choices=[("pending", "Pending"), ("paid", "Paid"), ("refunded", "Refunded")], default="pending", max_length=10)),
                ("amount", models.DecimalField(decimal_places=2, default=0, max_digits=10)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("doctor", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="doctor_consultations", to=settings.AUTH_USER_MODEL)),
                ("patient", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="patient_consultations", to=settings.AUTH_USER_MODEL)),
            ],
        ),
        migrations.CreateModel(
            name="Message",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("content", models.TextField()),
                ("message_type", models.CharField(choices=[("text", "Text"), ("image", "Image"), ("file", "File"), ("audio", "Audio"), ("video", "Video")], default="text", max_length=10)),
                ("file_url", models.URLField(blank=True, max_length=500)),
                ("timestamp", models.DateTimeField(default=django.utils.timezone.now)),
                ("is_read", models.BooleanField(default=False)),
                ("consultation", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="messages", to="consultation.consultation")),
                ("sender", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="sent_messages", to=settings.AUTH_USER_MODEL)),
            ],
            options={
                "ordering": ["timestamp", "id"],
                "indexes": [models.Index(fields=["consultation", "timestamp"], name="message_consult_ts_idx")],
            },
        ),
        migrations.CreateModel(
            name="Prescription",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("medications", models.JSONField(default=list)),
                ("instructions", models.TextField(blank=True)),
                ("diagnosis", models.TextField(blank=True)),
                ("symptoms", models.JSONField(blank=True, default=list)),
                ("follow_up_date", models.DateTimeField(blank=True, null=True)),
                ("warnings", models.JSONField(blank=True, default=list)),
                ("allergies", models.JSONField(blank=True, default=list)),
                ("lab_tests", models.JSONField(blank=True, default=list)),
                ("notes", models.TextField(blank=True)),
                ("is_active", models.BooleanField(default=True)),
                ("refill_count", models.PositiveIntegerField(default=0)),
                ("max_refills", models.PositiveIntegerField(default=0)),
                ("prescribed_at", models.DateTimeField(default=django.utils.timezone.now)),
                ("expires_at", models.DateTimeField(default=consultation.models.default_expiry)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("consultation", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="prescriptions", to="consultation.consultation")),
                ("doctor", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="issued_prescriptions", to=settings.AUTH_USER_MODEL)),
                ("patient", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="prescriptions", to=settings.AUTH_USER_MODEL)),
            ],
            options={
                "indexes": [
                    models.Index(fields=["patient", "is_active"], name="rx_patient_active_idx"),
                    models.Index(fields=["doctor", "created_at"], name="rx_doctor_created_idx"),
                ],
            },
        ),
        migrations.AddField(
            model_name="consultation",
            name="prescription",
            field=models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="+", to="consultation.prescription"),
        ),
        migrations.AddIndex(
            model_name="consultation",
            index=models.Index(fields=["patient", "status"], name="consult_patient_status_idx"),
        ),
        migrations.AddIndex(
            model_name="consultation",
            index=models.Index(fields=["doctor", "status"], name="consult_doctor_status_idx"),
        ),
        migrations.AddIndex(
            model_name="consultation",
            index=models.Index(fields=["scheduled_at"], name="consult_scheduled_at_idx"),
        ),
        migrations.AddIndex(
            model_name="consultation",
            index=models.Index(fields=["status", "scheduled_at"], name="consult_status_sched_idx"),
        ),
    ]
