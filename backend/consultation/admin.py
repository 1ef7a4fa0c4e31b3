from django.contrib import admin
from django.contrib.auth.admin import UserAdmin as BaseUserAdmin
from django.contrib.auth.models import User

from .models import Consultation, Message, Prescription, UserProfile

# =============================================================================
# 1. ACCOUNTS
# =============================================================================

class UserProfileInline(admin.StackedInline):
    """Edit role, phone and doctor directory fields inside the User admin page."""
    model = UserProfile
    can_delete = False
    verbose_name_plural = 'Profile'
    fk_name = 'user'


class UserAdmin(BaseUserAdmin):
    inlines = (UserProfileInline,)
    list_display = ('username', 'first_name', 'last_name', 'get_role', 'is_staff')

    def get_role(self, obj):
        return obj.profile.role if hasattr(obj, 'profile') else '-'
    get_role.short_description = 'Role'


admin.site.unregister(User)
admin.site.register(User, UserAdmin)


@admin.register(UserProfile)
class UserProfileAdmin(admin.ModelAdmin):
    list_display = ('user', 'role', 'phone', 'specialization', 'available', 'rating', 'total_consultations')
    list_filter = ('role', 'available', 'specialization')
    search_fields = ('user__username', 'user__first_name', 'user__last_name', 'phone')
    readonly_fields = ('rating', 'total_consultations')


# =============================================================================
# 2. CONSULTATIONS & CHAT
# =============================================================================

class MessageInline(admin.TabularInline):
    model = Message
    extra = 0
    fields = ('sender', 'message_type', 'content', 'timestamp', 'is_read')
    readonly_fields = fields
    can_delete = False


@admin.register(Consultation)
class ConsultationAdmin(admin.ModelAdmin):
    list_display = ('id', 'scheduled_at', 'get_patient', 'get_doctor', 'type', 'status', 'rating')
    list_filter = ('status', 'type', 'payment_status', 'scheduled_at')
    search_fields = ('patient__username', 'patient__first_name', 'doctor__username', 'doctor__first_name')
    readonly_fields = ('started_at', 'ended_at', 'duration', 'created_at', 'updated_at')
    inlines = [MessageInline]

    fieldsets = (
        ('Participants', {
            'fields': ('patient', 'doctor')
        }),
        ('Schedule', {
            'fields': ('scheduled_at', 'status', 'type', 'started_at', 'ended_at', 'duration')
        }),
        ('Medical Context', {
            'fields': ('symptoms', 'diagnosis', 'notes', 'follow_up_date', 'prescription'),
            'classes': ('collapse',)
        }),
        ('Feedback & Billing', {
            'fields': ('rating', 'review', 'payment_status', 'amount')
        }),
        ('Metadata', {
            'fields': ('created_at', 'updated_at')
        }),
    )

    def get_patient(self, obj):
        return obj.patient.get_full_name() or obj.patient.username
    get_patient.short_description = 'Patient'

    def get_doctor(self, obj):
        return obj.doctor.get_full_name() or obj.doctor.username
    get_doctor.short_description = 'Doctor'

    # Only scheduled rows may be cancelled or marked as no-show
    @admin.action(description='Cancel selected scheduled consultations')
    def mark_cancelled(self, request, queryset):
        updated = queryset.filter(status=Consultation.SCHEDULED).update(status=Consultation.CANCELLED)
        self.message_user(request, f"{updated} consultation(s) cancelled.")

    @admin.action(description='Mark selected scheduled consultations as No-show')
    def mark_no_show(self, request, queryset):
        updated = queryset.filter(status=Consultation.SCHEDULED).update(status=Consultation.NO_SHOW)
        self.message_user(request, f"{updated} consultation(s) marked as No-show.")

    actions = [mark_cancelled, mark_no_show]


# =============================================================================
# 3. PRESCRIPTIONS
# =============================================================================

@admin.register(Prescription)
class PrescriptionAdmin(admin.ModelAdmin):
    list_display = ('id', 'doctor', 'patient', 'consultation', 'is_active', 'prescribed_at', 'expires_at')
    list_filter = ('is_active', 'prescribed_at')
    search_fields = ('doctor__username', 'patient__username', 'diagnosis')
