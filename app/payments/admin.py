"""
Payment admin configuration.

Registrations are visible but their payment fields are only ever changed
by the reconciler; audit entries are fully read-only.
"""

from django.contrib import admin

from payments.models import PaymentAuditEntry, Registration

__all__ = [
    "PaymentAuditEntryAdmin",
    "RegistrationAdmin",
]


class PaymentAuditEntryInline(admin.TabularInline):
    model = PaymentAuditEntry
    extra = 0
    can_delete = False
    fields = [
        "created_at",
        "channel",
        "incoming_status",
        "previous_status",
        "resulting_status",
        "outcome",
        "amount_mismatch",
    ]
    readonly_fields = fields
    ordering = ["-created_at"]

    def has_add_permission(self, request, obj=None):
        return False


@admin.register(Registration)
class RegistrationAdmin(admin.ModelAdmin):
    """
    Admin configuration for Registration.

    Provides visibility into payment state per participant.
    """

    list_display = [
        "id",
        "club_id",
        "operation_id",
        "participant_id",
        "provider",
        "payment_status",
        "paid",
        "paid_at",
        "updated_at",
    ]
    list_filter = ["provider", "payment_status", "paid"]
    search_fields = [
        "id",
        "club_id",
        "participant_id",
        "provider_payment_id",
        "internal_payment_id",
        "member__email",
    ]
    readonly_fields = [
        "id",
        "provider",
        "provider_payment_id",
        "internal_payment_id",
        "payment_initiated_at",
        "payment_status",
        "paid",
        "paid_at",
        "payment_method",
        "version",
        "created_at",
        "updated_at",
    ]
    raw_id_fields = ["member"]
    ordering = ["-created_at"]
    inlines = [PaymentAuditEntryInline]


@admin.register(PaymentAuditEntry)
class PaymentAuditEntryAdmin(admin.ModelAdmin):
    """
    Admin configuration for PaymentAuditEntry.

    Append-only: entries cannot be added, changed or deleted here.
    """

    list_display = [
        "id",
        "created_at",
        "provider",
        "provider_payment_id",
        "channel",
        "incoming_status",
        "resulting_status",
        "outcome",
        "amount_mismatch",
    ]
    list_filter = ["provider", "channel", "outcome", "amount_mismatch"]
    search_fields = ["id", "provider_payment_id", "registration__id"]
    ordering = ["-created_at"]
    date_hierarchy = "created_at"

    def get_readonly_fields(self, request, obj=None):
        return [field.name for field in self.model._meta.fields]

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False
