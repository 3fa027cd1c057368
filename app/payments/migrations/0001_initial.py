import uuid

import django.core.serializers.json
import django.db.models.deletion
import django_fsm
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Registration",
            fields=[
                (
                    "id",
                    models.UUIDField(
                        default=uuid.uuid4,
                        editable=False,
                        help_text="Unique identifier for this record",
                        primary_key=True,
                        serialize=False,
                    ),
                ),
                (
                    "created_at",
                    models.DateTimeField(
                        auto_now_add=True,
                        db_index=True,
                        help_text="Timestamp when this record was created",
                    ),
                ),
                (
                    "updated_at",
                    models.DateTimeField(
                        auto_now=True,
                        help_text="Timestamp when this record was last modified",
                    ),
                ),
                ("club_id", models.CharField(db_index=True, max_length=128)),
                ("operation_id", models.CharField(max_length=128)),
                ("participant_id", models.CharField(max_length=128)),
                (
                    "provider",
                    models.CharField(
                        choices=[
                            ("none", "None"),
                            ("mollie", "Mollie"),
                            ("ponto", "Ponto"),
                            ("noda", "Noda"),
                        ],
                        default="none",
                        help_text="Payment processor of the current attempt",
                        max_length=16,
                    ),
                ),
                (
                    "provider_payment_id",
                    models.CharField(
                        blank=True,
                        help_text="Provider payment id (tr_xxx, payment request uuid, ...)",
                        max_length=255,
                        null=True,
                    ),
                ),
                (
                    "internal_payment_id",
                    models.CharField(
                        blank=True,
                        help_text="Local correlation id embedded in provider metadata",
                        max_length=64,
                        null=True,
                        unique=True,
                    ),
                ),
                (
                    "payment_initiated_at",
                    models.DateTimeField(
                        blank=True,
                        help_text="When the current attempt was started",
                        null=True,
                    ),
                ),
                (
                    "amount",
                    models.DecimalField(
                        blank=True,
                        decimal_places=2,
                        help_text="Amount requested from the provider",
                        max_digits=10,
                        null=True,
                    ),
                ),
                (
                    "currency",
                    models.CharField(
                        default="EUR",
                        help_text="ISO 4217 currency code",
                        max_length=3,
                    ),
                ),
                (
                    "payment_status",
                    django_fsm.FSMField(
                        choices=[
                            ("none", "No payment"),
                            ("open", "Open"),
                            ("pending", "Pending"),
                            ("paid", "Paid"),
                            ("failed", "Failed"),
                            ("canceled", "Canceled"),
                            ("expired", "Expired"),
                        ],
                        db_index=True,
                        default="none",
                        help_text="Current payment status (managed by FSM)",
                        max_length=50,
                    ),
                ),
                ("paid", models.BooleanField(default=False)),
                ("paid_at", models.DateTimeField(blank=True, null=True)),
                (
                    "payment_method",
                    models.CharField(blank=True, max_length=64, null=True),
                ),
                (
                    "version",
                    models.PositiveIntegerField(
                        default=1,
                        help_text="Incremented on each save",
                    ),
                ),
                (
                    "member",
                    models.ForeignKey(
                        help_text="Member who owns this registration",
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="registrations",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "verbose_name": "Registration",
                "verbose_name_plural": "Registrations",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(
                        fields=["club_id", "participant_id"],
                        name="payments_re_club_id_4b8f2d_idx",
                    ),
                ],
                "constraints": [
                    models.UniqueConstraint(
                        fields=("club_id", "operation_id", "participant_id"),
                        name="registration_unique_participant",
                    ),
                    models.UniqueConstraint(
                        condition=models.Q(("provider_payment_id__isnull", False)),
                        fields=("provider", "provider_payment_id"),
                        name="registration_unique_provider_payment",
                    ),
                    models.CheckConstraint(
                        condition=models.Q(
                            models.Q(
                                ("paid", False),
                                models.Q(("payment_status", "paid"), _negated=True),
                            ),
                            models.Q(
                                ("paid", True),
                                ("payment_status", "paid"),
                                ("paid_at__isnull", False),
                            ),
                            _connector="OR",
                        ),
                        name="registration_paid_consistent",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="PaymentAuditEntry",
            fields=[
                (
                    "id",
                    models.UUIDField(
                        default=uuid.uuid4,
                        editable=False,
                        help_text="Unique identifier for this record",
                        primary_key=True,
                        serialize=False,
                    ),
                ),
                (
                    "created_at",
                    models.DateTimeField(
                        auto_now_add=True,
                        db_index=True,
                        help_text="Timestamp when this record was created",
                    ),
                ),
                (
                    "updated_at",
                    models.DateTimeField(
                        auto_now=True,
                        help_text="Timestamp when this record was last modified",
                    ),
                ),
                (
                    "provider",
                    models.CharField(
                        choices=[
                            ("none", "None"),
                            ("mollie", "Mollie"),
                            ("ponto", "Ponto"),
                            ("noda", "Noda"),
                        ],
                        max_length=16,
                    ),
                ),
                (
                    "provider_payment_id",
                    models.CharField(blank=True, default="", max_length=255),
                ),
                (
                    "channel",
                    models.CharField(
                        choices=[("webhook", "Webhook"), ("poll", "Status poll")],
                        max_length=16,
                    ),
                ),
                (
                    "incoming_status",
                    models.CharField(
                        blank=True,
                        choices=[
                            ("none", "No payment"),
                            ("open", "Open"),
                            ("pending", "Pending"),
                            ("paid", "Paid"),
                            ("failed", "Failed"),
                            ("canceled", "Canceled"),
                            ("expired", "Expired"),
                        ],
                        default="",
                        max_length=16,
                    ),
                ),
                (
                    "previous_status",
                    models.CharField(
                        blank=True,
                        choices=[
                            ("none", "No payment"),
                            ("open", "Open"),
                            ("pending", "Pending"),
                            ("paid", "Paid"),
                            ("failed", "Failed"),
                            ("canceled", "Canceled"),
                            ("expired", "Expired"),
                        ],
                        default="",
                        max_length=16,
                    ),
                ),
                (
                    "resulting_status",
                    models.CharField(
                        blank=True,
                        choices=[
                            ("none", "No payment"),
                            ("open", "Open"),
                            ("pending", "Pending"),
                            ("paid", "Paid"),
                            ("failed", "Failed"),
                            ("canceled", "Canceled"),
                            ("expired", "Expired"),
                        ],
                        default="",
                        max_length=16,
                    ),
                ),
                (
                    "outcome",
                    models.CharField(
                        choices=[
                            ("applied", "Applied"),
                            ("duplicate", "Duplicate"),
                            ("stale", "Stale"),
                            ("superseded", "Superseded attempt"),
                            ("no_payment", "No payment"),
                            ("registration_not_found", "Registration not found"),
                            ("provider_error", "Provider error"),
                            ("store_error", "Store error"),
                        ],
                        db_index=True,
                        max_length=32,
                    ),
                ),
                ("amount_mismatch", models.BooleanField(default=False)),
                ("message", models.TextField(blank=True, default="")),
                (
                    "raw_payload",
                    models.JSONField(
                        blank=True,
                        default=dict,
                        encoder=django.core.serializers.json.DjangoJSONEncoder,
                        help_text="Provider response the decision was based on",
                    ),
                ),
                (
                    "registration",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="audit_entries",
                        to="payments.registration",
                    ),
                ),
            ],
            options={
                "verbose_name": "Payment audit entry",
                "verbose_name_plural": "Payment audit entries",
                "ordering": ["created_at"],
                "indexes": [
                    models.Index(
                        fields=["provider", "provider_payment_id"],
                        name="payments_pa_provide_7c1e9a_idx",
                    ),
                    models.Index(
                        fields=["registration", "created_at"],
                        name="payments_pa_registr_2d6b0f_idx",
                    ),
                ],
            },
        ),
    ]
