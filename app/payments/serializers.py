"""
DRF serializers for payments app.

This module provides serializers for:
- Payment status check requests and responses
- Checkout requests and responses

Related files:
    - services/: PaymentStatusPoller, PaymentCheckoutService
    - views.py: Payment API views

Usage:
    serializer = PaymentStatusRequestSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
"""

from __future__ import annotations

from decimal import Decimal

from django.conf import settings
from rest_framework import serializers

from payments.adapters import MOLLIE_METHODS
from payments.state_machines import PaymentProvider, PaymentStatus


class PaymentStatusRequestSerializer(serializers.Serializer):
    """
    Identifies the registration whose payment status is checked.

    Fields:
        club_id: Club of the registration
        participant_id: Participant of the registration
        operation_id: Needed only when the participant has several registrations
    """

    club_id = serializers.CharField(max_length=128)
    participant_id = serializers.CharField(max_length=128)
    operation_id = serializers.CharField(max_length=128, required=False, allow_blank=True)


class PaymentStatusSerializer(serializers.Serializer):
    """Payment status snapshot returned to the app."""

    registration_id = serializers.UUIDField(read_only=True)
    provider = serializers.ChoiceField(choices=PaymentProvider.choices, read_only=True)
    provider_payment_id = serializers.CharField(read_only=True, allow_null=True)
    status = serializers.ChoiceField(choices=PaymentStatus.choices, read_only=True)
    paid = serializers.BooleanField(read_only=True)
    paid_at = serializers.DateTimeField(read_only=True, allow_null=True)
    method = serializers.CharField(read_only=True, allow_null=True)
    updated_at = serializers.DateTimeField(read_only=True)


class CreatePaymentSerializer(serializers.Serializer):
    """
    Checkout request.

    Fields:
        club_id, operation_id, participant_id: Registration to pay for
        provider: mollie, ponto or noda
        amount: Amount in major units, at most PAYMENT_MAX_AMOUNT
        description: Shown to the payer by the provider
        method: Mollie payment method (ignored for other providers)
        locale: Mollie checkout locale
    """

    PROVIDER_CHOICES = [
        PaymentProvider.MOLLIE,
        PaymentProvider.PONTO,
        PaymentProvider.NODA,
    ]

    club_id = serializers.CharField(max_length=128)
    operation_id = serializers.CharField(max_length=128)
    participant_id = serializers.CharField(max_length=128)
    provider = serializers.ChoiceField(choices=PROVIDER_CHOICES)
    amount = serializers.DecimalField(
        max_digits=10,
        decimal_places=2,
        min_value=Decimal("0.01"),
    )
    currency = serializers.CharField(max_length=3, default="EUR")
    description = serializers.CharField(max_length=255)
    method = serializers.ChoiceField(choices=MOLLIE_METHODS, required=False)
    locale = serializers.CharField(max_length=10, required=False)

    def validate_amount(self, value: Decimal) -> Decimal:
        if value > Decimal(settings.PAYMENT_MAX_AMOUNT):
            raise serializers.ValidationError(
                f"Amount cannot exceed {settings.PAYMENT_MAX_AMOUNT}"
            )
        return value

    def validate_currency(self, value: str) -> str:
        return value.upper()


class CheckoutSerializer(serializers.Serializer):
    """Created payment attempt returned to the app."""

    registration_id = serializers.UUIDField(read_only=True)
    provider = serializers.CharField(read_only=True)
    provider_payment_id = serializers.CharField(read_only=True)
    internal_payment_id = serializers.CharField(read_only=True)
    checkout_url = serializers.URLField(read_only=True, allow_null=True)
    status = serializers.CharField(read_only=True)
    amount = serializers.DecimalField(max_digits=10, decimal_places=2, read_only=True)
    currency = serializers.CharField(read_only=True)
    expires_at = serializers.DateTimeField(read_only=True, allow_null=True)
