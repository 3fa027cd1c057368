"""
DRF views for payments app.

This module provides API views for:
- On-demand payment status checks
- Checkout (payment attempt) creation

Related files:
    - services/: PaymentStatusPoller, PaymentCheckoutService
    - serializers.py: Request/response serializers
    - webhooks/views.py: Provider webhook endpoints
    - urls.py: URL routing

Endpoints:
    POST /api/v1/payments/status/ - Check and reconcile a registration's payment
    POST /api/v1/payments/checkout/ - Start a payment attempt

Security:
    - Both endpoints require authentication
    - The caller must be the member who owns the registration
"""

from __future__ import annotations

import logging

from drf_spectacular.utils import OpenApiResponse, extend_schema
from rest_framework import status
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from core.services import ServiceResult
from payments.serializers import (
    CheckoutSerializer,
    CreatePaymentSerializer,
    PaymentStatusRequestSerializer,
    PaymentStatusSerializer,
)
from payments.services import PaymentCheckoutService, PaymentStatusPoller

logger = logging.getLogger(__name__)


# Service error codes to HTTP status
ERROR_STATUS_CODES = {
    "INVALID_ARGUMENT": status.HTTP_400_BAD_REQUEST,
    "INVALID_REQUEST": status.HTTP_400_BAD_REQUEST,
    "PERMISSION_DENIED": status.HTTP_403_FORBIDDEN,
    "NOT_FOUND": status.HTTP_404_NOT_FOUND,
    "ALREADY_PAID": status.HTTP_409_CONFLICT,
    "PAYMENT_IN_PROGRESS": status.HTTP_409_CONFLICT,
    "FAILED_PRECONDITION": status.HTTP_412_PRECONDITION_FAILED,
    "INTERNAL": status.HTTP_500_INTERNAL_SERVER_ERROR,
    "PROVIDER_UNAVAILABLE": status.HTTP_503_SERVICE_UNAVAILABLE,
}


def error_response(result: ServiceResult) -> Response:
    """Render a failed ServiceResult with the status matching its error code."""
    return Response(
        result.to_response(),
        status=ERROR_STATUS_CODES.get(
            result.error_code, status.HTTP_500_INTERNAL_SERVER_ERROR
        ),
    )


def invalid_argument_response(errors: dict) -> Response:
    return error_response(
        ServiceResult.failure(
            "Invalid request data",
            error_code="INVALID_ARGUMENT",
            errors=errors,
        )
    )


class PaymentStatusView(APIView):
    """
    Check the payment status of the caller's registration.

    POST /api/v1/payments/status/

    The provider is queried once (short timeout) unless the registration
    is already paid, and its answer is reconciled before returning.
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="check_payment_status",
        summary="Check payment status",
        request=PaymentStatusRequestSerializer,
        responses={
            200: PaymentStatusSerializer,
            400: OpenApiResponse(description="Missing or ambiguous registration ids"),
            403: OpenApiResponse(description="Registration belongs to another member"),
            404: OpenApiResponse(description="Registration or provider payment not found"),
            412: OpenApiResponse(description="Registration has no payment attempt"),
            503: OpenApiResponse(description="Payment provider unavailable"),
        },
        tags=["Payments"],
    )
    def post(self, request):
        """Check status."""
        serializer = PaymentStatusRequestSerializer(data=request.data)
        if not serializer.is_valid():
            return invalid_argument_response(serializer.errors)

        data = serializer.validated_data
        result = PaymentStatusPoller.check_status(
            user=request.user,
            club_id=data["club_id"],
            participant_id=data["participant_id"],
            operation_id=data.get("operation_id") or None,
        )
        if not result.success:
            return error_response(result)

        return Response(PaymentStatusSerializer(result.data).data)


class CreatePaymentView(APIView):
    """
    Start a payment attempt for the caller's registration.

    POST /api/v1/payments/checkout/

    Returns the provider checkout URL the app should open.
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="create_payment",
        summary="Create payment",
        request=CreatePaymentSerializer,
        responses={
            201: CheckoutSerializer,
            400: OpenApiResponse(description="Invalid payment request"),
            403: OpenApiResponse(description="Registration belongs to another member"),
            404: OpenApiResponse(description="Registration not found"),
            409: OpenApiResponse(description="Already paid or payment in progress"),
            412: OpenApiResponse(description="Provider not configured"),
            503: OpenApiResponse(description="Payment provider unavailable"),
        },
        tags=["Payments"],
    )
    def post(self, request):
        """Create payment."""
        serializer = CreatePaymentSerializer(data=request.data)
        if not serializer.is_valid():
            return invalid_argument_response(serializer.errors)

        data = serializer.validated_data
        result = PaymentCheckoutService.create_payment(
            user=request.user,
            club_id=data["club_id"],
            operation_id=data["operation_id"],
            participant_id=data["participant_id"],
            provider=data["provider"],
            amount=data["amount"],
            description=data["description"],
            method=data.get("method"),
            locale=data.get("locale"),
            currency=data["currency"],
        )
        if not result.success:
            return error_response(result)

        return Response(
            CheckoutSerializer(result.data).data,
            status=status.HTTP_201_CREATED,
        )
