"""
Tests for payments app.

This package contains test modules for:
- test_models.py: Registration and PaymentAuditEntry model tests
- test_state_transitions.py: Status ranking and FSM transitions
- test_serializers.py: Request validation
- test_views.py: API endpoint tests
- test_integration.py: Checkout, webhook and status check journeys

Adapter, service and webhook tests live next to their packages.

Usage:
    pytest payments/tests/
    pytest -m unit
"""
