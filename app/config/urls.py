"""
URL configuration for the club payments service.

URL Structure:
    /                              - ReDoc API documentation
    /schema/                       - OpenAPI schema (YAML)
    /admin/                        - Django admin interface
    /api/v1/auth/token/            - Obtain JWT pair (email app login)
    /api/v1/auth/token/refresh/    - Refresh access token
    /api/v1/payments/              - Payment endpoints
        checkout/                  - Start a payment attempt (POST)
        status/                    - Check payment status (POST)
        webhooks/mollie/           - Mollie webhook endpoint (POST)
        webhooks/ponto/            - Ponto webhook endpoint (POST)
        webhooks/noda/             - Noda webhook endpoint (POST)

For more information, see:
https://docs.djangoproject.com/en/5.2/topics/http/urls/
"""

from django.contrib import admin
from django.urls import include, path
from drf_spectacular.views import SpectacularAPIView, SpectacularRedocView
from rest_framework_simplejwt.views import TokenObtainPairView, TokenRefreshView

api_v1_patterns = [
    # Authentication
    path("auth/token/", TokenObtainPairView.as_view(), name="token_obtain_pair"),
    path("auth/token/refresh/", TokenRefreshView.as_view(), name="token_refresh"),
    # Payments
    path("payments/", include("payments.urls")),
]

urlpatterns = [
    # Documentation
    path("", SpectacularRedocView.as_view(url_name="schema"), name="redoc"),
    path("schema/", SpectacularAPIView.as_view(), name="schema"),
    # Admin
    path("admin/", admin.site.urls),
    # API v1
    path("api/v1/", include(api_v1_patterns)),
]

admin.site.site_header = "Club Payments Admin"
admin.site.site_title = "Club Payments"
admin.site.index_title = "Registrations and payment audit"
