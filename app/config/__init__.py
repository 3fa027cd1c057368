# =============================================================================
# Django Project Configuration Package
# =============================================================================
# This package contains the Django configuration: settings, URLs and the
# ASGI/WSGI application entry points.
# =============================================================================
