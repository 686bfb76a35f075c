"""
Backend application package for the Creator Platform.

This package exposes the FastAPI app along with database models,
services, and routers for authentication, profiles, uploads and
creator onboarding with the Online Payment Platform.
"""

from .main import create_app

__all__ = ["create_app"]
