"""Service layer for the creator platform backend."""

from . import auth, creator, security, storage, users
from .mail import Mailer, get_mailer
from .opp import OppClient, get_opp_client
from .processing import processor

__all__ = [
    "Mailer",
    "OppClient",
    "auth",
    "creator",
    "get_mailer",
    "get_opp_client",
    "processor",
    "security",
    "storage",
    "users",
]
