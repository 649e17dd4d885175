from .client import ROLES, ClinicalApiClient
from .config import ClientSettings, bootstrap_local_env
from .errors import AuthenticationRequired, ClinicalApiError, TransportError
from .sessions import ChatSession, SessionDirectory

__all__ = [
    "ROLES",
    "AuthenticationRequired",
    "ChatSession",
    "ClientSettings",
    "ClinicalApiClient",
    "ClinicalApiError",
    "SessionDirectory",
    "TransportError",
    "bootstrap_local_env",
]
