"""OAuth authentication providers."""

from .base import AuthProvider
from .google import GoogleAuthProvider
from .microsoft import MicrosoftAuthProvider
from .notion import NotionAuthProvider

__all__ = [
    "AuthProvider",
    "GoogleAuthProvider",
    "MicrosoftAuthProvider",
    "NotionAuthProvider",
]
