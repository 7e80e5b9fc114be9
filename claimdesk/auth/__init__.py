"""
Credential handling: the per-request store and cookie serialization.

The refresh coordinator lives in claimdesk.auth.refresh and is imported
from there directly.
"""

from .cookies import ResponseCookieWriter
from .credentials import CredentialPair, CredentialStore, parse_expiry

__all__ = [
    "CredentialPair",
    "CredentialStore",
    "ResponseCookieWriter",
    "parse_expiry",
]
