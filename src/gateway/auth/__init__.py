"""GitHub App authentication for the gateway.

- minter: signs short-lived app assertions with the app private key
- token_cache: exchanges assertions for installation tokens and caches them
"""

from .minter import CredentialMinter, load_signing_key
from .models import AppIdentity, InstallationToken, SignedAssertion
from .token_cache import InstallationTokenCache, TokenExchanger

__all__ = [
    "AppIdentity",
    "CredentialMinter",
    "InstallationToken",
    "InstallationTokenCache",
    "SignedAssertion",
    "TokenExchanger",
    "load_signing_key",
]
