"""
Bearer-token authentication for the Storefront API.
"""

from .dependencies import AuthGuard
from .tokens import TokenValidator, create_access_token

__all__ = ["AuthGuard", "TokenValidator", "create_access_token"]
