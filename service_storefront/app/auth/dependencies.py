"""
FastAPI dependencies guarding authenticated and admin-only routes.
"""

from typing import Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from shared.errors import AuthenticationError
from shared.logging import get_logger, set_user_context

from ..persistence.base import Document, DocumentStore
from .tokens import TokenValidator

bearer_scheme = HTTPBearer(auto_error=False)


class AuthGuard:
    """Resolves the bearer token to a user document.

    ``protect`` admits any known user; ``admin`` additionally requires
    ``is_admin``.
    """

    def __init__(self, validator: TokenValidator, users: DocumentStore):
        self.validator = validator
        self.users = users
        self.logger = get_logger("storefront.auth")

    async def protect(
        self,
        credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    ) -> Document:
        if credentials is None or not credentials.credentials:
            raise AuthenticationError("Not authorized, no token")

        user_id = self.validator.subject(credentials.credentials)
        user = await self.users.find_by_id(user_id)
        if user is None:
            raise AuthenticationError("Not authorized, user not found", details={"user_id": user_id})

        set_user_context(user_id)
        return user

    async def admin(
        self,
        credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    ) -> Document:
        user = await self.protect(credentials)
        if not user.get("is_admin"):
            self.logger.warning("Admin route refused", user_id=user["id"])
            raise AuthenticationError("Not authorized as an admin")
        return user
