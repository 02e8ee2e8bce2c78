"""
User profile service.
"""

from typing import List

from shared.errors import ConflictError
from shared.logging import get_logger

from ..persistence.base import Document, DocumentStore
from .models import Address, ProfileUpdateRequest, UserProfile


class UserService:
    """Profiles and addresses for authenticated users."""

    def __init__(self, users: DocumentStore):
        self.users = users
        self.logger = get_logger("storefront.users")

    async def get_profile(self, user: Document) -> UserProfile:
        return UserProfile.model_validate(user)

    async def update_profile(self, user: Document, request: ProfileUpdateRequest) -> UserProfile:
        changes = request.model_dump(exclude_none=True)
        email = changes.get("email")
        if email and email != user.get("email"):
            existing = await self.users.find_one({"email": email})
            if existing is not None and existing["id"] != user["id"]:
                raise ConflictError("User already exists", details={"email": email})

        user.update(changes)
        saved = await self.users.save(user)
        self.logger.info("Profile updated", user_id=user["id"], fields=sorted(changes))
        return UserProfile.model_validate(saved)

    async def add_address(self, user: Document, address: Address) -> List[dict]:
        addresses = user.setdefault("addresses", [])
        entry = address.model_dump()
        if entry["is_default"]:
            for existing in addresses:
                existing["is_default"] = False
        elif not addresses:
            entry["is_default"] = True
        addresses.append(entry)

        saved = await self.users.save(user)
        return saved["addresses"]

    async def list_users(self) -> List[UserProfile]:
        return [UserProfile.model_validate(user) for user in await self.users.find()]
