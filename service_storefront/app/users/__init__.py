"""
User profiles behind ``/api/users``.
"""

from .service import UserService

__all__ = ["UserService"]
