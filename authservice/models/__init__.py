"""Database models"""

from authservice.models.user import User
from authservice.models.security import Authentication

__all__ = ["User", "Authentication"]
