"""User domain exports."""
from .entity import User
from .repository import UserRepository

__all__ = ["User", "UserRepository"]
