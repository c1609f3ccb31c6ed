"""
Pydantic schemas for API request/response models.

These schemas define the structure of API data for serialization and validation.
"""

from .auth import AuthRequest, AuthResponse, ErrorResponse
from .chat import ChatRequest, ChatResponse, ChatTurn

__all__ = [
    "AuthRequest", "AuthResponse", "ErrorResponse",
    "ChatRequest", "ChatResponse", "ChatTurn",
]
