"""
Authentication Schemas
Pydantic models for authentication requests and responses
"""

from pydantic import BaseModel


class Token(BaseModel):
    """JWT token response"""
    access_token: str
    refresh_token: str
    token_type: str = "bearer"

