"""
User Schemas
Pydantic models for user-related responses
"""

from pydantic import BaseModel, EmailStr
from typing import List, Optional
from datetime import datetime

from src.models.user import UserRole


class EntityResponse(BaseModel):
    """Schema for entity response"""
    id: int
    code: str
    name: str

    class Config:
        from_attributes = True


class UserBase(BaseModel):
    """Base user schema with common fields"""
    email: EmailStr
    username: str
    full_name: str
    employee_id: str
    department: Optional[str] = None
    phone: Optional[str] = None


class UserResponse(UserBase):
    """Schema for user response"""
    id: int
    role: UserRole
    role_label: Optional[str] = None
    rank: Optional[int] = None
    is_active: bool
    entities: List[EntityResponse] = []
    created_at: datetime
    last_login: Optional[datetime] = None

    class Config:
        from_attributes = True
