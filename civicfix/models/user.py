"""
User models. Users are reference data owned by the identity service;
the report lifecycle only reads them.
"""

from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional
from enum import Enum


class UserType(str, Enum):
    CITIZEN = "user"
    EMPLOYEE = "employee"


class User(BaseModel):
    """Stored user profile."""
    id: str = Field(..., description="Identity provider user ID")
    user_type: UserType = Field(..., description="user (citizen) or employee (staff)")
    full_name: Optional[str] = Field(None, description="Display name")
    email: Optional[str] = None
    phone: Optional[str] = None
    created_at: Optional[datetime] = None

    class Config:
        extra = "ignore"

    @property
    def is_staff(self) -> bool:
        return self.user_type == UserType.EMPLOYEE
