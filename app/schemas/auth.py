from pydantic import BaseModel, EmailStr, Field
from datetime import datetime
from typing import Optional, Literal


RoleType = Literal["ADMIN", "AGENT"]


class UserBase(BaseModel):
    """Base user schema."""

    email: EmailStr
    name: str = Field(..., min_length=1, max_length=200)
    role: RoleType = "AGENT"
    branch_id: Optional[int] = None
    line_of_business_id: Optional[int] = None


class UserCreate(UserBase):
    """Schema for creating a user."""

    password: str = Field(..., min_length=8)


class UserUpdate(BaseModel):
    """Schema for updating a user (all fields optional)."""

    email: Optional[EmailStr] = None
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    role: Optional[RoleType] = None
    branch_id: Optional[int] = None
    line_of_business_id: Optional[int] = None
    is_active: Optional[bool] = None
    password: Optional[str] = Field(None, min_length=8)


class UserResponse(UserBase):
    """User as returned by the API (never includes the password hash)."""

    id: int
    is_active: bool
    created_at: Optional[datetime] = None
    branch_name: Optional[str] = None
    line_of_business_name: Optional[str] = None

    class Config:
        from_attributes = True

    @classmethod
    def from_db_user(cls, user) -> "UserResponse":
        """Create UserResponse from database User model."""
        return cls(
            id=user.id,
            email=user.email,
            name=user.name,
            role=user.role,
            branch_id=user.branch_id,
            line_of_business_id=user.line_of_business_id,
            is_active=user.is_active,
            created_at=user.created_at,
            branch_name=user.branch.name if user.branch else None,
            line_of_business_name=user.line_of_business.name if user.line_of_business else None,
        )


class AuthMeResponse(BaseModel):
    """Response wrapper for /auth/me."""

    user: UserResponse


class Token(BaseModel):
    """JWT token response."""

    access_token: str
    token_type: str = "bearer"


class TokenData(BaseModel):
    """Data encoded in JWT token."""

    user_id: Optional[int] = None
    email: Optional[str] = None


class LoginRequest(BaseModel):
    """Login request schema."""

    email: EmailStr
    password: str
