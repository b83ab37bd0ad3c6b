"""User and token schemas"""

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator
from pydantic.alias_generators import to_camel
from typing import Optional
from datetime import datetime

from authservice.core.security import BCRYPT_MAX_PASSWORD_BYTES


class CamelModel(BaseModel):
    """Wire models use camelCase keys but accept snake_case too"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class UserRegister(CamelModel):
    """User registration schema"""
    email: EmailStr
    username: str = Field(..., min_length=1, max_length=255)
    phone: str = Field(..., min_length=1, max_length=20)
    password: str = Field(..., min_length=1, max_length=BCRYPT_MAX_PASSWORD_BYTES)

    @field_validator('password')
    @classmethod
    def password_fits_bcrypt(cls, v):
        """bcrypt only considers the first 72 bytes"""
        if len(v.encode('utf-8')) > BCRYPT_MAX_PASSWORD_BYTES:
            raise ValueError(f'password cannot be longer than {BCRYPT_MAX_PASSWORD_BYTES} bytes')
        return v

    @field_validator('username', 'phone', 'password')
    @classmethod
    def not_blank(cls, v):
        if not v.strip():
            raise ValueError('cannot be blank')
        return v


class UserLogin(CamelModel):
    """User login schema"""
    username: str = Field(..., min_length=1, max_length=50)
    password: str = Field(..., min_length=1, max_length=255)

    @field_validator('username', 'password')
    @classmethod
    def not_blank(cls, v):
        if not v.strip():
            raise ValueError('cannot be blank')
        return v


class TokenRefresh(CamelModel):
    """Refresh token carried in a request body"""
    refresh_token: Optional[str] = None


class UserIdentity(BaseModel):
    """Identity record as held by the service layer and the user cache"""
    model_config = ConfigDict(from_attributes=True)

    id: Optional[int] = None
    username: str
    email: str
    phone: str
    password_hash: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class UserResponse(CamelModel):
    """Public user profile"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)

    id: int
    username: str
    email: str
    phone: str
    created_at: Optional[datetime] = None


class AuthResponse(CamelModel):
    """Token pair returned by login"""
    access_token: str
    refresh_token: str


class TokenResponse(CamelModel):
    """Access token returned by refresh"""
    access_token: str
