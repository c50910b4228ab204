from typing import Optional
from pydantic import BaseModel, EmailStr, Field
from app.models.enums import AuthProvider, UserRole


class RegisterRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=8, max_length=128)
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1, max_length=128)


class RefreshRequest(BaseModel):
    refresh_token: str


class LogoutRequest(BaseModel):
    refresh_token: Optional[str] = None


class OAuthProfile(BaseModel):
    email: EmailStr
    given_name: str = ''
    family_name: str = ''


class AuthenticationResponse(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = 'bearer'
    email: EmailStr
    first_name: str
    last_name: str
    provider: AuthProvider
    role: UserRole
