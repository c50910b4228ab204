from pydantic import BaseModel, EmailStr
from app.models.enums import AuthProvider, UserRole


class UserResponse(BaseModel):
    id: str
    email: EmailStr
    first_name: str
    last_name: str
    provider: AuthProvider
    role: UserRole
