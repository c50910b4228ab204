from typing import Optional

from sqlmodel import Field, SQLModel
from app.models.base import IDModel, TimestampModel
from app.models.enums import AuthProvider, UserRole, enum_column


class User(IDModel, TimestampModel, SQLModel, table=True):
    __tablename__ = 'users'

    email: str = Field(index=True, unique=True, max_length=320)
    hashed_password: Optional[str] = Field(default=None, max_length=255)
    first_name: str = Field(default='', max_length=100)
    last_name: str = Field(default='', max_length=100)
    is_active: bool = True
    role: UserRole = Field(default=UserRole.USER, sa_column=enum_column(UserRole, 'user_role'))
    provider: AuthProvider = Field(
        default=AuthProvider.LOCAL, sa_column=enum_column(AuthProvider, 'auth_provider')
    )
