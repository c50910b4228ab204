from datetime import datetime
from sqlmodel import Field, SQLModel
from app.models.base import IDModel, TimestampModel, utc_datetime_type


class RefreshToken(IDModel, TimestampModel, SQLModel, table=True):
    __tablename__ = 'refresh_tokens'

    token: str = Field(index=True, unique=True, max_length=128)
    user_id: str = Field(foreign_key='users.id', index=True)
    expires_at: datetime = Field(sa_type=utc_datetime_type(), index=True)
    revoked: bool = Field(default=False, index=True)
