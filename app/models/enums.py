from enum import Enum
import sqlalchemy as sa
from sqlalchemy import Column


class UserRole(str, Enum):
    USER = 'user'
    ADMIN = 'admin'


class AuthProvider(str, Enum):
    LOCAL = 'local'
    GOOGLE = 'google'


class Capability(str, Enum):
    READ_OWN_PROFILE = 'profile:read'
    MANAGE_OWN_FINANCES = 'finances:write'
    MANAGE_USERS = 'users:manage'


ROLE_CAPABILITIES: dict[UserRole, frozenset[Capability]] = {
    UserRole.USER: frozenset({Capability.READ_OWN_PROFILE, Capability.MANAGE_OWN_FINANCES}),
    UserRole.ADMIN: frozenset(Capability),
}


def enum_column(enum_cls: type[Enum], name: str) -> Column:
    return Column(
        sa.Enum(
            enum_cls,
            values_callable=lambda enum: [item.value for item in enum],
            name=name,
        ),
        nullable=False,
    )
