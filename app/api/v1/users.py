from fastapi import APIRouter, Depends

from app.api.deps import get_current_user, require_capability
from app.models.enums import Capability
from app.models.user import User
from app.schemas.user import UserResponse

router = APIRouter(prefix='/users', tags=['users'])


def to_user_response(user: User) -> UserResponse:
    return UserResponse(
        id=user.id,
        email=user.email,
        first_name=user.first_name,
        last_name=user.last_name,
        provider=user.provider,
        role=user.role,
    )


@router.get(
    '/me',
    response_model=UserResponse,
    dependencies=[Depends(require_capability(Capability.READ_OWN_PROFILE))],
)
def me(user: User = Depends(get_current_user)) -> UserResponse:
    return to_user_response(user)
