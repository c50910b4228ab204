import secrets
from typing import Optional

from passlib.context import CryptContext


class PasswordHasher:
    """bcrypt wrapper that costs the same whether or not a hash exists."""

    def __init__(self, rounds: int = 12) -> None:
        self._context = CryptContext(schemes=['bcrypt'], deprecated='auto', bcrypt__rounds=rounds)
        # Compared against when there is no real hash so lookups for unknown
        # accounts spend the same bcrypt time as real ones.
        self._dummy_hash = self._context.hash(secrets.token_urlsafe(16))

    def hash(self, password: str) -> str:
        return self._context.hash(password)

    def verify(self, password: str, hashed_password: Optional[str]) -> bool:
        if not hashed_password:
            self._context.verify(password, self._dummy_hash)
            return False
        try:
            return self._context.verify(password, hashed_password)
        except ValueError:
            self._context.verify(password, self._dummy_hash)
            return False
