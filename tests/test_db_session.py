from sqlmodel import select

from app.db.session import get_session
from app.models.refresh_token import RefreshToken


def test_session_dependency():
    gen = get_session()
    session = next(gen)
    assert session is not None
    assert session.exec(select(RefreshToken)).all() == []
    gen.close()
