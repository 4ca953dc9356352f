from typing import Generator

import pytest
from sqlalchemy.orm import Session, sessionmaker


@pytest.fixture
def db_session(session_factory: sessionmaker) -> Generator[Session, None, None]:
    """A raw session on the per-test database for direct SQL checks."""
    session = session_factory()
    try:
        yield session
    finally:
        session.close()
