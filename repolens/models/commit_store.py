from typing import Iterable, List, Set

from sqlalchemy import select
from sqlalchemy.orm import sessionmaker

from repolens.db.models import Commit
from repolens.schemas import CommitRecordCreate


class CommitStore:
    """Persisted commit summaries."""

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    def existing_hashes(self, project_id: str, hashes: Iterable[str]) -> Set[str]:
        hashes = list(hashes)
        if not hashes:
            return set()
        stmt = select(Commit.commit_hash).where(
            Commit.project_id == project_id, Commit.commit_hash.in_(hashes)
        )
        with self._session_factory() as session:
            return set(session.scalars(stmt))

    def bulk_insert(self, records: List[CommitRecordCreate]) -> int:
        """Insert all records in one transaction."""
        if not records:
            return 0
        with self._session_factory() as session:
            session.add_all([Commit(**record.model_dump()) for record in records])
            session.commit()
        return len(records)

    def list_commits(self, project_id: str) -> List[Commit]:
        stmt = (
            select(Commit)
            .where(Commit.project_id == project_id)
            .order_by(Commit.commit_date.desc(), Commit.created_at.desc())
        )
        with self._session_factory() as session:
            return list(session.scalars(stmt))

