import logging
from typing import List, Optional

from sqlalchemy import delete, func, select, update
from sqlalchemy.orm import sessionmaker

from repolens.db.models import SourceCodeEmbedding
from repolens.schemas import NewEmbeddingRecord

logger = logging.getLogger(__name__)


class EmbeddingRecordStore:
    """Relational half of the embedding records (source, summary, searchable flag)."""

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    def create_record(self, record: NewEmbeddingRecord) -> str:
        """Insert a not-yet-searchable row and return its id."""
        with self._session_factory() as session:
            row = SourceCodeEmbedding(
                project_id=record.project_id,
                file_name=record.file_name,
                source_code=record.source_code,
                summary=record.summary,
                searchable=False,
            )
            session.add(row)
            session.commit()
            return row.id

    def mark_searchable(self, record_id: str) -> None:
        with self._session_factory() as session:
            session.execute(
                update(SourceCodeEmbedding)
                .where(SourceCodeEmbedding.id == record_id)
                .values(searchable=True)
            )
            session.commit()

    def get_records(
        self, record_ids: List[str], project_id: Optional[str] = None
    ) -> List[SourceCodeEmbedding]:
        """Searchable rows for the given ids, in no particular order."""
        if not record_ids:
            return []
        stmt = select(SourceCodeEmbedding).where(
            SourceCodeEmbedding.id.in_(record_ids),
            SourceCodeEmbedding.searchable.is_(True),
        )
        if project_id is not None:
            stmt = stmt.where(SourceCodeEmbedding.project_id == project_id)
        with self._session_factory() as session:
            return list(session.scalars(stmt))

    def find_ids_by_file(self, project_id: str, file_name: str) -> List[str]:
        stmt = select(SourceCodeEmbedding.id).where(
            SourceCodeEmbedding.project_id == project_id,
            SourceCodeEmbedding.file_name == file_name,
        )
        with self._session_factory() as session:
            return list(session.scalars(stmt))

    def list_ids_for_project(self, project_id: str) -> List[str]:
        stmt = select(SourceCodeEmbedding.id).where(
            SourceCodeEmbedding.project_id == project_id
        )
        with self._session_factory() as session:
            return list(session.scalars(stmt))

    def delete_records(self, record_ids: List[str]) -> int:
        if not record_ids:
            return 0
        with self._session_factory() as session:
            result = session.execute(
                delete(SourceCodeEmbedding).where(SourceCodeEmbedding.id.in_(record_ids))
            )
            session.commit()
            return result.rowcount or 0

    def count_for_project(self, project_id: str, searchable_only: bool = False) -> int:
        stmt = select(func.count(SourceCodeEmbedding.id)).where(
            SourceCodeEmbedding.project_id == project_id
        )
        if searchable_only:
            stmt = stmt.where(SourceCodeEmbedding.searchable.is_(True))
        with self._session_factory() as session:
            return session.scalar(stmt) or 0
