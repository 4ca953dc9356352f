from datetime import datetime, timezone
from typing import Optional

from sqlalchemy.orm import sessionmaker

from repolens.db.models import Project
from repolens.exceptions import NotFoundError


class ProjectStore:
    """Projects: a name, a repository URL and an optional archive timestamp."""

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    def create(self, name: str, repo_url: str, default_branch: str = "main") -> Project:
        with self._session_factory() as session:
            project = Project(name=name, repo_url=repo_url, default_branch=default_branch)
            session.add(project)
            session.commit()
            return project

    def find(self, project_id: str) -> Optional[Project]:
        """Live project or None; archived projects are treated as missing."""
        with self._session_factory() as session:
            project = session.get(Project, project_id)
        if project is None or project.deleted_at is not None:
            return None
        return project

    def get(self, project_id: str) -> Project:
        project = self.find(project_id)
        if project is None:
            raise NotFoundError(f"Project not found: {project_id}")
        return project

    def archive(self, project_id: str) -> Project:
        with self._session_factory() as session:
            project = session.get(Project, project_id)
            if project is None or project.deleted_at is not None:
                raise NotFoundError(f"Project not found: {project_id}")
            project.deleted_at = datetime.now(timezone.utc)
            session.commit()
            return project
