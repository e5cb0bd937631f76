"""
Dimension resolution for the transformers: business entities by code and
projects by name, creating projects on first sight.
"""

import logging
import re
from typing import Dict, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from ..common.models import BusinessEntity, Project


logger = logging.getLogger(__name__)

DEFAULT_ENTITY_NAME = 'Leos Development Projects'
DEFAULT_CURRENCY = 'AED'
PROJECT_CODE_LENGTH = 10


def generate_project_code(name: str) -> str:
    """
    Deterministic project code: uppercase, alphanumerics only, truncated.

    Example:
        >>> generate_project_code("Regent's Park")
        'REGENTSPAR'
    """
    code = re.sub(r'[^A-Z0-9]', '', (name or '').upper())[:PROJECT_CODE_LENGTH]
    return code or 'PROJECT'


class DimensionResolver:
    """
    Per-run lookup cache over the dimension tables.

    Lives on the orchestrating thread and shares its session.
    """

    def __init__(self, session: Session, default_entity_code: str = 'LDP'):
        self.session = session
        self.default_entity_code = default_entity_code.upper()
        self._entities: Dict[str, Optional[BusinessEntity]] = {}
        self._projects: Dict[str, Project] = {}

    def entity_by_code(self, code: str) -> Optional[BusinessEntity]:
        key = (code or '').upper()
        if key not in self._entities:
            self._entities[key] = self.session.query(BusinessEntity) \
                .filter(BusinessEntity.entity_code == key).first()
        return self._entities[key]

    def default_entity(self) -> BusinessEntity:
        """Entity that owns auto-created projects, created if the seed has not run."""
        entity = self.entity_by_code(self.default_entity_code)
        if entity is None:
            entity = BusinessEntity(
                entity_code=self.default_entity_code,
                entity_name=DEFAULT_ENTITY_NAME,
                currency=DEFAULT_CURRENCY,
            )
            self.session.add(entity)
            self.session.flush()
            self._entities[self.default_entity_code] = entity
            logger.info(f"Created default business entity {self.default_entity_code}")
        return entity

    def _unique_code(self, name: str) -> str:
        base = generate_project_code(name)
        code = base
        suffix = 2
        while self.session.query(Project.id).filter(Project.project_code == code).first() is not None:
            code = f"{base}{suffix}"
            suffix += 1
        return code

    def find_or_create_project(self, name: str) -> Project:
        """
        Project whose name matches ``name`` case-insensitively, created if none does.

        Args:
            name: Project name as sent by the upstream

        Returns:
            Project: Existing or newly flushed project (id assigned)

        Raises:
            ValueError: If name is blank
        """
        clean = (name or '').strip()
        if not clean:
            raise ValueError("Project name is required")

        cache_key = clean.lower()
        if cache_key in self._projects:
            return self._projects[cache_key]

        project = self.session.query(Project) \
            .filter(func.lower(Project.project_name) == cache_key).first()

        if project is None:
            entity = self.default_entity()
            code = self._unique_code(clean)
            project = Project(
                project_name=clean,
                project_short_name=code,
                project_code=code,
                entity_id=entity.id,
                project_type='Residential',
                status='Planning',
            )
            self.session.add(project)
            self.session.flush()
            logger.info(f"Created project {project.project_code} ({clean})")

        self._projects[cache_key] = project
        return project

    def clear(self):
        """Drop cached rows (after a rollback they may no longer exist)."""
        self._entities.clear()
        self._projects.clear()
