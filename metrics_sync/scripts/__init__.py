"""
Maintenance scripts: dimension seeding and unique index repair.

Each script exposes a function taking an open session so the CLI (and
tests) can run it inside a SessionManager scope, plus a ``__main__``
entry point for one-off runs.
"""

from .seed_entities import ENTITIES, seed_entities
from .seed_projects import PROJECTS, seed_projects
from .repair_indexes import repair_indexes, remove_duplicates

__all__ = [
    'ENTITIES',
    'seed_entities',
    'PROJECTS',
    'seed_projects',
    'repair_indexes',
    'remove_duplicates',
]
