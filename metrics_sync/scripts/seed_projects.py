"""
Seed the project dimension. All seeded projects belong to the default
entity (LDP), which is created when the entity seed has not run yet.

Usage:
    python -m metrics_sync.scripts.seed_projects
"""

import logging
from typing import Dict

from sqlalchemy.orm import Session

from ..common.models import Project
from ..datalayer.dimensions import DimensionResolver


logger = logging.getLogger(__name__)

# (project_code, project_name, project_short_name)
PROJECTS = [
    ('2000', 'Knightsbridge Park(Test)', 'KPTEST'),
    ('2563', 'Hadley Heights', 'HH'),
    ('2787', 'Weybridge Gardens', 'WG'),
    ('2866', 'Cavendish Square', 'CS'),
    ('3007', 'Weybridge Gardens - 2', 'WG2'),
    ('3164', 'Weybridge Gardens 3', 'WG3'),
    ('3361', 'Knightsbridge Park', 'KP'),
    ('3378', 'Kensington Gardens', 'KG'),
    ('3500', 'HQ Operations & Utilities', 'HQ'),
    ('GEN', 'GEN', 'GEN'),
    ('P0011', 'Knightsbridge Park 2', 'KP2'),
    ('P0013', 'Weybridge Gardens 4 - Kensington Gardens', 'WG4KG'),
    ('P0014', 'Weybridge Gardens 5', 'WG5'),
    ('P0015', 'Hadley Heights 2 - Vitality', 'HH2V'),
    ('P0016', 'Greenwood Master Community', 'GMC'),
    ('P0017', 'Windsor', 'WIN'),
    ('P0018', "Regent's Park", 'RP'),
    ('P0019', 'LEOS Royal', 'LR'),
]


def seed_projects(session: Session, entity_code: str = 'LDP') -> Dict[str, int]:
    """
    Create missing projects and refresh changed names or short names.

    Args:
        session: Open session (caller commits)
        entity_code: Owning entity of created projects

    Returns:
        Counts: {'created', 'updated', 'skipped'}
    """
    stats = {'created': 0, 'updated': 0, 'skipped': 0}
    owner = DimensionResolver(session, default_entity_code=entity_code).default_entity()
    existing = {p.project_code: p for p in session.query(Project).all()}

    for code, name, short_name in PROJECTS:
        project = existing.get(code)
        if project is None:
            session.add(Project(
                project_code=code,
                project_name=name,
                project_short_name=short_name,
                entity_id=owner.id,
                project_type='Residential',
                status='Planning',
                is_available=True,
                total_units=0,
            ))
            stats['created'] += 1
            logger.info(f"Created project {code} - {name}")
            continue

        changed = False
        if project.project_name != name:
            project.project_name = name
            changed = True
        if project.project_short_name != short_name:
            project.project_short_name = short_name
            changed = True

        if changed:
            stats['updated'] += 1
            logger.info(f"Updated project {code} - {name}")
        else:
            stats['skipped'] += 1

    session.flush()
    logger.info(
        f"Project seed: {stats['created']} created, {stats['updated']} updated, "
        f"{stats['skipped']} unchanged"
    )
    return stats


if __name__ == "__main__":
    from ..common.config import DataLayerConfig
    from ..common.engine import create_engine_from_config
    from ..common.session import SessionManager

    logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
    manager = SessionManager(create_engine_from_config(DataLayerConfig.from_env().primary_database))
    with manager.session_scope() as session:
        seed_projects(session)
