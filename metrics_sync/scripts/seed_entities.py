"""
Seed the business entity dimension.

Idempotent: entities are matched by code, names are refreshed when they
changed, nothing is ever deleted.

Usage:
    python -m metrics_sync.scripts.seed_entities
"""

import logging
from typing import Dict

from sqlalchemy.orm import Session

from ..common.models import BusinessEntity


logger = logging.getLogger(__name__)

# (entity_code, entity_name)
ENTITIES = [
    ('AI', 'Asia Investment L.L.C-FZ'),
    ('AXY', 'AXY Solutions'),
    ('BFL', 'Brightness Fusion Limited'),
    ('BFT', 'BF two L.L.C-FZ'),
    ('CPO', 'C P O Properties LLC'),
    ('CPO1', 'Central Pacific One Property L.L.C'),
    ('DEVC', 'Devcore Properties LLC'),
    ('DTA', 'DT Asia L.L.C-FZ'),
    ('GCI', 'G C I Contracting LLC'),
    ('HFI', 'Hadley First Investments LLC'),
    ('KAC', 'Knightsbridge Arts Center FZE'),
    ('LDP', 'LEOS Development LLC'),
    ('LID1', 'L I D One Limited - Offshore'),
    ('LIDP', 'LEOS International Developments LLC'),
    ('LII', 'LEOS International Investments LLC'),
    ('LIT', 'LEOS International Trade (Guangzhou) Co., Ltd'),
    ('LMM', 'LEOS Marketing Management LLC'),
    ('LPDC', 'LEOMAR PROJECT DEVELOPMENT CONSULTANT L.L.C'),
    ('LPM', 'LEOS One Project Management LLC'),
    ('LPMP', 'LEOS Project Management (Private) Limited'),
    ('LUD', 'L U D Design Consultancy LLC'),
    ('LVM', 'LVW Investments'),
    ('NP', 'NISEKO PROPERTIES L.L.C'),
    ('RLI', 'RL Investments - OFFSHORE'),
    ('SD', 'Safaitte digital L.L.C - FZ'),
    ('VELP', 'VE Live Property Management'),
    ('VLRE', 'VISTA LAND REAL ESTATE SURVEY SERVICES L.L.C'),
    ('VWAN', 'VWAN Limited - Offshore'),
    ('WGO', 'WG One L.L.C-FZ'),
    ('WJL', 'Wise Jasmine Limited - Offshore'),
]


def seed_entities(session: Session, currency: str = 'AED') -> Dict[str, int]:
    """
    Create missing entities and refresh changed names.

    Args:
        session: Open session (caller commits)
        currency: Currency for newly created entities

    Returns:
        Counts: {'created', 'updated', 'skipped'}
    """
    stats = {'created': 0, 'updated': 0, 'skipped': 0}
    existing = {e.entity_code: e for e in session.query(BusinessEntity).all()}

    for code, name in ENTITIES:
        entity = existing.get(code)
        if entity is None:
            session.add(BusinessEntity(
                entity_code=code,
                entity_name=name or code,
                entity_type=1,
                currency=currency,
            ))
            stats['created'] += 1
            logger.info(f"Created entity {code} - {name}")
        elif name and entity.entity_name != name:
            entity.entity_name = name
            stats['updated'] += 1
            logger.info(f"Updated entity {code} - {name}")
        else:
            stats['skipped'] += 1

    session.flush()
    logger.info(
        f"Entity seed: {stats['created']} created, {stats['updated']} updated, "
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
        seed_entities(session)
